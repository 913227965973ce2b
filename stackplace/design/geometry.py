"""
Geometry Primitives

Immutable point and rectangle value types used throughout the floorplanner.
Rectangles are axis-aligned and described by their lower-left corner and
their extent; all intersection tests treat edges as half-open so that
abutting blocks do not count as overlapping.
"""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class Point:
    """A point in die coordinates (um)."""
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by lower-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_corners(cls, ll: Point, ur: Point) -> 'Rect':
        return cls(ll.x, ll.y, ur.x - ll.x, ur.y - ll.y)

    @property
    def ll(self) -> Point:
        return Point(self.x, self.y)

    @property
    def ur(self) -> Point:
        return Point(self.x + self.width, self.y + self.height)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    @property
    def aspect_ratio(self) -> float:
        """Width over height; zero-height rectangles report 0."""
        if self.height == 0:
            return 0.0
        return self.width / self.height

    def intersects_horizontal(self, other: 'Rect') -> bool:
        """True if the x-extents overlap (abutting does not count)."""
        return self.x < other.right and other.x < self.right

    def intersects_vertical(self, other: 'Rect') -> bool:
        """True if the y-extents overlap (abutting does not count)."""
        return self.y < other.top and other.y < self.top

    def intersects(self, other: 'Rect') -> bool:
        return self.intersects_horizontal(other) and self.intersects_vertical(other)

    def intersection(self, other: 'Rect') -> Optional['Rect']:
        """Overlapping region, or None if the rectangles do not overlap."""
        if not self.intersects(other):
            return None
        x = max(self.x, other.x)
        y = max(self.y, other.y)
        return Rect(x, y, min(self.right, other.right) - x, min(self.top, other.top) - y)

    def left_of(self, other: 'Rect', require_vertical_overlap: bool = False) -> bool:
        if self.right > other.x:
            return False
        return self.intersects_vertical(other) or not require_vertical_overlap

    def below(self, other: 'Rect', require_horizontal_overlap: bool = False) -> bool:
        if self.top > other.y:
            return False
        return self.intersects_horizontal(other) or not require_horizontal_overlap

    def contains(self, other: 'Rect', tolerance: float = 1e-9) -> bool:
        return (
            other.x >= self.x - tolerance
            and other.y >= self.y - tolerance
            and other.right <= self.right + tolerance
            and other.top <= self.top + tolerance
        )

    def rotated(self) -> 'Rect':
        """Same lower-left corner, width and height exchanged."""
        return Rect(self.x, self.y, self.height, self.width)


def bounding_box(rects: Iterable[Rect]) -> Optional[Rect]:
    """Smallest rectangle enclosing all given rectangles (None if empty)."""
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    seen = False
    for rect in rects:
        seen = True
        min_x = min(min_x, rect.x)
        min_y = min(min_y, rect.y)
        max_x = max(max_x, rect.right)
        max_y = max(max_y, rect.top)
    if not seen:
        return None
    return Rect(min_x, min_y, max_x - min_x, max_y - min_y)


def overlap_1d(lo_a: float, hi_a: float, lo_b: float, hi_b: float) -> float:
    """Length of the overlap of two intervals; zero when disjoint."""
    return max(0.0, min(hi_a, hi_b) - max(lo_a, lo_b))
