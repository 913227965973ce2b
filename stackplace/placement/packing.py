"""
Packing Representation

Per-die sequence encoding of a floorplan in the spirit of the corner block
list. Each tuple names a block, its current shape, the direction it is
packed in and how many front blocks it covers (its T-junction count), and
may pin the coordinate along the non-packed axis with an explicit offset.

decode() places the tuples in order. The coordinate along the non-packed
axis comes from the offset or from the corner-block stacks; the packed
coordinate comes from a contour (skyline) query over every block placed so
far, which makes every decoded placement overlap-free by construction.
"""

import heapq
import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from ..design.geometry import Rect

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Packing direction of a tuple."""
    LEFT = "left"  # Slides left against the right front; y from stack/offset
    BOTTOM = "bottom"  # Slides down against the top front; x from stack/offset

    def flipped(self) -> 'Direction':
        return Direction.BOTTOM if self is Direction.LEFT else Direction.LEFT


@dataclass(frozen=True)
class PackingTuple:
    """One entry of a packing sequence.

    Width and height are the block's current shape (rotation or soft-block
    reshaping is recorded here, never on the input block).
    """
    block_id: str
    width: float
    height: float
    direction: Direction = Direction.LEFT
    junctions: int = 0
    offset: Optional[float] = None

    def with_changes(self, **changes) -> 'PackingTuple':
        return replace(self, **changes)

    def __str__(self) -> str:
        offset = "-" if self.offset is None else f"{self.offset:g}"
        return (f"({self.block_id} {self.width:g}x{self.height:g} "
                f"{self.direction.name[0]} {self.junctions} {offset})")


@dataclass(frozen=True)
class PackingSequence:
    """Ordered, immutable tuple list for one die."""
    die: int
    tuples: Tuple[PackingTuple, ...] = ()

    def __len__(self) -> int:
        return len(self.tuples)

    def __iter__(self) -> Iterator[PackingTuple]:
        return iter(self.tuples)

    def __getitem__(self, index: int) -> PackingTuple:
        return self.tuples[index]

    @property
    def block_ids(self) -> List[str]:
        return [t.block_id for t in self.tuples]

    def index_of(self, block_id: str) -> int:
        for i, t in enumerate(self.tuples):
            if t.block_id == block_id:
                return i
        raise KeyError(block_id)

    def with_tuples(self, tuples) -> 'PackingSequence':
        return PackingSequence(self.die, tuple(tuples))

    def __str__(self) -> str:
        return f"die {self.die}: " + " ".join(str(t) for t in self.tuples)


class Contour:
    """Piecewise-constant front of the placed blocks along one axis.

    Maps a coordinate t to the largest far edge of all placed blocks whose
    extent covers t. Segments are kept as sorted breakpoints; segment i
    covers [starts[i], starts[i + 1]).

    Locating a coordinate is a bisect, O(log n). Queries and updates then
    walk the segments under the block, and inserting or merging a breakpoint
    shifts the list, so a decode is O(n^2) in the worst case. For packed
    floorplans the walked segments stay few and the list shifts are memmoves,
    which keeps decode close to linear in practice.
    """

    def __init__(self):
        self._starts: List[float] = [float("-inf")]
        self._values: List[float] = [0.0]

    def __len__(self) -> int:
        return len(self._starts)

    def query(self, lo: float, hi: float) -> float:
        """Maximum front over the half-open interval [lo, hi)."""
        i = bisect_right(self._starts, lo) - 1
        front = 0.0
        n = len(self._starts)
        while i < n and self._starts[i] < hi:
            if self._values[i] > front:
                front = self._values[i]
            i += 1
        return front

    def raise_to(self, lo: float, hi: float, value: float) -> None:
        """Lift the front on [lo, hi) to at least value."""
        if hi <= lo:
            return
        i = self._split(lo)
        j = self._split(hi)
        for k in range(i, j):
            if self._values[k] < value:
                self._values[k] = value

        # Merge neighbours that became equal
        k = min(j, len(self._starts) - 1)
        while k >= max(i, 1):
            if self._values[k] == self._values[k - 1]:
                del self._starts[k]
                del self._values[k]
            k -= 1

    def _split(self, t: float) -> int:
        i = bisect_left(self._starts, t)
        if i < len(self._starts) and self._starts[i] == t:
            return i
        self._starts.insert(i, t)
        self._values.insert(i, self._values[i - 1])
        return i


def _pop_relevant(stack: List[str], junctions: int) -> List[str]:
    count = min(junctions + 1, len(stack))
    return [stack.pop() for _ in range(count)]


def decode(sequence: PackingSequence) -> Dict[str, Rect]:
    """Decode one die's sequence into absolute, non-overlapping rectangles.

    Total and deterministic: every sequence decodes, tuples are resolved in
    encounter order, and the result depends on nothing but the sequence.
    """
    placed: Dict[str, Rect] = {}
    h_stack: List[str] = []  # Blocks on the right front, top of stack last
    v_stack: List[str] = []  # Blocks on the top front
    h_front = Contour()  # y -> right edge
    v_front = Contour()  # x -> top edge

    for tup in sequence.tuples:
        if tup.direction is Direction.LEFT:
            relevant = _pop_relevant(h_stack, tup.junctions) if tup.offset is None else []
            if tup.offset is not None:
                y = max(0.0, tup.offset)
            elif not h_stack:
                # All rows covered; place at the bottom boundary
                y = 0.0
            else:
                y = min(placed[b].y for b in relevant)
            x = h_front.query(y, y + tup.height)
            rect = Rect(x, y, tup.width, tup.height)

            if not any(rect.below(placed[b]) for b in relevant):
                v_stack.append(tup.block_id)
            kept = [b for b in relevant
                    if not placed[b].left_of(rect, require_vertical_overlap=True)]
            h_stack.append(tup.block_id)
            h_stack.extend(reversed(kept))
        else:
            relevant = _pop_relevant(v_stack, tup.junctions) if tup.offset is None else []
            if tup.offset is not None:
                x = max(0.0, tup.offset)
            elif not v_stack:
                # All columns covered; place at the left boundary
                x = 0.0
            else:
                x = min(placed[b].x for b in relevant)
            y = v_front.query(x, x + tup.width)
            rect = Rect(x, y, tup.width, tup.height)

            if not any(rect.left_of(placed[b]) for b in relevant):
                h_stack.append(tup.block_id)
            kept = [b for b in relevant
                    if not placed[b].below(rect, require_horizontal_overlap=True)]
            v_stack.append(tup.block_id)
            v_stack.extend(reversed(kept))

        placed[tup.block_id] = rect
        h_front.raise_to(rect.y, rect.top, rect.right)
        v_front.raise_to(rect.x, rect.right, rect.top)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("die %d: placed %s at (%g, %g); H=%s V=%s",
                         sequence.die, tup, rect.x, rect.y, h_stack, v_stack)

    return placed


def encode(rects: Mapping[str, Rect], die: int = 0) -> PackingSequence:
    """Build a sequence whose decode reproduces the given geometry.

    Every block gets an explicit offset and the direction it is compacted
    in (LEFT if it touches x = 0 or abuts a block on its left, otherwise
    BOTTOM if it touches y = 0 or rests on a block below). Tuples are
    ordered so that every block comes after the blocks it is packed
    against.

    Raises:
        ValueError: if blocks overlap, lie at negative coordinates, or a
            block is compacted in neither direction (such geometry is not
            reachable by decode)
    """
    ids = list(rects)
    order_key = {block_id: i for i, block_id in enumerate(ids)}
    successors: Dict[str, List[str]] = {b: [] for b in ids}
    indegree: Dict[str, int] = {b: 0 for b in ids}

    for block_id in ids:
        rect = rects[block_id]
        if rect.x < 0 or rect.y < 0:
            raise ValueError(f"block '{block_id}' lies at negative coordinates")

    for i, a in enumerate(ids):
        ra = rects[a]
        for b in ids[i + 1:]:
            rb = rects[b]
            if ra.intersects(rb):
                raise ValueError(f"blocks '{a}' and '{b}' overlap")
            if ra.left_of(rb, True) or ra.below(rb, True):
                successors[a].append(b)
                indegree[b] += 1
            elif rb.left_of(ra, True) or rb.below(ra, True):
                successors[b].append(a)
                indegree[a] += 1

    # Kahn's algorithm; ties broken towards the lower-left, then input order
    def priority(block_id: str) -> Tuple[float, float, int]:
        r = rects[block_id]
        return (r.x + r.y, r.y, order_key[block_id])

    ready = [(priority(b), b) for b in ids if indegree[b] == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        _, block_id = heapq.heappop(ready)
        order.append(block_id)
        for succ in successors[block_id]:
            indegree[succ] -= 1
            if indegree[succ] == 0:
                heapq.heappush(ready, (priority(succ), succ))
    if len(order) != len(ids):
        raise ValueError("geometry has cyclic packing dependencies")

    tuples = []
    for block_id in order:
        rect = rects[block_id]
        if rect.x == 0 or any(
            other.right == rect.x and other.intersects_vertical(rect)
            for key, other in rects.items() if key != block_id
        ):
            tuples.append(PackingTuple(block_id, rect.width, rect.height,
                                       Direction.LEFT, 0, rect.y))
        elif rect.y == 0 or any(
            other.top == rect.y and other.intersects_horizontal(rect)
            for key, other in rects.items() if key != block_id
        ):
            tuples.append(PackingTuple(block_id, rect.width, rect.height,
                                       Direction.BOTTOM, 0, rect.x))
        else:
            raise ValueError(
                f"block '{block_id}' at ({rect.x:g}, {rect.y:g}) is not compacted "
                "left or down"
            )

    return PackingSequence(die, tuple(tuples))
