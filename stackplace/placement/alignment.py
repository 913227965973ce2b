"""
Alignment Model

Requirements that tie the relative position of two entities (blocks, TSV
islands, or the die-origin reference) along each axis, and their
evaluation against a decoded layout.

Per axis a requirement is one of:
- OFFSET: lower-left of j relative to lower-left of i must equal a target
- MIN: the entities must overlap by at least a given length
- MAX: the entities' centre points may be at most a given distance apart
- UNDEF: the axis is unconstrained
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Tuple

from ..design.geometry import Rect, overlap_1d

logger = logging.getLogger(__name__)


class AlignmentType(Enum):
    """Per-axis requirement type."""
    OFFSET = "offset"
    MIN = "min"
    MAX = "max"
    UNDEF = "undef"


class Handling(Enum):
    """How an unfulfilled requirement affects the candidate's cost."""
    STRICT = "strict"  # Candidate is rejected outright
    FLEXIBLE = "flexible"  # Weighted penalty proportional to mismatch


class AlignmentStatus(Enum):
    """Which way an entity would have to move to fulfil a requirement."""
    SUCCESS = "success"
    FAIL_HOR_TOO_LEFT = "too_left"
    FAIL_HOR_TOO_RIGHT = "too_right"
    FAIL_VERT_TOO_LOW = "too_low"
    FAIL_VERT_TOO_HIGH = "too_high"


class EntityGeometry(Protocol):
    def entity_rect(self, name: str) -> Rect:
        ...


@dataclass(frozen=True)
class AxisRequirement:
    type: AlignmentType = AlignmentType.UNDEF
    value: float = 0.0

    def __str__(self) -> str:
        if self.type is AlignmentType.UNDEF:
            return "*"
        return f"{self.type.name}={self.value:g}"


@dataclass
class AlignmentRequirement:
    """Alignment between entity i and entity j.

    Entities are block ids, TSV-island names, or "RBOD" for the die origin.
    The signal count weights the mismatch, e.g. the bit width of a bus.
    """
    block_i: str
    block_j: str
    x: AxisRequirement = field(default_factory=AxisRequirement)
    y: AxisRequirement = field(default_factory=AxisRequirement)
    handling: Handling = Handling.FLEXIBLE
    signals: int = 1
    tolerance: float = 1e-6
    id: Optional[str] = None

    def __post_init__(self):
        for axis in ("x", "y"):
            req = getattr(self, axis)
            if req.type in (AlignmentType.MIN, AlignmentType.MAX) and req.value < 0:
                logger.warning("Alignment %s: negative %s range %g on %s, using %g",
                               self.describe(), req.type.name, req.value, axis, abs(req.value))
                setattr(self, axis, AxisRequirement(req.type, abs(req.value)))

    @property
    def is_strict(self) -> bool:
        return self.handling is Handling.STRICT

    def is_vertical_bus(self) -> bool:
        """True if the two entities must sit on top of each other."""
        if self.x.type is AlignmentType.MIN and self.y.type is AlignmentType.MIN:
            return self.x.value > 0 and self.y.value > 0
        if self.x.type is AlignmentType.OFFSET and self.y.type is AlignmentType.OFFSET:
            return self.x.value == 0 and self.y.value == 0
        return False

    def describe(self) -> str:
        label = f"{self.id}: " if self.id is not None else ""
        return (f"{label}({self.block_i}, {self.block_j}, x {self.x}, y {self.y}, "
                f"{self.handling.name})")


@dataclass(frozen=True)
class AxisEvaluation:
    type: AlignmentType
    target: float
    measured: float
    mismatch: float
    fulfilled: bool


@dataclass(frozen=True)
class AlignmentEvaluation:
    """Outcome of evaluating one requirement against one layout."""
    requirement: AlignmentRequirement
    x: AxisEvaluation
    y: AxisEvaluation
    status_i: AlignmentStatus = AlignmentStatus.SUCCESS
    status_j: AlignmentStatus = AlignmentStatus.SUCCESS

    @property
    def fulfilled(self) -> bool:
        return self.x.fulfilled and self.y.fulfilled

    @property
    def mismatch(self) -> float:
        return self.x.mismatch + self.y.mismatch

    @property
    def cost(self) -> float:
        """Mismatch weighted by the requirement's signal count."""
        return self.mismatch * self.requirement.signals

    def to_dict(self) -> Dict:
        return {
            "block_i": self.requirement.block_i,
            "block_j": self.requirement.block_j,
            "handling": self.requirement.handling.value,
            "fulfilled": self.fulfilled,
            "measured": {"x": self.x.measured, "y": self.y.measured},
            "mismatch": self.mismatch,
            "status": [self.status_i.value, self.status_j.value],
        }


def _evaluate_axis(req: AxisRequirement, lo_i: float, hi_i: float,
                   lo_j: float, hi_j: float,
                   tolerance: float) -> Tuple[AxisEvaluation, Optional[bool]]:
    """Evaluate one axis.

    Returns the axis evaluation and, when unfulfilled, whether entity i lies
    too far towards the lower end of the axis (None when fulfilled).
    """
    if req.type is AlignmentType.OFFSET:
        measured = lo_j - lo_i
        mismatch = abs(measured - req.value)
        if mismatch <= tolerance:
            return AxisEvaluation(req.type, req.value, measured, 0.0, True), None
        return AxisEvaluation(req.type, req.value, measured, mismatch, False), measured > req.value

    if req.type is AlignmentType.MIN:
        measured = overlap_1d(lo_i, hi_i, lo_j, hi_j)
        if measured >= req.value - tolerance:
            return AxisEvaluation(req.type, req.value, measured, 0.0, True), None
        mismatch = req.value - measured
        if measured == 0:
            # Disjoint; the gap between them counts as well
            mismatch += max(lo_j - hi_i, lo_i - hi_j, 0.0)
        return AxisEvaluation(req.type, req.value, measured, mismatch, False), lo_i < lo_j

    if req.type is AlignmentType.MAX:
        measured = abs((lo_j + hi_j) / 2 - (lo_i + hi_i) / 2)
        if measured <= req.value + tolerance:
            return AxisEvaluation(req.type, req.value, measured, 0.0, True), None
        return (AxisEvaluation(req.type, req.value, measured, measured - req.value, False),
                lo_i < lo_j)

    return AxisEvaluation(req.type, req.value, lo_j - lo_i, 0.0, True), None


def evaluate(requirement: AlignmentRequirement, layout: EntityGeometry) -> AlignmentEvaluation:
    """Evaluate a requirement against decoded geometry.

    Args:
        requirement: The alignment requirement
        layout: Anything resolving entity names to rectangles (a Layout)

    Returns:
        A fresh AlignmentEvaluation; the requirement itself is not touched
    """
    rect_i = layout.entity_rect(requirement.block_i)
    rect_j = layout.entity_rect(requirement.block_j)
    tol = requirement.tolerance

    x_eval, i_too_left = _evaluate_axis(requirement.x, rect_i.x, rect_i.right,
                                        rect_j.x, rect_j.right, tol)
    y_eval, i_too_low = _evaluate_axis(requirement.y, rect_i.y, rect_i.top,
                                       rect_j.y, rect_j.top, tol)

    status_i = status_j = AlignmentStatus.SUCCESS
    if i_too_left is not None:
        if i_too_left:
            status_i, status_j = AlignmentStatus.FAIL_HOR_TOO_LEFT, AlignmentStatus.FAIL_HOR_TOO_RIGHT
        else:
            status_i, status_j = AlignmentStatus.FAIL_HOR_TOO_RIGHT, AlignmentStatus.FAIL_HOR_TOO_LEFT
    if i_too_low is not None:
        # Vertical failures take precedence in the per-block annotation
        if i_too_low:
            status_i, status_j = AlignmentStatus.FAIL_VERT_TOO_LOW, AlignmentStatus.FAIL_VERT_TOO_HIGH
        else:
            status_i, status_j = AlignmentStatus.FAIL_VERT_TOO_HIGH, AlignmentStatus.FAIL_VERT_TOO_LOW

    result = AlignmentEvaluation(requirement, x_eval, y_eval, status_i, status_j)
    if logger.isEnabledFor(logging.DEBUG) and not result.fulfilled:
        logger.debug("Alignment %s violated: mismatch %.3f (%s / %s)",
                     requirement.describe(), result.mismatch, status_i.value, status_j.value)
    return result


def evaluate_all(requirements: List[AlignmentRequirement],
                 layout: EntityGeometry) -> List[AlignmentEvaluation]:
    return [evaluate(req, layout) for req in requirements]
