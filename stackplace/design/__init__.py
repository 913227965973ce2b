"""Design model: blocks, nets, terminals, die stack and geometry."""

from .geometry import Point, Rect, bounding_box, overlap_1d
from .abstraction import (
    REFERENCE_ORIGIN,
    Block,
    Design,
    InvalidDesignError,
    Net,
    StackParameters,
    Terminal,
)

__all__ = [
    "Point",
    "Rect",
    "bounding_box",
    "overlap_1d",
    "REFERENCE_ORIGIN",
    "Block",
    "Design",
    "InvalidDesignError",
    "Net",
    "StackParameters",
    "Terminal",
]
