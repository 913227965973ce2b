"""
Design Abstraction Layer

Input data model for a 3D-stacked floorplanning run: the blocks to place,
fixed terminals, nets, alignment requirements and the physical parameters
of the die stack. A Design is created once by the loader (or by hand in
tests) and is read-only for the whole search; per-candidate geometry lives
in the decoded layout, never on these objects.
"""

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

from .geometry import Point, Rect

if TYPE_CHECKING:
    from ..placement.alignment import AlignmentRequirement

# Reserved alignment entity: a zero-size reference block at the die origin
REFERENCE_ORIGIN = "RBOD"


class InvalidDesignError(ValueError):
    """Raised when a design cannot be floorplanned as specified."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = self.errors[0]
        else:
            message = f"{len(self.errors)} design errors:\n  " + "\n  ".join(self.errors)
        super().__init__(message)


@dataclass
class Block:
    """A rectangular functional block.

    Hard blocks keep their shape and may only be rotated; soft blocks keep
    their area and may take any aspect ratio (width / height) within
    [ar_min, ar_max].
    """
    id: str
    width: float  # um
    height: float  # um
    power_density: float = 0.0  # uW/um^2
    soft: bool = False
    rotatable: bool = True
    ar_min: Optional[float] = None
    ar_max: Optional[float] = None
    die: Optional[int] = None  # Assignment hint for the initial floorplan
    voltage_domain: Optional[str] = None
    tsv_island: Optional[str] = None

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def power(self) -> float:
        """Total power in W (density in uW/um^2 times area in um^2)."""
        return self.power_density * self.area * 1e-6

    def aspect_ratio_range(self) -> Tuple[float, float]:
        """Allowed (min, max) aspect ratio for this block's shapes."""
        if self.ar_min is not None and self.ar_max is not None:
            return (self.ar_min, self.ar_max)
        ar = self.aspect_ratio
        if self.rotatable:
            return (min(ar, 1 / ar), max(ar, 1 / ar))
        return (ar, ar)

    def shape_for_ratio(self, ratio: float) -> Tuple[float, float]:
        """(width, height) of a soft block reshaped to the given aspect ratio."""
        width = math.sqrt(self.area * ratio)
        return (width, self.area / width)


@dataclass
class Terminal:
    """A fixed I/O pin on the outline of the lowest die."""
    id: str
    x: float
    y: float

    @property
    def position(self) -> Point:
        return Point(self.x, self.y)

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, 0.0, 0.0)


@dataclass
class Net:
    """A net connecting blocks (possibly across dies) and terminals."""
    id: str
    blocks: List[str] = field(default_factory=list)
    terminals: List[str] = field(default_factory=list)
    weight: float = 1.0


@dataclass
class StackParameters:
    """Physical parameters of the die stack used by the thermal analyzer.

    Thicknesses are in m, resistivities in m*K/W. The die nearest the heat
    sink is die 0.
    """
    map_dim: int = 64  # Thermal bins per die side
    mask_dim: int = 7  # Impulse-response mask size (odd)

    thickness_si: float = 100e-6
    thickness_beol: float = 12e-6
    thickness_bond: float = 20e-6
    resistivity_si: float = 0.008510638
    resistivity_beol: float = 0.4444
    resistivity_bond: float = 5.0

    impulse_factor: float = 1.0
    impulse_scaling_exponent: float = 0.4
    mask_boundary_value: float = 0.01

    temp_offset: float = 293.0  # K, ambient / heat-sink temperature
    hotspot_threshold: float = 360.0  # K

    tsv_pitch: float = 10.0  # um, signal-TSV pitch inside an island

    @property
    def mask_center(self) -> int:
        return self.mask_dim // 2

    @property
    def padded_dim(self) -> int:
        return self.map_dim + 2 * self.mask_center

    def vertical_resistance(self) -> float:
        """Area-specific vertical thermal resistance of one die (m^2*K/W)."""
        return (
            self.thickness_si * self.resistivity_si
            + self.thickness_beol * self.resistivity_beol
            + self.thickness_bond * self.resistivity_bond
        )

    def validate(self) -> List[str]:
        errors = []
        if self.map_dim <= 0:
            errors.append(f"thermal map_dim must be positive, got {self.map_dim}")
        if self.mask_dim <= 0 or self.mask_dim % 2 == 0:
            errors.append(f"thermal mask_dim must be a positive odd number, got {self.mask_dim}")
        if self.impulse_factor <= 0 or self.impulse_scaling_exponent <= 0:
            errors.append("thermal impulse factor and scaling exponent must be positive")
        if not 0 < self.mask_boundary_value < self.impulse_factor:
            errors.append("thermal mask boundary value must lie in (0, impulse_factor)")
        if self.vertical_resistance() <= 0:
            errors.append("stack thermal resistance must be positive")
        if self.tsv_pitch <= 0:
            errors.append(f"TSV pitch must be positive, got {self.tsv_pitch}")
        return errors


@dataclass
class Design:
    """A complete floorplanning problem."""
    name: str
    dies: int
    outline_width: float
    outline_height: float
    blocks: List[Block] = field(default_factory=list)
    nets: List[Net] = field(default_factory=list)
    terminals: List[Terminal] = field(default_factory=list)
    alignments: List["AlignmentRequirement"] = field(default_factory=list)
    stack: StackParameters = field(default_factory=StackParameters)
    require_populated_dies: bool = True

    def __post_init__(self):
        self._block_index: Dict[str, Block] = {b.id: b for b in self.blocks}
        self._terminal_index: Dict[str, Terminal] = {t.id: t for t in self.terminals}

    @property
    def outline(self) -> Rect:
        return Rect(0.0, 0.0, self.outline_width, self.outline_height)

    @property
    def outline_aspect_ratio(self) -> float:
        return self.outline_width / self.outline_height

    @property
    def block_ids(self) -> List[str]:
        return [b.id for b in self.blocks]

    def get_block(self, block_id: str) -> Block:
        return self._block_index[block_id]

    def get_terminal(self, terminal_id: str) -> Terminal:
        return self._terminal_index[terminal_id]

    def tsv_islands(self) -> Dict[str, List[str]]:
        """Map island name -> member block ids, in input order."""
        islands: Dict[str, List[str]] = {}
        for block in self.blocks:
            if block.tsv_island:
                islands.setdefault(block.tsv_island, []).append(block.id)
        return islands

    def total_power(self) -> float:
        return sum(b.power() for b in self.blocks)

    def validate(self) -> None:
        """Check the design for input errors.

        Raises:
            InvalidDesignError: listing every problem found
        """
        errors: List[str] = []

        if self.dies < 1:
            errors.append(f"die count must be at least 1, got {self.dies}")
        if self.outline_width <= 0 or self.outline_height <= 0:
            errors.append(
                f"outline must have positive size, got {self.outline_width} x {self.outline_height}"
            )
        if not self.blocks:
            errors.append("design has no blocks")

        seen: Set[str] = set()
        for block in self.blocks:
            if block.id in seen:
                errors.append(f"duplicate block id '{block.id}'")
            seen.add(block.id)
            if block.width <= 0 or block.height <= 0:
                errors.append(
                    f"block '{block.id}' has non-positive dimensions {block.width} x {block.height}"
                )
                continue
            if block.power_density < 0:
                errors.append(f"block '{block.id}' has negative power density")
            if (block.ar_min is None) != (block.ar_max is None):
                errors.append(f"block '{block.id}' must give both ar_min and ar_max")
            elif block.ar_min is not None:
                if block.ar_min <= 0 or block.ar_min > block.ar_max:
                    errors.append(
                        f"block '{block.id}' has invalid aspect ratio range "
                        f"[{block.ar_min}, {block.ar_max}]"
                    )
            if block.die is not None and not 0 <= block.die < self.dies:
                errors.append(
                    f"block '{block.id}' is hinted to die {block.die}, design has {self.dies} dies"
                )

        if self.require_populated_dies and 0 < len(self.blocks) < self.dies:
            errors.append(
                f"{len(self.blocks)} blocks cannot populate all {self.dies} dies"
            )

        terminal_ids = set()
        for terminal in self.terminals:
            if terminal.id in terminal_ids:
                errors.append(f"duplicate terminal id '{terminal.id}'")
            terminal_ids.add(terminal.id)

        for net in self.nets:
            for block_id in net.blocks:
                if block_id not in seen:
                    errors.append(f"net '{net.id}' references unknown block '{block_id}'")
            for terminal_id in net.terminals:
                if terminal_id not in terminal_ids:
                    errors.append(f"net '{net.id}' references unknown terminal '{terminal_id}'")
            if net.weight < 0:
                errors.append(f"net '{net.id}' has negative weight")

        entities = seen | set(self.tsv_islands()) | {REFERENCE_ORIGIN}
        for req in self.alignments:
            for ref in (req.block_i, req.block_j):
                if ref not in entities:
                    errors.append(f"alignment {req.describe()} references unknown entity '{ref}'")
            if req.block_i == req.block_j:
                errors.append(f"alignment {req.describe()} references the same entity twice")
            if req.signals < 1:
                errors.append(
                    f"alignment {req.describe()} has signal count {req.signals}, must be at least 1"
                )
            if req.tolerance < 0:
                errors.append(f"alignment {req.describe()} has negative tolerance")

        errors.extend(self.stack.validate())

        if errors:
            raise InvalidDesignError(errors)
