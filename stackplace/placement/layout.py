"""
Layout Orchestration

Owns the per-die packing sequences of a floorplan, applies perturbation
operators and decodes a floorplan into a Layout (block id -> die and
rectangle).

Floorplans are immutable tuples of PackingSequence. Operators never touch
their input; they return a new floorplan, or None when the move is illegal
(e.g. it would leave a die empty while populated dies are required).
"""

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Tuple

from ..design.abstraction import REFERENCE_ORIGIN, Design
from ..design.geometry import Rect, bounding_box
from ..diagnostics import Diagnostics
from .packing import Direction, PackingSequence, PackingTuple, decode, encode

if TYPE_CHECKING:
    from .clustering import TSVIsland

logger = logging.getLogger(__name__)

Floorplan = Tuple[PackingSequence, ...]


@dataclass(frozen=True)
class Placement:
    die: int
    rect: Rect


class Layout:
    """Decoded geometry of a floorplan."""

    def __init__(self, dies: int, placements: Dict[str, Placement],
                 islands: Optional[Mapping[str, List[str]]] = None):
        self.dies = dies
        self.placements = placements
        self._islands = dict(islands or {})
        self._signal_tsvs: Dict[str, "TSVIsland"] = {}
        self._die_boxes: Dict[int, Optional[Rect]] = {}

    def __len__(self) -> int:
        return len(self.placements)

    def __contains__(self, block_id: str) -> bool:
        return block_id in self.placements

    def rect(self, block_id: str) -> Rect:
        return self.placements[block_id].rect

    def die_of(self, block_id: str) -> int:
        return self.placements[block_id].die

    def populated_dies(self) -> List[int]:
        return sorted({p.die for p in self.placements.values()})

    def entity_rect(self, name: str) -> Rect:
        """Rectangle of a block, a TSV island or the origin.

        Islands declared in the design resolve to their members' bounding
        box; clustered signal-TSV islands to their own rectangle.
        """
        if name in self.placements:
            return self.placements[name].rect
        if name == REFERENCE_ORIGIN:
            return Rect(0.0, 0.0, 0.0, 0.0)
        members = self._islands.get(name)
        if members:
            return bounding_box(self.placements[b].rect for b in members)
        if name in self._signal_tsvs:
            return self._signal_tsvs[name].rect
        raise KeyError(name)

    @property
    def tsv_islands(self) -> List["TSVIsland"]:
        """Clustered signal-TSV islands, in layer order."""
        return list(self._signal_tsvs.values())

    def attach_tsv_islands(self, islands: List["TSVIsland"]) -> None:
        self._signal_tsvs = {island.name: island for island in islands}

    def die_bounding_box(self, die: int) -> Optional[Rect]:
        """Extent of a die's blocks measured from the origin (None if empty)."""
        if die not in self._die_boxes:
            rects = [p.rect for p in self.placements.values() if p.die == die]
            if not rects:
                self._die_boxes[die] = None
            else:
                self._die_boxes[die] = Rect(0.0, 0.0,
                                            max(r.right for r in rects),
                                            max(r.top for r in rects))
        return self._die_boxes[die]

    def find_overlaps(self) -> List[Tuple[str, str]]:
        """Pairs of blocks on the same die whose rectangles overlap."""
        overlaps = []
        items = list(self.placements.items())
        for i, (a, pa) in enumerate(items):
            for b, pb in items[i + 1:]:
                if pa.die == pb.die and pa.rect.intersects(pb.rect):
                    overlaps.append((a, b))
        return overlaps

    def to_dict(self) -> Dict:
        return {
            block_id: {
                "die": p.die,
                "x": p.rect.x,
                "y": p.rect.y,
                "width": p.rect.width,
                "height": p.rect.height,
            }
            for block_id, p in self.placements.items()
        }


def decode_floorplan(floorplan: Floorplan,
                     islands: Optional[Mapping[str, List[str]]] = None) -> Layout:
    placements: Dict[str, Placement] = {}
    for sequence in floorplan:
        for block_id, rect in decode(sequence).items():
            placements[block_id] = Placement(sequence.die, rect)
    return Layout(len(floorplan), placements, islands)


def encode_layout(placements: Mapping[str, Placement], dies: int) -> Floorplan:
    """Floorplan reproducing an externally supplied layout.

    Raises:
        ValueError: if any die's geometry is not reachable by decode
    """
    return tuple(
        encode({b: p.rect for b, p in placements.items() if p.die == die}, die)
        for die in range(dies)
    )


def locate(floorplan: Floorplan, block_id: str) -> Tuple[int, int]:
    """(die, index) of a block in a floorplan."""
    for sequence in floorplan:
        for i, tup in enumerate(sequence.tuples):
            if tup.block_id == block_id:
                return sequence.die, i
    raise KeyError(block_id)


def _replace_sequence(floorplan: Floorplan, die: int, tuples) -> Floorplan:
    return tuple(
        seq.with_tuples(tuples) if seq.die == die else seq
        for seq in floorplan
    )


# Perturbation operators

def swap_blocks(floorplan: Floorplan, block_a: str, block_b: str) -> Optional[Floorplan]:
    """Exchange two blocks' positions (same or different die).

    Shapes travel with the blocks; direction, junctions and offset stay with
    the sequence position.
    """
    if block_a == block_b:
        return None
    die_a, idx_a = locate(floorplan, block_a)
    die_b, idx_b = locate(floorplan, block_b)
    tup_a = floorplan[die_a][idx_a]
    tup_b = floorplan[die_b][idx_b]
    new_a = tup_a.with_changes(block_id=tup_b.block_id, width=tup_b.width, height=tup_b.height)
    new_b = tup_b.with_changes(block_id=tup_a.block_id, width=tup_a.width, height=tup_a.height)

    seqs = [list(seq.tuples) for seq in floorplan]
    seqs[die_a][idx_a] = new_a
    seqs[die_b][idx_b] = new_b
    return tuple(seq.with_tuples(tuples) for seq, tuples in zip(floorplan, seqs))


def move_tuple(floorplan: Floorplan, block_id: str, position: int) -> Optional[Floorplan]:
    """Move a block to another position within its die's sequence."""
    die, idx = locate(floorplan, block_id)
    tuples = list(floorplan[die].tuples)
    if len(tuples) < 2:
        return None
    position = max(0, min(position, len(tuples) - 1))
    if position == idx:
        return None
    tup = tuples.pop(idx)
    tuples.insert(position, tup)
    return _replace_sequence(floorplan, die, tuples)


def move_to_die(floorplan: Floorplan, block_id: str, target_die: int, position: int,
                require_populated: bool = True) -> Optional[Floorplan]:
    """Move a block into another die's sequence at the given position."""
    die, idx = locate(floorplan, block_id)
    if target_die == die or not 0 <= target_die < len(floorplan):
        return None
    source = list(floorplan[die].tuples)
    if require_populated and len(source) == 1:
        return None
    tup = source.pop(idx)
    target = list(floorplan[target_die].tuples)
    target.insert(max(0, min(position, len(target))), tup)

    result = []
    for seq in floorplan:
        if seq.die == die:
            result.append(seq.with_tuples(source))
        elif seq.die == target_die:
            result.append(seq.with_tuples(target))
        else:
            result.append(seq)
    return tuple(result)


def switch_direction(floorplan: Floorplan, block_id: str) -> Optional[Floorplan]:
    die, idx = locate(floorplan, block_id)
    tuples = list(floorplan[die].tuples)
    tup = tuples[idx]
    tuples[idx] = tup.with_changes(direction=tup.direction.flipped(), offset=None)
    return _replace_sequence(floorplan, die, tuples)


def switch_junctions(floorplan: Floorplan, block_id: str,
                     rng: random.Random) -> Optional[Floorplan]:
    """Change the T-junction count by one; clears any explicit offset."""
    die, idx = locate(floorplan, block_id)
    tuples = list(floorplan[die].tuples)
    tup = tuples[idx]
    if tup.junctions == 0:
        junctions = 1
    else:
        junctions = tup.junctions + rng.choice((-1, 1))
    # More junctions than preceding blocks has no further effect
    junctions = min(junctions, idx)
    if junctions == tup.junctions and tup.offset is None:
        return None
    tuples[idx] = tup.with_changes(junctions=junctions, offset=None)
    return _replace_sequence(floorplan, die, tuples)


def reshape_block(floorplan: Floorplan, design: Design, block_id: str,
                  rng: random.Random) -> Optional[Floorplan]:
    """Rotate a hard block or pick a new aspect ratio for a soft block."""
    block = design.get_block(block_id)
    die, idx = locate(floorplan, block_id)
    tuples = list(floorplan[die].tuples)
    tup = tuples[idx]
    if block.soft:
        ar_min, ar_max = block.aspect_ratio_range()
        if ar_min == ar_max:
            return None
        width, height = block.shape_for_ratio(rng.uniform(ar_min, ar_max))
    elif block.rotatable and tup.width != tup.height:
        width, height = tup.height, tup.width
    else:
        return None
    tuples[idx] = tup.with_changes(width=width, height=height)
    return _replace_sequence(floorplan, die, tuples)


class Operator(Enum):
    """Perturbation operators available to the search driver."""
    SWAP = "swap"
    MOVE = "move"
    MOVE_DIE = "move_die"
    FLIP_DIRECTION = "flip_direction"
    FLIP_JUNCTIONS = "flip_junctions"
    RESHAPE = "reshape"


DEFAULT_OPERATOR_WEIGHTS: Dict[str, float] = {
    Operator.SWAP.value: 0.25,
    Operator.MOVE.value: 0.2,
    Operator.MOVE_DIE.value: 0.15,
    Operator.FLIP_DIRECTION.value: 0.15,
    Operator.FLIP_JUNCTIONS.value: 0.15,
    Operator.RESHAPE.value: 0.1,
}


class LayoutOrchestrator:
    """Holds the current floorplan and produces perturbed candidates."""

    def __init__(self, design: Design,
                 operator_weights: Optional[Dict[str, float]] = None,
                 diagnostics: Optional[Diagnostics] = None):
        self.design = design
        self.diagnostics = diagnostics or Diagnostics()
        self.islands = design.tsv_islands()
        self.current: Optional[Floorplan] = None

        weights = dict(DEFAULT_OPERATOR_WEIGHTS)
        if operator_weights:
            unknown = set(operator_weights) - set(weights)
            if unknown:
                raise ValueError(f"Unknown operators: {', '.join(sorted(unknown))}")
            weights.update(operator_weights)
        if design.dies < 2:
            weights[Operator.MOVE_DIE.value] = 0.0
        self._operators = [Operator(name) for name, w in weights.items() if w > 0]
        self._weights = [weights[op.value] for op in self._operators]
        if not self._operators:
            raise ValueError("At least one perturbation operator needs a positive weight")

        self._handlers: Dict[Operator, Callable[[Floorplan, random.Random], Optional[Floorplan]]] = {
            Operator.SWAP: self._op_swap,
            Operator.MOVE: self._op_move,
            Operator.MOVE_DIE: self._op_move_die,
            Operator.FLIP_DIRECTION: self._op_flip_direction,
            Operator.FLIP_JUNCTIONS: self._op_flip_junctions,
            Operator.RESHAPE: self._op_reshape,
        }

    def initial_floorplan(self, rng: Optional[random.Random] = None,
                          power_aware: bool = False) -> Floorplan:
        """Build a starting floorplan.

        Blocks with a die hint go to that die. Without an rng the remaining
        blocks are dealt round-robin in input order, all packed LEFT with no
        junctions; with an rng the die, order and direction are randomized.
        With power_aware, the highest-power unhinted blocks are dealt first
        so that they land on the lowest dies, nearest the heat sink.
        """
        dies = self.design.dies
        assignment: Dict[int, List[str]] = {d: [] for d in range(dies)}
        free = []
        for block in self.design.blocks:
            if block.die is not None:
                assignment[block.die].append(block.id)
            else:
                free.append(block)

        if power_aware:
            free.sort(key=lambda b: b.power(), reverse=True)
            per_die = -(-len(self.design.blocks) // dies)
            die = 0
            for block in free:
                while len(assignment[die]) >= per_die and die < dies - 1:
                    die += 1
                assignment[die].append(block.id)
        elif rng is not None:
            for block in free:
                assignment[rng.randrange(dies)].append(block.id)
        else:
            for i, block in enumerate(free):
                assignment[i % dies].append(block.id)

        if self.design.require_populated_dies:
            self._populate_empty_dies(assignment)

        floorplan = []
        for die in range(dies):
            ids = assignment[die]
            if rng is not None:
                rng.shuffle(ids)
            tuples = []
            for block_id in ids:
                block = self.design.get_block(block_id)
                direction = Direction.LEFT
                if rng is not None and rng.random() < 0.5:
                    direction = Direction.BOTTOM
                tuples.append(PackingTuple(block_id, block.width, block.height, direction))
            floorplan.append(PackingSequence(die, tuple(tuples)))
        return tuple(floorplan)

    @staticmethod
    def _populate_empty_dies(assignment: Dict[int, List[str]]) -> None:
        for die, ids in assignment.items():
            if ids:
                continue
            donor = max(assignment, key=lambda d: len(assignment[d]))
            if len(assignment[donor]) > 1:
                ids.append(assignment[donor].pop())

    def decode(self, floorplan: Floorplan) -> Layout:
        layout = decode_floorplan(floorplan, self.islands)
        if self.diagnostics.trace_layout:
            for sequence in floorplan:
                logger.debug("Decoded %s", sequence)
        return layout

    def commit(self, floorplan: Floorplan) -> None:
        self.current = floorplan

    def propose(self, rng: random.Random,
                floorplan: Optional[Floorplan] = None) -> Tuple[Operator, Optional[Floorplan]]:
        """Apply one randomly chosen operator to a floorplan.

        The input (default: the current floorplan) is left untouched.

        Returns:
            (operator, candidate) where candidate is None if the chosen move
            was illegal for this floorplan
        """
        base = floorplan if floorplan is not None else self.current
        if base is None:
            raise RuntimeError("No floorplan to perturb; call commit() first")
        op = rng.choices(self._operators, weights=self._weights)[0]
        candidate = self._handlers[op](base, rng)
        if self.diagnostics.trace_operations:
            logger.debug("Operator %s -> %s", op.value,
                         "rejected" if candidate is None else "candidate")
        return op, candidate

    def _random_block(self, floorplan: Floorplan, rng: random.Random) -> str:
        sequences = [seq for seq in floorplan if len(seq)]
        seq = rng.choice(sequences)
        return rng.choice(seq.tuples).block_id

    def _op_swap(self, floorplan, rng):
        if len(self.design.blocks) < 2:
            return None
        a, b = rng.sample(self.design.block_ids, 2)
        return swap_blocks(floorplan, a, b)

    def _op_move(self, floorplan, rng):
        block_id = self._random_block(floorplan, rng)
        die, _ = locate(floorplan, block_id)
        return move_tuple(floorplan, block_id, rng.randrange(len(floorplan[die])))

    def _op_move_die(self, floorplan, rng):
        block_id = self._random_block(floorplan, rng)
        die, _ = locate(floorplan, block_id)
        target = rng.choice([d for d in range(len(floorplan)) if d != die])
        return move_to_die(floorplan, block_id, target,
                           rng.randrange(len(floorplan[target]) + 1),
                           self.design.require_populated_dies)

    def _op_flip_direction(self, floorplan, rng):
        return switch_direction(floorplan, self._random_block(floorplan, rng))

    def _op_flip_junctions(self, floorplan, rng):
        return switch_junctions(floorplan, self._random_block(floorplan, rng), rng)

    def _op_reshape(self, floorplan, rng):
        return reshape_block(floorplan, self.design, self._random_block(floorplan, rng), rng)
