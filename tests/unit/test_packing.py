"""Tests for the packing-sequence representation."""

import random

import pytest

from stackplace.design.geometry import Rect
from stackplace.placement.packing import (
    Contour,
    Direction,
    PackingSequence,
    PackingTuple,
    decode,
    encode,
)


def seq(*tuples, die=0):
    return PackingSequence(die, tuple(tuples))


def random_sequence(rng: random.Random, count: int) -> PackingSequence:
    tuples = []
    for i in range(count):
        tuples.append(PackingTuple(
            f"b{i}",
            rng.choice([1.0, 2.0, 3.5]),
            rng.choice([1.0, 2.5, 4.0]),
            rng.choice(list(Direction)),
            rng.randrange(3),
            rng.choice([None, None, None, rng.uniform(0, 6)]),
        ))
    return seq(*tuples)


class TestContour:
    """Tests for the skyline contour."""

    def test_empty_contour_is_zero(self):
        assert Contour().query(0, 10) == 0.0

    def test_raise_and_query(self):
        contour = Contour()
        contour.raise_to(0, 2, 5)
        assert contour.query(0, 2) == 5
        assert contour.query(1, 3) == 5
        # Half-open: the segment ending at 2 does not cover [2, 3)
        assert contour.query(2, 3) == 0

    def test_never_lowers(self):
        contour = Contour()
        contour.raise_to(0, 4, 5)
        contour.raise_to(1, 2, 3)
        assert contour.query(1, 2) == 5

    def test_equal_neighbours_merge(self):
        contour = Contour()
        contour.raise_to(0, 2, 5)
        contour.raise_to(2, 4, 5)
        assert len(contour) == 3
        assert contour.query(0, 4) == 5
        assert contour.query(4, 5) == 0


class TestDecode:
    """Tests for decoding sequences into rectangles."""

    def test_left_packing_places_side_by_side(self):
        rects = decode(seq(PackingTuple("a", 2, 2), PackingTuple("b", 3, 2)))
        assert rects["a"] == Rect(0, 0, 2, 2)
        assert rects["b"] == Rect(2, 0, 3, 2)

    def test_bottom_packing_stacks(self):
        rects = decode(seq(
            PackingTuple("a", 2, 2),
            PackingTuple("b", 3, 2, Direction.BOTTOM),
        ))
        assert rects["b"] == Rect(0, 2, 3, 2)

    def test_junctions_cover_several_blocks(self):
        rects = decode(seq(
            PackingTuple("a", 2, 2),
            PackingTuple("b", 2, 2, Direction.BOTTOM),
            PackingTuple("c", 1, 4, Direction.LEFT, junctions=1),
        ))
        assert rects["b"] == Rect(0, 2, 2, 2)
        assert rects["c"] == Rect(2, 0, 1, 4)

    def test_offset_pins_coordinate(self):
        rects = decode(seq(
            PackingTuple("a", 2, 2),
            PackingTuple("b", 1, 1, Direction.LEFT, offset=5.0),
        ))
        # Nothing occupies y in [5, 6), so b slides to x = 0
        assert rects["b"] == Rect(0, 5, 1, 1)

    def test_negative_offset_clamped(self):
        rects = decode(seq(PackingTuple("a", 2, 2, Direction.BOTTOM, offset=-3.0)))
        assert rects["a"] == Rect(0, 0, 2, 2)

    def test_empty_sequence(self):
        assert decode(seq()) == {}

    def test_deterministic(self):
        s = random_sequence(random.Random(4), 12)
        assert decode(s) == decode(s)

    @pytest.mark.parametrize("seed", range(10))
    def test_random_sequences_never_overlap(self, seed):
        rng = random.Random(seed)
        rects = decode(random_sequence(rng, 15))
        assert len(rects) == 15
        items = list(rects.items())
        for i, (a, ra) in enumerate(items):
            assert ra.x >= 0 and ra.y >= 0
            for b, rb in items[i + 1:]:
                assert not ra.intersects(rb), f"{a} overlaps {b}"


class TestEncode:
    """Tests for encoding geometry back into a sequence."""

    def test_reproduces_geometry(self):
        rects = {
            "a": Rect(0, 0, 2, 2),
            "b": Rect(2, 0, 3, 2),
            "c": Rect(0, 2, 3, 2),
        }
        sequence = encode(rects, die=1)
        assert sequence.die == 1
        assert decode(sequence) == rects

    def test_orders_dependencies_first(self):
        rects = {
            "top": Rect(0, 2, 2, 2),
            "bottom": Rect(0, 0, 2, 2),
        }
        sequence = encode(rects)
        assert sequence.block_ids == ["bottom", "top"]
        assert decode(sequence) == rects

    def test_bottom_compacted_block(self):
        rects = {
            "a": Rect(0, 0, 2, 4),
            "b": Rect(3, 0, 1, 1),
        }
        sequence = encode(rects)
        assert sequence[sequence.index_of("b")].direction is Direction.BOTTOM
        assert decode(sequence) == rects

    @pytest.mark.parametrize("seed", range(25))
    def test_reencodes_decoded_sequences(self, seed):
        # Random directions, junction counts and offsets
        rects = decode(random_sequence(random.Random(seed), 15))
        assert decode(encode(rects)) == rects

    def test_rejects_overlap(self):
        with pytest.raises(ValueError, match="overlap"):
            encode({"a": Rect(0, 0, 2, 2), "b": Rect(1, 1, 2, 2)})

    def test_rejects_negative_coordinates(self):
        with pytest.raises(ValueError, match="negative"):
            encode({"a": Rect(-1, 0, 2, 2)})

    def test_rejects_floating_block(self):
        with pytest.raises(ValueError, match="not compacted"):
            encode({"a": Rect(0, 0, 1, 1), "b": Rect(3, 3, 1, 1)})
