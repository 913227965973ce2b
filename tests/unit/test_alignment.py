"""Tests for alignment requirement evaluation."""

import pytest

from stackplace.design.geometry import Rect
from stackplace.placement.alignment import (
    AlignmentRequirement,
    AlignmentStatus,
    AlignmentType,
    AxisRequirement,
    Handling,
    evaluate,
    evaluate_all,
)


def offset(value):
    return AxisRequirement(AlignmentType.OFFSET, value)


def min_overlap(value):
    return AxisRequirement(AlignmentType.MIN, value)


def max_distance(value):
    return AxisRequirement(AlignmentType.MAX, value)


class TestOffset:
    """OFFSET requirements fix the relative lower-left position."""

    def test_fulfilled(self, build_layout):
        layout = build_layout({"a": Rect(1, 1, 2, 2), "b": Rect(4, 1, 2, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=offset(3.0), y=offset(0.0)), layout)
        assert result.fulfilled
        assert result.mismatch == 0.0
        assert result.status_i is AlignmentStatus.SUCCESS

    def test_mismatch_and_status(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(5, 0, 2, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=offset(2.0)), layout)
        assert not result.fulfilled
        assert result.x.measured == 5.0
        assert result.mismatch == pytest.approx(3.0)
        # a would have to move right, b left
        assert result.status_i is AlignmentStatus.FAIL_HOR_TOO_LEFT
        assert result.status_j is AlignmentStatus.FAIL_HOR_TOO_RIGHT

    def test_tolerance(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(0, 0.05, 2, 2)})
        loose = AlignmentRequirement("a", "b", y=offset(0.0), tolerance=0.1)
        tight = AlignmentRequirement("a", "b", y=offset(0.0))
        assert evaluate(loose, layout).fulfilled
        assert not evaluate(tight, layout).fulfilled

    def test_vertical_failure_status(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(0, 1, 2, 2)})
        result = evaluate(AlignmentRequirement("a", "b", y=offset(4.0)), layout)
        assert result.status_i is AlignmentStatus.FAIL_VERT_TOO_HIGH
        assert result.status_j is AlignmentStatus.FAIL_VERT_TOO_LOW


class TestMinOverlap:
    """MIN requirements demand a minimum overlap along the axis."""

    def test_overlap_sufficient(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 4, 2), "b": (1, Rect(1, 0, 4, 2))}, dies=2)
        result = evaluate(AlignmentRequirement("a", "b", x=min_overlap(3.0)), layout)
        assert result.fulfilled
        assert result.x.measured == 3.0

    def test_partial_overlap(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 4, 2), "b": Rect(3, 0, 4, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=min_overlap(3.0)), layout)
        assert result.mismatch == pytest.approx(2.0)

    def test_disjoint_adds_gap(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(5, 0, 2, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=min_overlap(1.0)), layout)
        # Required overlap 1 plus a gap of 3
        assert result.mismatch == pytest.approx(4.0)
        assert result.status_i is AlignmentStatus.FAIL_HOR_TOO_LEFT

    def test_negative_range_uses_absolute_value(self):
        req = AlignmentRequirement("a", "b", x=min_overlap(-2.0))
        assert req.x.value == 2.0


class TestMaxDistance:
    """MAX requirements bound the distance between centre points."""

    def test_within_range(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(3, 0, 2, 2)})
        assert evaluate(AlignmentRequirement("a", "b", x=max_distance(3.0)), layout).fulfilled

    def test_exceeds_range(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(6, 0, 4, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=max_distance(5.0)), layout)
        # Centres at 1 and 8
        assert result.x.measured == pytest.approx(7.0)
        assert result.mismatch == pytest.approx(2.0)


class TestEntities:
    """Alignment against the origin reference and TSV islands."""

    def test_origin_reference(self, build_layout):
        layout = build_layout({"a": Rect(3, 4, 2, 2)})
        req = AlignmentRequirement("RBOD", "a", x=offset(3.0), y=offset(4.0))
        assert evaluate(req, layout).fulfilled

    def test_island_bounding_box(self, build_layout):
        layout = build_layout(
            {"a": Rect(0, 0, 2, 2), "b": Rect(2, 0, 2, 2), "c": (1, Rect(0, 0, 4, 2))},
            dies=2,
            islands={"tsv0": ["a", "b"]},
        )
        req = AlignmentRequirement("tsv0", "c", x=min_overlap(4.0), y=min_overlap(2.0))
        assert evaluate(req, layout).fulfilled

    def test_unknown_entity(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 1, 1)})
        with pytest.raises(KeyError):
            evaluate(AlignmentRequirement("a", "missing", x=offset(0.0)), layout)


class TestRequirement:
    """Tests for requirement helpers."""

    def test_undefined_axes_always_fulfilled(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 1, 1), "b": Rect(7, 9, 1, 1)})
        assert evaluate(AlignmentRequirement("a", "b"), layout).fulfilled

    def test_cost_weighted_by_signals(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(3, 0, 2, 2)})
        result = evaluate(AlignmentRequirement("a", "b", x=offset(1.0), signals=8), layout)
        assert result.cost == pytest.approx(16.0)

    @pytest.mark.parametrize("x,y,expected", [
        (offset(0.0), offset(0.0), True),
        (offset(1.0), offset(0.0), False),
        (min_overlap(2.0), min_overlap(2.0), True),
        (min_overlap(2.0), AxisRequirement(), False),
        (max_distance(1.0), max_distance(1.0), False),
    ])
    def test_vertical_bus(self, x, y, expected):
        assert AlignmentRequirement("a", "b", x=x, y=y).is_vertical_bus() is expected

    def test_evaluation_does_not_modify_requirement(self, build_layout):
        layout = build_layout({"a": Rect(0, 0, 2, 2), "b": Rect(5, 0, 2, 2)})
        req = AlignmentRequirement("a", "b", x=offset(0.0), handling=Handling.STRICT)
        before = (req.x, req.y, req.handling)
        evaluate_all([req, req], layout)
        assert (req.x, req.y, req.handling) == before
