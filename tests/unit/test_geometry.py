"""Tests for geometry primitives."""

import pytest

from stackplace.design.geometry import Point, Rect, bounding_box, overlap_1d


class TestRect:
    """Tests for Rect."""

    def test_edges_and_center(self):
        r = Rect(1.0, 2.0, 4.0, 6.0)
        assert r.right == 5.0
        assert r.top == 8.0
        assert r.area == 24.0
        assert r.center == Point(3.0, 5.0)
        assert r.ur == Point(5.0, 8.0)

    def test_from_corners(self):
        r = Rect.from_corners(Point(1, 1), Point(4, 3))
        assert (r.width, r.height) == (3, 2)

    def test_abutting_rects_do_not_intersect(self):
        a = Rect(0, 0, 2, 2)
        b = Rect(2, 0, 2, 2)
        assert not a.intersects(b)
        assert a.intersection(b) is None

    def test_intersection(self):
        a = Rect(0, 0, 4, 4)
        b = Rect(2, 1, 4, 4)
        assert a.intersection(b) == Rect(2, 1, 2, 3)

    def test_left_of_with_overlap_requirement(self):
        a = Rect(0, 0, 2, 2)
        b = Rect(3, 5, 2, 2)
        assert a.left_of(b)
        assert not a.left_of(b, require_vertical_overlap=True)
        assert a.left_of(Rect(2, 1, 1, 1), require_vertical_overlap=True)

    def test_below(self):
        a = Rect(0, 0, 2, 2)
        assert a.below(Rect(1, 2, 2, 2), require_horizontal_overlap=True)
        assert not a.below(Rect(1, 1, 2, 2))

    def test_rotated_keeps_corner(self):
        assert Rect(1, 1, 2, 5).rotated() == Rect(1, 1, 5, 2)

    def test_zero_height_aspect_ratio(self):
        assert Rect(0, 0, 3, 0).aspect_ratio == 0.0

    def test_contains(self):
        outer = Rect(0, 0, 10, 10)
        assert outer.contains(Rect(0, 0, 10, 10))
        assert not outer.contains(Rect(5, 5, 6, 1))


class TestHelpers:
    """Tests for module-level helpers."""

    def test_bounding_box(self):
        box = bounding_box([Rect(1, 1, 1, 1), Rect(3, 0, 2, 4)])
        assert box == Rect(1, 0, 4, 4)

    def test_bounding_box_empty(self):
        assert bounding_box([]) is None

    @pytest.mark.parametrize("a,b,expected", [
        ((0, 4), (2, 6), 2),
        ((0, 2), (2, 4), 0),
        ((0, 1), (5, 6), 0),
        ((0, 10), (2, 3), 1),
    ])
    def test_overlap_1d(self, a, b, expected):
        assert overlap_1d(a[0], a[1], b[0], b[1]) == expected
