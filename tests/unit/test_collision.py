"""
Tests for beam/obstacle intersection helpers.
"""

from beamplace.geometry.collision import (
    box_inside,
    boxes_overlap,
    line_intersects_box,
    line_intersects_polygon,
    point_in_polygon,
    segments_intersect,
)

SQUARE = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
DIAMOND = [(5.0, 0.0), (10.0, 5.0), (5.0, 10.0), (0.0, 5.0)]


class TestBoxes:

    def test_overlap_and_touching(self):
        assert boxes_overlap((0, 0, 10, 10), (5, 5, 15, 15))
        assert boxes_overlap((0, 0, 10, 10), (10, 0, 20, 10))
        assert not boxes_overlap((0, 0, 10, 10), (11, 0, 20, 10))

    def test_box_inside(self):
        assert box_inside((1, 1, 9, 9), (0, 0, 10, 10))
        assert box_inside((0, 0, 10, 10), (0, 0, 10, 10))
        assert not box_inside((-1, 1, 9, 9), (0, 0, 10, 10))


class TestLineBox:
    """Liang-Barsky clipping."""

    def test_crossing_line(self):
        assert line_intersects_box((-5, 5), (15, 5), (0, 0, 10, 10))

    def test_diagonal_miss(self):
        assert not line_intersects_box((-10, 0), (0, -10), (0, 0, 10, 10))

    def test_line_stops_short(self):
        assert not line_intersects_box((-20, 5), (-1, 5), (0, 0, 10, 10))

    def test_line_entirely_inside(self):
        assert line_intersects_box((2, 2), (8, 8), (0, 0, 10, 10))

    def test_vertical_line_in_slab(self):
        assert line_intersects_box((5, -5), (5, 15), (0, 0, 10, 10))

    def test_vertical_line_outside_slab(self):
        assert not line_intersects_box((12, -5), (12, 15), (0, 0, 10, 10))

    def test_horizontal_line_outside_slab(self):
        assert not line_intersects_box((-5, 20), (15, 20), (0, 0, 10, 10))


class TestSegments:

    def test_crossing(self):
        assert segments_intersect((0, 0), (10, 10), (0, 10), (10, 0))

    def test_parallel(self):
        assert not segments_intersect((0, 0), (10, 0), (0, 1), (10, 1))

    def test_collinear_overlap(self):
        assert segments_intersect((0, 0), (10, 0), (5, 0), (15, 0))

    def test_collinear_disjoint(self):
        assert not segments_intersect((0, 0), (4, 0), (5, 0), (15, 0))

    def test_touching_endpoint(self):
        assert segments_intersect((0, 0), (5, 5), (5, 5), (10, 0))


class TestPolygon:

    def test_point_in_polygon(self):
        assert point_in_polygon((5, 5), SQUARE)
        assert not point_in_polygon((15, 5), SQUARE)
        assert point_in_polygon((5, 5), DIAMOND)
        assert not point_in_polygon((1, 1), DIAMOND)

    def test_line_through_polygon(self):
        assert line_intersects_polygon((-5, 5), (15, 5), DIAMOND)

    def test_line_misses_rotated_polygon_inside_its_bbox(self):
        # Corner of the bounding box, outside the diamond itself
        assert not line_intersects_polygon((0, 1), (1, 0), DIAMOND)

    def test_line_fully_enclosed(self):
        assert line_intersects_polygon((4, 4), (6, 6), SQUARE)
