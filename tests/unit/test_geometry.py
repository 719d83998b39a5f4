"""Tests for the geometry kernel."""

import math

import pytest

from annoeval.exceptions import GeometryFailure
from annoeval.geometry import (
    ShapelyClipper,
    VertexIndex,
    bbox_iou,
    clipped_area,
    nearest_boundary_distance,
    polygon_area,
    polygon_iou,
    vertex_deviations,
)
from annoeval.models import BBox

SQUARE = [(0, 0), (10, 0), (10, 10), (0, 10)]
BOWTIE = [(0, 0), (10, 10), (10, 0), (0, 10)]


def shifted(points, dx=0.0, dy=0.0):
    return [(x + dx, y + dy) for x, y in points]


class FailingClipper:
    """Clipper that rejects every input."""

    def intersection(self, a, b):
        raise GeometryFailure("boom")

    def union(self, a, b):
        raise GeometryFailure("boom")


class TestBBoxIoU:
    """Tests for bbox_iou."""

    def test_identical(self):
        assert bbox_iou(BBox(0, 0, 10, 10), BBox(0, 0, 10, 10)) == 1.0

    def test_disjoint(self):
        assert bbox_iou(BBox(0, 0, 10, 10), BBox(20, 20, 10, 10)) == 0.0

    def test_half_overlap(self):
        # intersection 50, union 150
        assert bbox_iou(BBox(0, 0, 10, 10), BBox(5, 0, 10, 10)) == pytest.approx(1 / 3)

    def test_touching_edges(self):
        assert bbox_iou(BBox(0, 0, 10, 10), BBox(10, 0, 10, 10)) == 0.0

    def test_zero_area(self):
        assert bbox_iou(BBox(0, 0, 0, 0), BBox(0, 0, 0, 0)) == 0.0

    @pytest.mark.parametrize(
        "a, b",
        [
            (BBox(0, 0, 10, 10), BBox(3, 4, 10, 10)),
            (BBox(0, 0, 50, 20), BBox(10, 5, 5, 5)),
            (BBox(1, 1, 2, 2), BBox(0, 0, 100, 100)),
        ],
    )
    def test_symmetric_and_bounded(self, a, b):
        iou = bbox_iou(a, b)
        assert iou == pytest.approx(bbox_iou(b, a))
        assert 0.0 <= iou <= 1.0


class TestPolygonArea:
    def test_square(self):
        assert polygon_area(SQUARE) == 100.0

    def test_winding_independent(self):
        assert polygon_area(list(reversed(SQUARE))) == 100.0

    def test_triangle(self):
        assert polygon_area([(0, 0), (4, 0), (0, 3)]) == 6.0

    def test_degenerate(self):
        assert polygon_area([(0, 0), (1, 1)]) == 0.0


class TestClipping:
    """Tests for the shapely-backed clipper."""

    def test_intersection_rings(self):
        rings = ShapelyClipper().intersection(SQUARE, shifted(SQUARE, dx=5))
        assert len(rings) == 1
        assert clipped_area(rings) == pytest.approx(50.0)

    def test_disjoint_intersection_is_empty(self):
        assert ShapelyClipper().intersection(SQUARE, shifted(SQUARE, dx=50)) == []

    def test_union_of_disjoint_has_two_parts(self):
        rings = ShapelyClipper().union(SQUARE, shifted(SQUARE, dx=50))
        assert len(rings) == 2
        assert clipped_area(rings) == pytest.approx(200.0)

    def test_invalid_ring_raises(self):
        with pytest.raises(GeometryFailure):
            ShapelyClipper().intersection(BOWTIE, SQUARE)

    def test_clipped_area_subtracts_holes(self):
        outer = [(0, 0), (10, 0), (10, 10), (0, 10)]
        hole = [(2, 2), (4, 2), (4, 4), (2, 4)]
        assert clipped_area([[outer, hole]]) == 96.0


class TestPolygonIoU:
    """Tests for polygon_iou."""

    def test_identical(self):
        assert polygon_iou(SQUARE, SQUARE) == pytest.approx(1.0)

    def test_half_overlap(self):
        assert polygon_iou(SQUARE, shifted(SQUARE, dx=5)) == pytest.approx(1 / 3)

    def test_contained(self):
        inner = [(0, 0), (5, 0), (5, 5), (0, 5)]
        assert polygon_iou(SQUARE, inner) == pytest.approx(0.25)

    def test_disjoint(self):
        assert polygon_iou(SQUARE, shifted(SQUARE, dx=100)) == 0.0

    def test_symmetric(self):
        triangle = [(2, -3), (14, 6), (-1, 8)]
        assert polygon_iou(SQUARE, triangle) == pytest.approx(polygon_iou(triangle, SQUARE))

    def test_too_few_points(self):
        assert polygon_iou(SQUARE, [(0, 0), (1, 1)]) == 0.0

    def test_invalid_geometry_scores_zero(self):
        assert polygon_iou(BOWTIE, SQUARE) == 0.0

    def test_clipper_failure_scores_zero(self):
        assert polygon_iou(SQUARE, SQUARE, clipper=FailingClipper()) == 0.0


class TestVertexDistances:
    """Tests for nearest-vertex lookups."""

    def test_nearest_within_radius(self):
        index = VertexIndex(SQUARE, search_radius=5)
        assert index.nearest((1, 0)) == pytest.approx(1.0)

    def test_nearest_outside_radius(self):
        index = VertexIndex(SQUARE, search_radius=2)
        assert index.nearest((5, 5)) is None

    def test_exhaustive(self):
        assert VertexIndex(SQUARE).exhaustive((13, 14)) == pytest.approx(5.0)

    def test_falls_back_to_exhaustive_scan(self):
        index = VertexIndex(SQUARE, search_radius=1)
        assert nearest_boundary_distance((13, 14), SQUARE, index) == pytest.approx(5.0)

    def test_empty_reference(self):
        assert nearest_boundary_distance((0, 0), []) == math.inf

    def test_vertex_deviations(self):
        deviations = vertex_deviations(SQUARE, shifted(SQUARE, dx=3), search_radius=10)
        assert deviations == pytest.approx([3.0, 3.0, 3.0, 3.0])

    def test_vertex_deviations_empty(self):
        assert vertex_deviations([], SQUARE) == []
        assert vertex_deviations(SQUARE, []) == []
