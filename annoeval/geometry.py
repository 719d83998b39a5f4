"""
Geometry kernel.

Box and polygon IoU, polygon area and nearest-vertex distances. Polygon
clipping goes through the ClipPolygons protocol so any implementation of
"rings in, rings out" can be swapped in; ShapelyClipper is the default.

A polygon pair that cannot be clipped scores IoU 0 instead of aborting the
evaluation.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Protocol

import numpy as np
from scipy.spatial import cKDTree
from shapely.errors import ShapelyError
from shapely.geometry import GeometryCollection, MultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry

from annoeval.exceptions import GeometryFailure
from annoeval.models import BBox, Point

logger = logging.getLogger(__name__)

Ring = Sequence[Point]
# Output of a clipping step: polygons, each a list of rings with the outer ring first.
ClippedPolygons = list[list[list[Point]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Boxes
# ═══════════════════════════════════════════════════════════════════════════════


def bbox_iou(a: BBox, b: BBox) -> float:
    """
    Intersection over union of two axis-aligned boxes.

    Returns 0.0 when the boxes do not overlap or the union area is 0.
    """
    x_left = max(a.x, b.x)
    y_top = max(a.y, b.y)
    x_right = min(a.x2, b.x2)
    y_bottom = min(a.y2, b.y2)

    if x_right < x_left or y_bottom < y_top:
        return 0.0

    intersection = (x_right - x_left) * (y_bottom - y_top)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


# ═══════════════════════════════════════════════════════════════════════════════
# Polygons
# ═══════════════════════════════════════════════════════════════════════════════


def polygon_area(points: Ring) -> float:
    """Shoelace area; either winding order gives a positive result."""
    if len(points) < 3:
        return 0.0
    arr = np.asarray(points, dtype=np.float64)
    x = arr[:, 0]
    y = arr[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) * 0.5)


class ClipPolygons(Protocol):
    """Polygon Boolean operations on single rings."""

    def intersection(self, a: Ring, b: Ring) -> ClippedPolygons: ...

    def union(self, a: Ring, b: Ring) -> ClippedPolygons: ...


class ShapelyClipper:
    """
    ClipPolygons backed by shapely (GEOS).

    Invalid input rings (self-intersecting, collinear, fewer than three
    vertices) raise GeometryFailure rather than being repaired.
    """

    def intersection(self, a: Ring, b: Ring) -> ClippedPolygons:
        return self._clip(a, b, "intersection")

    def union(self, a: Ring, b: Ring) -> ClippedPolygons:
        return self._clip(a, b, "union")

    def _clip(self, a: Ring, b: Ring, operation: str) -> ClippedPolygons:
        first = self._to_shape(a)
        second = self._to_shape(b)
        try:
            result = getattr(first, operation)(second)
        except ShapelyError as e:
            raise GeometryFailure(f"polygon {operation} failed: {e}") from e
        return _to_rings(result)

    @staticmethod
    def _to_shape(ring: Ring) -> ShapelyPolygon:
        try:
            shape = ShapelyPolygon(ring)
        except (ShapelyError, ValueError) as e:
            raise GeometryFailure(f"cannot build polygon from {len(ring)} points: {e}") from e
        if not shape.is_valid:
            raise GeometryFailure("polygon is not valid (degenerate or self-intersecting)")
        return shape


def _to_rings(geometry: BaseGeometry) -> ClippedPolygons:
    if geometry.is_empty:
        return []
    if isinstance(geometry, ShapelyPolygon):
        parts = [geometry]
    elif isinstance(geometry, (MultiPolygon, GeometryCollection)):
        parts = [g for g in geometry.geoms if isinstance(g, ShapelyPolygon) and not g.is_empty]
    else:
        # Points and lines have no area
        return []
    return [
        [list(p.exterior.coords)[:-1]] + [list(hole.coords)[:-1] for hole in p.interiors]
        for p in parts
    ]


def clipped_area(polygons: ClippedPolygons) -> float:
    """Total area of clipping output: each outer ring minus its holes."""
    total = 0.0
    for rings in polygons:
        if not rings:
            continue
        total += polygon_area(rings[0]) - sum(polygon_area(hole) for hole in rings[1:])
    return total


_default_clipper = ShapelyClipper()


def polygon_iou(p: Ring, q: Ring, clipper: ClipPolygons | None = None) -> float:
    """
    Intersection over union of two polygons via Boolean clipping.

    Returns 0.0 when either ring has fewer than three points, the
    intersection is empty, the union has no area, or clipping fails.
    """
    if len(p) < 3 or len(q) < 3:
        return 0.0
    clipper = clipper or _default_clipper
    try:
        intersection = clipper.intersection(p, q)
        if not intersection:
            return 0.0
        inter_area = clipped_area(intersection)
        union_area = clipped_area(clipper.union(p, q))
    except GeometryFailure as e:
        logger.debug("Treating polygon pair as non-overlapping: %s", e)
        return 0.0
    if union_area <= 0:
        return 0.0
    return min(1.0, max(0.0, inter_area / union_area))


# ═══════════════════════════════════════════════════════════════════════════════
# Vertex distances
# ═══════════════════════════════════════════════════════════════════════════════


class VertexIndex:
    """
    k-d tree over a polygon's vertices.

    Lookups are bounded by `search_radius`; a point with no vertex inside
    the radius gets no candidate from the index.
    """

    def __init__(self, points: Ring, search_radius: float = math.inf) -> None:
        self.points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        self.search_radius = search_radius
        self._tree = cKDTree(self.points) if len(self.points) else None

    def __len__(self) -> int:
        return len(self.points)

    def nearest(self, point: Point) -> float | None:
        """Distance to the nearest vertex within the search radius, or None."""
        if self._tree is None:
            return None
        distance, idx = self._tree.query(point, k=1, distance_upper_bound=self.search_radius)
        if idx >= len(self.points) or not math.isfinite(distance):
            return None
        return float(distance)

    def exhaustive(self, point: Point) -> float:
        """Distance to the nearest vertex by scanning every vertex."""
        if not len(self.points):
            return math.inf
        deltas = self.points - np.asarray(point, dtype=np.float64)
        return float(np.sqrt(np.min(np.einsum("ij,ij->i", deltas, deltas))))


def nearest_boundary_distance(
    point: Point,
    reference: Ring,
    index: VertexIndex | None = None,
) -> float:
    """
    Euclidean distance from `point` to the closest vertex of `reference`.

    Approximates point-to-boundary distance. Uses the spatial index and
    falls back to an exhaustive scan when the index yields no candidate.
    Returns inf for an empty reference.
    """
    if index is None:
        index = VertexIndex(reference)
    distance = index.nearest(point)
    if distance is None:
        distance = index.exhaustive(point)
    return distance


def vertex_deviations(
    reference: Ring,
    points: Ring,
    search_radius: float = math.inf,
) -> list[float]:
    """Distance from every vertex of `points` to its nearest `reference` vertex."""
    if len(reference) == 0 or len(points) == 0:
        return []
    index = VertexIndex(reference, search_radius=search_radius)
    return [nearest_boundary_distance(p, reference, index) for p in points]
