"""Boolean geometry for composite (brush) regions.

A ``CompositeRegion`` is stored as flat lists of positive and negative
rings. This module turns that representation into a shapely geometry
(union of positives minus union of negatives), checks that every hole
sits inside some positive ring, and converts shapely polygons with
interior rings back into a ``CompositeRegion``.

The codec never calls the containment check; consumers that rasterize
or render a decoded region should.
"""

from __future__ import annotations

from collections.abc import Iterable

from shapely import affinity, unary_union
from shapely.geometry import LineString, MultiPoint, MultiPolygon, box
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry

from slidebridge.exceptions import InvalidRegionError
from slidebridge.geometry.primitives import (
    CompositeRegion,
    Ellipse,
    Point,
    PointSet,
    Polygon,
    Polyline,
    Rectangle,
    Ring,
    Shape,
)

# A ring needs three distinct vertices to enclose any area.
_MIN_RING_POINTS = 3


def _ring_polygon(ring: Ring) -> ShapelyPolygon | None:
    if len(ring) < _MIN_RING_POINTS:
        return None
    polygon = ShapelyPolygon([p.to_tuple() for p in ring])
    if not polygon.is_valid:
        polygon = polygon.buffer(0)
    return polygon


def _union(rings: Iterable[Ring]) -> BaseGeometry:
    polygons = [p for p in (_ring_polygon(r) for r in rings) if p is not None]
    return unary_union(polygons)


def region_to_geometry(region: CompositeRegion) -> BaseGeometry:
    """Build the filled area of a composite region.

    Rings with fewer than three points enclose nothing and are ignored.

    Args:
        region: Composite region to convert.

    Returns:
        A shapely Polygon, MultiPolygon or empty geometry.
    """
    filled = _union(region.positive_rings)
    if not region.negative_rings:
        return filled
    return filled.difference(_union(region.negative_rings))


def _coords_to_ring(coords: Iterable[tuple[float, ...]]) -> Ring:
    return tuple(Point(x=c[0], y=c[1]) for c in coords)


def region_from_geometry(geometry: BaseGeometry) -> CompositeRegion:
    """Convert a shapely polygon (or multipolygon) into a composite region.

    Exterior rings become positive rings and interior rings become
    negative rings. Ring coordinates keep shapely's closing vertex.

    Raises:
        TypeError: If the geometry is not polygonal.
    """
    if isinstance(geometry, ShapelyPolygon):
        polygons = [geometry]
    elif isinstance(geometry, MultiPolygon):
        polygons = list(geometry.geoms)
    else:
        raise TypeError(
            f"Expected Polygon or MultiPolygon, got {geometry.geom_type}"
        )

    positives: list[Ring] = []
    negatives: list[Ring] = []
    for polygon in polygons:
        if polygon.is_empty:
            continue
        positives.append(_coords_to_ring(polygon.exterior.coords))
        negatives.extend(_coords_to_ring(ring.coords) for ring in polygon.interiors)
    return CompositeRegion(positive_rings=tuple(positives), negative_rings=tuple(negatives))


def find_orphan_holes(region: CompositeRegion) -> list[int]:
    """Return indices of negative rings not inside any positive ring."""
    shells = [_ring_polygon(r) for r in region.positive_rings]
    orphans: list[int] = []
    for index, ring in enumerate(region.negative_rings):
        hole = _ring_polygon(ring)
        if hole is None:
            orphans.append(index)
            continue
        if not any(shell is not None and shell.covers(hole) for shell in shells):
            orphans.append(index)
    return orphans


def validate_region(region: CompositeRegion) -> CompositeRegion:
    """Check that every hole of a composite region lies inside a shell.

    Returns:
        The region unchanged, for chaining.

    Raises:
        InvalidRegionError: If any negative ring is outside every positive ring.
    """
    orphans = find_orphan_holes(region)
    if orphans:
        raise InvalidRegionError(
            "Negative rings are not contained in any positive ring",
            hole_indices=orphans,
        )
    return region


def _line_or_point(points: tuple[Point, ...]) -> BaseGeometry:
    coords = [p.to_tuple() for p in points]
    if len(coords) == 1:
        return ShapelyPoint(coords[0])
    return LineString(coords)


def shape_to_geometry(shape: Shape) -> BaseGeometry:
    """Convert any shape to a shapely geometry for spatial tests.

    Ellipses are approximated by a scaled buffered circle. Polygons with
    fewer than three points degrade to a line or point.
    """
    match shape:
        case Rectangle():
            return box(*shape.bounds)
        case Ellipse(center=center, radii=radii):
            circle = ShapelyPoint(center.x, center.y).buffer(1.0)
            return affinity.scale(circle, radii.x, radii.y)
        case PointSet(points=points):
            return MultiPoint([p.to_tuple() for p in points])
        case Polygon(points=points):
            polygon = _ring_polygon(points)
            return polygon if polygon is not None else _line_or_point(points)
        case Polyline(points=points):
            return _line_or_point(points)
        case CompositeRegion():
            return region_to_geometry(shape)
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")
