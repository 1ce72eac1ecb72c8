"""Unit tests for composite region geometry."""

from __future__ import annotations

import pytest
from shapely.geometry import MultiPolygon
from shapely.geometry import Polygon as ShapelyPolygon

from slidebridge.exceptions import InvalidRegionError
from slidebridge.geometry import (
    CompositeRegion,
    Ellipse,
    Point,
    PointSet,
    Polygon,
    Polyline,
    Rectangle,
    Ring,
    find_orphan_holes,
    region_from_geometry,
    region_to_geometry,
    shape_to_geometry,
    validate_region,
)


def _ring(*coords: tuple[float, float]) -> Ring:
    return tuple(Point(x=x, y=y) for x, y in coords)


SQUARE = _ring((0, 0), (100, 0), (100, 100), (0, 100))
HOLE = _ring((20, 20), (40, 20), (40, 40), (20, 40))
FAR_SQUARE = _ring((200, 200), (260, 200), (260, 260), (200, 260))
OUTSIDE_HOLE = _ring((500, 500), (510, 500), (510, 510), (500, 510))


class TestRegionToGeometry:
    """Tests for building shapely geometry from a region."""

    def test_hole_is_subtracted(self) -> None:
        """Test area equals shell minus hole."""
        region = CompositeRegion(positive_rings=(SQUARE,), negative_rings=(HOLE,))
        geometry = region_to_geometry(region)
        assert geometry.area == pytest.approx(100 * 100 - 20 * 20)

    def test_disjoint_positives_form_multipolygon(self) -> None:
        """Test separate shells stay separate."""
        region = CompositeRegion(positive_rings=(SQUARE, FAR_SQUARE))
        geometry = region_to_geometry(region)
        assert isinstance(geometry, MultiPolygon)
        assert geometry.area == pytest.approx(100 * 100 + 60 * 60)

    def test_degenerate_rings_ignored(self) -> None:
        """Test rings with fewer than three points enclose nothing."""
        region = CompositeRegion(positive_rings=(_ring((0, 0), (1, 1)),))
        assert region_to_geometry(region).is_empty

    def test_empty_region(self) -> None:
        """Test an empty region has no area."""
        assert region_to_geometry(CompositeRegion()).is_empty


class TestRegionFromGeometry:
    """Tests for converting shapely polygons back into regions."""

    def test_interiors_become_negative_rings(self) -> None:
        """Test exterior and interior rings are split."""
        polygon = ShapelyPolygon(
            [p.to_tuple() for p in SQUARE], holes=[[p.to_tuple() for p in HOLE]]
        )
        region = region_from_geometry(polygon)
        assert len(region.positive_rings) == 1
        assert len(region.negative_rings) == 1
        assert region_to_geometry(region).area == pytest.approx(polygon.area)

    def test_multipolygon(self) -> None:
        """Test each polygon of a multipolygon contributes a shell."""
        multi = MultiPolygon(
            [
                ShapelyPolygon([p.to_tuple() for p in SQUARE]),
                ShapelyPolygon([p.to_tuple() for p in FAR_SQUARE]),
            ]
        )
        assert len(region_from_geometry(multi).positive_rings) == 2

    def test_rejects_non_polygonal(self) -> None:
        """Test lines are not regions."""
        with pytest.raises(TypeError, match="Polygon or MultiPolygon"):
            region_from_geometry(shape_to_geometry(Polyline(points=SQUARE)))


class TestHoleContainment:
    """Tests for the hole containment check."""

    def test_contained_hole_is_valid(self) -> None:
        """Test a hole inside its shell passes."""
        region = CompositeRegion(positive_rings=(SQUARE,), negative_rings=(HOLE,))
        assert find_orphan_holes(region) == []
        assert validate_region(region) is region

    def test_orphan_hole_is_reported(self) -> None:
        """Test a hole outside every shell is reported by index."""
        region = CompositeRegion(
            positive_rings=(SQUARE, FAR_SQUARE),
            negative_rings=(HOLE, OUTSIDE_HOLE),
        )
        assert find_orphan_holes(region) == [1]
        with pytest.raises(InvalidRegionError) as exc_info:
            validate_region(region)
        assert exc_info.value.hole_indices == [1]

    def test_hole_in_second_shell_is_valid(self) -> None:
        """Test any shell may contain a hole."""
        inner = _ring((210, 210), (220, 210), (220, 220), (210, 220))
        region = CompositeRegion(
            positive_rings=(SQUARE, FAR_SQUARE), negative_rings=(inner,)
        )
        assert find_orphan_holes(region) == []


class TestShapeToGeometry:
    """Tests for the per-kind shapely conversion."""

    def test_rectangle(self) -> None:
        """Test a rectangle becomes its box."""
        geometry = shape_to_geometry(Rectangle.from_bounds(10, 10, 20, 30))
        assert geometry.bounds == (10, 10, 30, 40)

    def test_ellipse_bounds(self) -> None:
        """Test an ellipse keeps its bounding box."""
        geometry = shape_to_geometry(Ellipse(center=Point(x=50, y=50), radii=Point(x=20, y=10)))
        minx, miny, maxx, maxy = geometry.bounds
        assert (minx, miny, maxx, maxy) == pytest.approx((30, 40, 70, 60))

    def test_point_set(self) -> None:
        """Test a point set becomes a multipoint."""
        geometry = shape_to_geometry(PointSet(points=_ring((1, 1), (2, 2))))
        assert geometry.geom_type == "MultiPoint"

    def test_short_polygon_degrades_to_line(self) -> None:
        """Test a two-point polygon is treated as a line."""
        geometry = shape_to_geometry(Polygon(points=_ring((0, 0), (5, 5))))
        assert geometry.geom_type == "LineString"
