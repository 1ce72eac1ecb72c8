"""Geometry module for slidebridge.

This package provides the closed shape model exchanged with the slide
service and the boolean geometry used for composite (brush) regions.

Key Components:
    - Primitives: Point, Rectangle, Ellipse, Polygon, Polyline, PointSet,
      CompositeRegion and the ``Shape`` union discriminated on ``kind``
    - Regions: shapely conversion, hole containment checks

Example:
    from slidebridge.geometry import CompositeRegion, Point, validate_region

    square = tuple(Point(x=x, y=y) for x, y in [(0, 0), (10, 0), (10, 10), (0, 10)])
    hole = tuple(Point(x=x, y=y) for x, y in [(2, 2), (4, 2), (4, 4), (2, 4)])
    region = validate_region(
        CompositeRegion(positive_rings=(square,), negative_rings=(hole,))
    )
"""

from slidebridge.geometry.primitives import (
    AnnotationLabel,
    CompositeRegion,
    Ellipse,
    LabelVisibility,
    Point,
    PointSet,
    Polygon,
    Polyline,
    Rectangle,
    Ring,
    Shape,
)
from slidebridge.geometry.regions import (
    find_orphan_holes,
    region_from_geometry,
    region_to_geometry,
    shape_to_geometry,
    validate_region,
)

__all__ = [
    "AnnotationLabel",
    "CompositeRegion",
    "Ellipse",
    "LabelVisibility",
    "Point",
    "PointSet",
    "Polygon",
    "Polyline",
    "Rectangle",
    "Ring",
    "Shape",
    "find_orphan_holes",
    "region_from_geometry",
    "region_to_geometry",
    "shape_to_geometry",
    "validate_region",
]
