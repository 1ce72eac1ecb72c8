"""Shape primitives for slidebridge.

This module provides the immutable Pydantic models for every annotation
shape exchanged with the slide-hosting service. Coordinates are
floating-point image-space values in full-resolution (Level-0) pixels,
with (0, 0) at the top-left corner of the slide.

The shape set is closed: ``Shape`` is a discriminated union over the
``kind`` field, and consumers are expected to ``match`` it exhaustively.
New shape kinds are added by extending the union, never by subclassing.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Self

from pydantic import BaseModel, Field, field_validator


class Point(BaseModel, frozen=True):
    """A 2D point in image-space pixel coordinates.

    Sub-pixel precision is retained; negative values are allowed because
    annotations may be drawn partially outside the slide.

    Attributes:
        x: Horizontal position (pixels from left edge).
        y: Vertical position (pixels from top edge).
    """

    x: float = Field(..., description="X coordinate (pixels from left)")
    y: float = Field(..., description="Y coordinate (pixels from top)")

    def to_tuple(self) -> tuple[float, float]:
        """Convert to (x, y) tuple."""
        return (self.x, self.y)

    @classmethod
    def from_tuple(cls, coord: tuple[float, float]) -> Self:
        """Create Point from (x, y) tuple."""
        return cls(x=coord[0], y=coord[1])


Ring = tuple[Point, ...]


class LabelVisibility(str, Enum):
    """When the service shows an annotation label."""

    ALWAYS = "always"
    ON_HOVER = "on_hover"
    NEVER = "never"


class AnnotationLabel(BaseModel, frozen=True):
    """Free-text label attached to a shape.

    Labels are carried through the codec unchanged; nothing in this
    package interprets them.
    """

    position: Point
    font_size: int = Field(default=12, ge=0)
    text: str = ""
    visibility: LabelVisibility = LabelVisibility.ALWAYS


class _ShapeBase(BaseModel, frozen=True):
    label: AnnotationLabel | None = None


class PointSet(_ShapeBase, frozen=True):
    """A collection of bare point markers.

    A single free-standing point is not a shape; markers always travel
    as a set.
    """

    kind: Literal["points"] = "points"
    points: tuple[Point, ...] = Field(..., min_length=1)


class Rectangle(_ShapeBase, frozen=True):
    """An axis-aligned rectangle.

    Attributes:
        corner: Minimum (top-left) corner.
        size: Full width (``size.x``) and height (``size.y``).
    """

    kind: Literal["rect"] = "rect"
    corner: Point
    size: Point

    @field_validator("size")
    @classmethod
    def _validate_size(cls, value: Point) -> Point:
        if value.x < 0 or value.y < 0:
            raise ValueError("Rectangle size must be non-negative")
        return value

    @classmethod
    def from_bounds(cls, x: float, y: float, width: float, height: float) -> Self:
        """Create a Rectangle from (x, y, width, height)."""
        return cls(corner=Point(x=x, y=y), size=Point(x=width, y=height))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y)."""
        return (
            self.corner.x,
            self.corner.y,
            self.corner.x + self.size.x,
            self.corner.y + self.size.y,
        )


class Ellipse(_ShapeBase, frozen=True):
    """An axis-aligned ellipse.

    Attributes:
        center: Ellipse centre.
        radii: Half-width (``radii.x``) and half-height (``radii.y``).
    """

    kind: Literal["ellipse"] = "ellipse"
    center: Point
    radii: Point

    @field_validator("radii")
    @classmethod
    def _validate_radii(cls, value: Point) -> Point:
        if value.x < 0 or value.y < 0:
            raise ValueError("Ellipse radii must be non-negative")
        return value

    @classmethod
    def from_bounds(cls, x: float, y: float, width: float, height: float) -> Self:
        """Create an Ellipse inscribed in the (x, y, width, height) box."""
        return cls(
            center=Point(x=x + width / 2, y=y + height / 2),
            radii=Point(x=width / 2, y=height / 2),
        )

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return (min_x, min_y, max_x, max_y) of the bounding box."""
        return (
            self.center.x - self.radii.x,
            self.center.y - self.radii.y,
            self.center.x + self.radii.x,
            self.center.y + self.radii.y,
        )


class Polygon(_ShapeBase, frozen=True):
    """A closed polygon; point order is preserved exactly."""

    kind: Literal["polygon"] = "polygon"
    points: tuple[Point, ...] = Field(..., min_length=1)


class Polyline(_ShapeBase, frozen=True):
    """An open polyline; point order is preserved exactly."""

    kind: Literal["polyline"] = "polyline"
    points: tuple[Point, ...] = Field(..., min_length=1)


class CompositeRegion(_ShapeBase, frozen=True):
    """A filled region built from positive rings with negative rings (holes).

    Each negative ring is expected to lie inside some positive ring. The
    codec does not check this; see ``slidebridge.geometry.regions`` for the
    containment check and the shapely conversion.
    """

    kind: Literal["composite"] = "composite"
    positive_rings: tuple[Ring, ...] = ()
    negative_rings: tuple[Ring, ...] = ()


Shape = Annotated[
    PointSet | Rectangle | Ellipse | Polygon | Polyline | CompositeRegion,
    Field(discriminator="kind"),
]
