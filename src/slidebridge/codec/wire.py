"""Pydantic models for the annotation wire format.

These models describe one entry of the JSON array exchanged with the
slide service. They are only used on the decode side, to validate the
structure of recognized entries; encoding writes plain dicts so that key
order and integer coordinates are exactly what the service expects.

Entry shapes::

    {"type": "rect", "corner": {"x", "y"}, "size": {"x", "y"}}
    {"type": "ellipse", "center": {"x", "y"}, "size": {"x", "y"}}   # radii
    {"type": "polygon" | "polyline", "points": [{"x", "y"}, ...]}
    {"type": "brush", "positivePolygons": [[...], ...], "negativePolygons": [...]}
    {"x", "y"}                                                     # legacy point list

Any entry may also carry ``label``, ``color`` and ``name`` keys.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

WIRE_TYPE_RECT = "rect"
WIRE_TYPE_ELLIPSE = "ellipse"
WIRE_TYPE_POLYGON = "polygon"
WIRE_TYPE_POLYLINE = "polyline"
WIRE_TYPE_BRUSH = "brush"


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WirePoint(_WireModel):
    """A coordinate pair as sent by the service."""

    x: float
    y: float


class WireLabel(_WireModel):
    """Label block attached to an entry."""

    x: float = 0
    y: float = 0
    font_size: int = Field(default=12, alias="fontSize")
    label: str = ""
    when_to_show: str | None = Field(default=None, alias="whenToShow")


class _WireEntry(_WireModel):
    label: WireLabel | None = None
    color: str | None = None
    name: str | None = None


class RectEntry(_WireEntry):
    type: Literal["rect"] = WIRE_TYPE_RECT
    corner: WirePoint
    size: WirePoint


class EllipseEntry(_WireEntry):
    type: Literal["ellipse"] = WIRE_TYPE_ELLIPSE
    center: WirePoint
    size: WirePoint


class PolygonEntry(_WireEntry):
    type: Literal["polygon"] = WIRE_TYPE_POLYGON
    points: list[WirePoint] = Field(..., min_length=1)


class PolylineEntry(_WireEntry):
    type: Literal["polyline"] = WIRE_TYPE_POLYLINE
    points: list[WirePoint] = Field(..., min_length=1)


class BrushEntry(_WireEntry):
    type: Literal["brush"] = WIRE_TYPE_BRUSH
    positive_polygons: list[list[WirePoint]] = Field(
        default_factory=list, alias="positivePolygons"
    )
    negative_polygons: list[list[WirePoint]] = Field(
        default_factory=list, alias="negativePolygons"
    )


WireEntry = RectEntry | EllipseEntry | PolygonEntry | PolylineEntry | BrushEntry

ENTRY_MODELS: dict[str, type[WireEntry]] = {
    WIRE_TYPE_RECT: RectEntry,
    WIRE_TYPE_ELLIPSE: EllipseEntry,
    WIRE_TYPE_POLYGON: PolygonEntry,
    WIRE_TYPE_POLYLINE: PolylineEntry,
    WIRE_TYPE_BRUSH: BrushEntry,
}
