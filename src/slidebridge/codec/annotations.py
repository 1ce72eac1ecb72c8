"""Encode and decode annotation shapes to and from the wire JSON array.

Wire contract notes:

- Coordinates are truncated toward zero to integers on encode. The service
  does not accept fractional pixels, so callers lose sub-pixel precision.
- Point markers have no wire type of their own. Each point of a
  ``PointSet`` is sent as an ``ellipse`` entry with radii
  ``POINT_MARKER_RADIUS`` x ``POINT_MARKER_RADIUS`` (10 x 10).
- Every ``CompositeRegion`` in one encode call is merged into a single
  ``brush`` entry appended at the end of the array.
- Decoding cannot tell an encoded point marker from an ellipse that really
  is 10 x 10. ``points_from_markers=True`` regroups such ellipses into a
  ``PointSet`` on a best-effort basis; this is a known limitation of the
  wire format.
"""

from __future__ import annotations

import json
import logging
import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ValidationError

from slidebridge.codec.wire import (
    ENTRY_MODELS,
    WIRE_TYPE_BRUSH,
    WIRE_TYPE_ELLIPSE,
    WIRE_TYPE_POLYGON,
    WIRE_TYPE_POLYLINE,
    WIRE_TYPE_RECT,
    BrushEntry,
    EllipseEntry,
    PolygonEntry,
    PolylineEntry,
    RectEntry,
    WireEntry,
    WireLabel,
    WirePoint,
)
from slidebridge.exceptions import MalformedPayloadError, UnknownShapeTypeWarning
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

logger = logging.getLogger(__name__)

POINT_MARKER_RADIUS = 10

_VISIBILITY_TO_WIRE = {
    LabelVisibility.ALWAYS: "always",
    LabelVisibility.ON_HOVER: "onHover",
    LabelVisibility.NEVER: "never",
}
_VISIBILITY_FROM_WIRE = {v.lower(): k for k, v in _VISIBILITY_TO_WIRE.items()}


class EncodeOptions(BaseModel, frozen=True):
    """Per-entry extras written by ``encode_shapes``.

    Attributes:
        color: RGB color as an int (``0xRRGGBB``); written as ``"#rrggbb"``.
        name: Free-text name written on every entry.
    """

    color: int | None = None
    name: str | None = None


@dataclass
class DecodeResult:
    """Shapes decoded from a wire payload plus what was skipped.

    Attributes:
        shapes: Decoded shapes in wire order.
        skipped_types: Unrecognized ``type`` values, in the order met.
        colors: Parsed ``color`` per decoded shape (None where absent).
    """

    shapes: list[Shape] = field(default_factory=list)
    skipped_types: list[str] = field(default_factory=list)
    colors: list[int | None] = field(default_factory=list)


# =============================================================================
# Encoding
# =============================================================================


def _wire_point(x: float, y: float) -> dict[str, int]:
    return {"x": int(x), "y": int(y)}


def _wire_ring(ring: Iterable[Point]) -> list[dict[str, int]]:
    return [_wire_point(p.x, p.y) for p in ring]


def _wire_label(label: AnnotationLabel) -> dict[str, Any]:
    return {
        "x": int(label.position.x),
        "y": int(label.position.y),
        "fontSize": label.font_size,
        "label": label.text,
        "whenToShow": _VISIBILITY_TO_WIRE[label.visibility],
    }


def _with_extras(
    entry: dict[str, Any],
    label: AnnotationLabel | None,
    options: EncodeOptions,
) -> dict[str, Any]:
    if label is not None:
        entry["label"] = _wire_label(label)
    if options.color is not None:
        entry["color"] = f"#{options.color & 0xFFFFFF:06x}"
    if options.name is not None:
        entry["name"] = options.name
    return entry


def _marker_entry(point: Point, radius: int) -> dict[str, Any]:
    return {
        "type": WIRE_TYPE_ELLIPSE,
        "center": _wire_point(point.x, point.y),
        "size": _wire_point(radius, radius),
    }


def encode_entries(
    shapes: Iterable[Shape],
    *,
    options: EncodeOptions | None = None,
    marker_radius: int = POINT_MARKER_RADIUS,
) -> list[dict[str, Any]]:
    """Encode shapes into wire entry dicts.

    Args:
        shapes: Shapes to encode, in output order.
        options: Optional color/name written on every entry.
        marker_radius: Radius used for point-marker ellipses.

    Returns:
        List of JSON-ready dicts, with at most one trailing brush entry.
    """
    options = options or EncodeOptions()
    entries: list[dict[str, Any]] = []
    positives: list[Ring] = []
    negatives: list[Ring] = []
    brush_label: AnnotationLabel | None = None
    has_brush = False

    for shape in shapes:
        match shape:
            case Rectangle(corner=corner, size=size):
                entry = {
                    "type": WIRE_TYPE_RECT,
                    "corner": _wire_point(corner.x, corner.y),
                    "size": _wire_point(size.x, size.y),
                }
                entries.append(_with_extras(entry, shape.label, options))
            case Ellipse(center=center, radii=radii):
                entry = {
                    "type": WIRE_TYPE_ELLIPSE,
                    "center": _wire_point(center.x, center.y),
                    "size": _wire_point(radii.x, radii.y),
                }
                entries.append(_with_extras(entry, shape.label, options))
            case PointSet(points=points):
                for point in points:
                    entry = _marker_entry(point, marker_radius)
                    entries.append(_with_extras(entry, shape.label, options))
            case Polygon(points=points):
                entry = {"type": WIRE_TYPE_POLYGON, "points": _wire_ring(points)}
                entries.append(_with_extras(entry, shape.label, options))
            case Polyline(points=points):
                entry = {"type": WIRE_TYPE_POLYLINE, "points": _wire_ring(points)}
                entries.append(_with_extras(entry, shape.label, options))
            case CompositeRegion():
                has_brush = True
                positives.extend(shape.positive_rings)
                negatives.extend(shape.negative_rings)
                if brush_label is None:
                    brush_label = shape.label
            case _:
                raise TypeError(f"Unsupported shape type: {type(shape).__name__}")

    if has_brush:
        brush = {
            "type": WIRE_TYPE_BRUSH,
            "positivePolygons": [_wire_ring(r) for r in positives],
            "negativePolygons": [_wire_ring(r) for r in negatives],
        }
        entries.append(_with_extras(brush, brush_label, options))

    return entries


def encode_shapes(
    shapes: Iterable[Shape],
    *,
    options: EncodeOptions | None = None,
    marker_radius: int = POINT_MARKER_RADIUS,
) -> str:
    """Encode shapes to the wire JSON array text.

    An empty input yields ``"[]"``. Pure function; no I/O.

    Example:
        >>> encode_shapes([Rectangle.from_bounds(1.9, 2.1, 30, 40)])
        '[{"type":"rect","corner":{"x":1,"y":2},"size":{"x":30,"y":40}}]'
    """
    entries = encode_entries(shapes, options=options, marker_radius=marker_radius)
    return json.dumps(entries, separators=(",", ":"))


# =============================================================================
# Decoding
# =============================================================================


def _point(p: WirePoint) -> Point:
    return Point(x=p.x, y=p.y)


def _ring(points: Sequence[WirePoint]) -> Ring:
    return tuple(_point(p) for p in points)


def _label(label: WireLabel | None) -> AnnotationLabel | None:
    if label is None:
        return None
    visibility = LabelVisibility.ALWAYS
    if label.when_to_show is not None:
        visibility = _VISIBILITY_FROM_WIRE.get(
            label.when_to_show.lower(), LabelVisibility.ALWAYS
        )
    return AnnotationLabel(
        position=Point(x=label.x, y=label.y),
        font_size=label.font_size,
        text=label.label,
        visibility=visibility,
    )


def parse_color(value: str | None) -> int | None:
    """Parse a ``#rrggbb`` color string into an int; None if absent or invalid."""
    if not value or not value.startswith("#"):
        return None
    try:
        return int(value[1:], 16)
    except ValueError:
        return None


def _entry_to_shape(entry: WireEntry) -> Shape:
    label = _label(entry.label)
    match entry:
        case RectEntry(corner=corner, size=size):
            return Rectangle(corner=_point(corner), size=_point(size), label=label)
        case EllipseEntry(center=center, size=size):
            return Ellipse(center=_point(center), radii=_point(size), label=label)
        case PolygonEntry(points=points):
            return Polygon(points=_ring(points), label=label)
        case PolylineEntry(points=points):
            return Polyline(points=_ring(points), label=label)
        case BrushEntry():
            return CompositeRegion(
                positive_rings=tuple(_ring(r) for r in entry.positive_polygons),
                negative_rings=tuple(_ring(r) for r in entry.negative_polygons),
                label=label,
            )
    raise TypeError(f"Unsupported wire entry: {type(entry).__name__}")


def _load_array(text: str) -> list[Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(f"Invalid JSON: {e.msg}") from e
    if not isinstance(data, list):
        raise MalformedPayloadError(
            f"Expected a JSON array, got {type(data).__name__}"
        )
    return data


def _decode_legacy_points(data: list[Any]) -> DecodeResult:
    points: list[Point] = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedPayloadError("Entry is not an object", index=index)
        try:
            points.append(_point(WirePoint.model_validate(item)))
        except ValidationError as e:
            raise MalformedPayloadError(
                f"Invalid point entry: {e.error_count()} error(s)", index=index
            ) from e
    return DecodeResult(shapes=[PointSet(points=tuple(points))], colors=[None])


def _is_marker(shape: Shape, marker_radius: int) -> bool:
    return (
        isinstance(shape, Ellipse)
        and shape.label is None
        and shape.radii.x == marker_radius
        and shape.radii.y == marker_radius
    )


def _group_markers(result: DecodeResult, marker_radius: int) -> DecodeResult:
    shapes: list[Shape] = []
    colors: list[int | None] = []
    run: list[Point] = []
    run_color: int | None = None

    def flush() -> None:
        if run:
            shapes.append(PointSet(points=tuple(run)))
            colors.append(run_color)
            run.clear()

    for shape, color in zip(result.shapes, result.colors, strict=True):
        if _is_marker(shape, marker_radius):
            assert isinstance(shape, Ellipse)
            if not run:
                run_color = color
            run.append(shape.center)
            continue
        flush()
        shapes.append(shape)
        colors.append(color)
    flush()
    return DecodeResult(shapes=shapes, skipped_types=result.skipped_types, colors=colors)


def decode_shapes_with_report(
    text: str,
    *,
    points_from_markers: bool = False,
    marker_radius: int = POINT_MARKER_RADIUS,
) -> DecodeResult:
    """Decode wire JSON into shapes, reporting skipped entry types.

    Args:
        text: Wire JSON text (an array of entries).
        points_from_markers: Regroup runs of marker-sized ellipses into
            ``PointSet`` shapes (lossy, see module notes).
        marker_radius: Radius that identifies a point marker.

    Returns:
        DecodeResult with shapes, skipped type names and per-shape colors.

    Raises:
        MalformedPayloadError: If the text is not a JSON array of objects or
            a recognized entry is structurally invalid.
    """
    data = _load_array(text)
    if not data:
        return DecodeResult()

    first = data[0]
    if isinstance(first, dict) and first.get("type") is None:
        return _decode_legacy_points(data)

    result = DecodeResult()
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise MalformedPayloadError("Entry is not an object", index=index)
        raw_type = item.get("type")
        if not isinstance(raw_type, str):
            raise MalformedPayloadError("Entry has no string 'type'", index=index)

        wire_type = raw_type.lower()
        model = ENTRY_MODELS.get(wire_type)
        if model is None:
            logger.warning("Skipping unknown annotation type %r", raw_type)
            warnings.warn(
                f"Unknown annotation type {raw_type!r} skipped",
                UnknownShapeTypeWarning,
                stacklevel=2,
            )
            result.skipped_types.append(raw_type)
            continue

        try:
            entry = model.model_validate({**item, "type": wire_type})
            shape = _entry_to_shape(entry)
        except ValidationError as e:
            raise MalformedPayloadError(
                f"Invalid {wire_type} entry: {e.error_count()} error(s)", index=index
            ) from e
        result.shapes.append(shape)
        result.colors.append(parse_color(entry.color))

    if points_from_markers:
        return _group_markers(result, marker_radius)
    return result


def decode_shapes(
    text: str,
    *,
    points_from_markers: bool = False,
    marker_radius: int = POINT_MARKER_RADIUS,
) -> list[Shape]:
    """Decode wire JSON into shapes.

    Unknown entry types are skipped with an ``UnknownShapeTypeWarning``.

    Raises:
        MalformedPayloadError: If the payload is structurally invalid.
    """
    return decode_shapes_with_report(
        text,
        points_from_markers=points_from_markers,
        marker_radius=marker_radius,
    ).shapes


def is_shape_array(text: str) -> bool:
    """Return True if an answer value looks like an encoded shape array."""
    stripped = text.strip()
    return stripped.startswith("[{") and stripped.endswith("}]")


# =============================================================================
# Wire normalization
# =============================================================================


def _trunc(p: Point) -> Point:
    return Point(x=int(p.x), y=int(p.y))


def _trunc_label(label: AnnotationLabel | None) -> AnnotationLabel | None:
    if label is None:
        return None
    return label.model_copy(update={"position": _trunc(label.position)})


def quantize_shape(shape: Shape) -> Shape:
    """Apply the wire's integer truncation to a shape.

    ``decode_shapes(encode_shapes([s]))`` equals ``[quantize_shape(s)]`` for
    every shape except point markers.
    """
    label = _trunc_label(shape.label)
    match shape:
        case Rectangle(corner=corner, size=size):
            return Rectangle(corner=_trunc(corner), size=_trunc(size), label=label)
        case Ellipse(center=center, radii=radii):
            return Ellipse(center=_trunc(center), radii=_trunc(radii), label=label)
        case PointSet(points=points):
            return PointSet(points=tuple(_trunc(p) for p in points), label=label)
        case Polygon(points=points):
            return Polygon(points=tuple(_trunc(p) for p in points), label=label)
        case Polyline(points=points):
            return Polyline(points=tuple(_trunc(p) for p in points), label=label)
        case CompositeRegion(positive_rings=pos, negative_rings=neg):
            return CompositeRegion(
                positive_rings=tuple(tuple(_trunc(p) for p in r) for r in pos),
                negative_rings=tuple(tuple(_trunc(p) for p in r) for r in neg),
                label=label,
            )
    raise TypeError(f"Unsupported shape type: {type(shape).__name__}")
