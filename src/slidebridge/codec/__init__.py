"""Wire JSON codec for annotation shapes.

Public API:
    - encode_shapes / encode_entries: shapes -> wire JSON
    - decode_shapes / decode_shapes_with_report: wire JSON -> shapes
    - quantize_shape: apply the wire's integer truncation to a shape
"""

from slidebridge.codec.annotations import (
    POINT_MARKER_RADIUS,
    DecodeResult,
    EncodeOptions,
    decode_shapes,
    decode_shapes_with_report,
    encode_entries,
    encode_shapes,
    is_shape_array,
    parse_color,
    quantize_shape,
)

__all__ = [
    "POINT_MARKER_RADIUS",
    "DecodeResult",
    "EncodeOptions",
    "decode_shapes",
    "decode_shapes_with_report",
    "encode_entries",
    "encode_shapes",
    "is_shape_array",
    "parse_color",
    "quantize_shape",
]
