"""Tissue microarray grid transform and per-core answers."""

from slidebridge.tma.answers import (
    TMA_ANSWER_PREFIX,
    build_tma_answer,
    build_tma_shapes_answer,
    shapes_in_core,
    unrotated_position,
)
from slidebridge.tma.grid import (
    PlacedCore,
    SlideDimensions,
    TmaCore,
    TmaGridSpec,
    TmaLayout,
    apply_grid_transform,
    core_diameter_px,
    rescale_core,
    rotate_cores,
)

__all__ = [
    "TMA_ANSWER_PREFIX",
    "PlacedCore",
    "SlideDimensions",
    "TmaCore",
    "TmaGridSpec",
    "TmaLayout",
    "apply_grid_transform",
    "build_tma_answer",
    "build_tma_shapes_answer",
    "core_diameter_px",
    "rescale_core",
    "rotate_cores",
    "shapes_in_core",
    "unrotated_position",
]
