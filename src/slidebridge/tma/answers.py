"""Per-core answers for TMA slides.

On a TMA slide an answer is a single text blob::

    TMAs:
    <row>,<col>
    <answer for that core>
    <row>,<col>
    <answer for that core>
    ...

where ``row``/``col`` address the core in the *unrotated* grid the service
knows about. Cores are visited in the rotated (displayed) grid, so their
position is mapped back through the rotation first.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

from shapely.geometry import Point as ShapelyPoint

from slidebridge.codec.annotations import encode_shapes
from slidebridge.geometry.primitives import Shape
from slidebridge.geometry.regions import shape_to_geometry
from slidebridge.tma.grid import PlacedCore, TmaLayout

TMA_ANSWER_PREFIX = "TMAs:"
_EMPTY_ANSWERS = ("", "[]")


def unrotated_position(
    row: int,
    col: int,
    *,
    rotate: int,
    rows: int,
    cols: int,
) -> tuple[int, int]:
    """Map a (row, col) of the displayed grid back to the service's grid.

    Args:
        row: Row in the displayed (rotated) grid.
        col: Column in the displayed grid.
        rotate: Rotation applied to the grid (0, 90, 180, 270).
        rows: Row count of the displayed grid.
        cols: Column count of the displayed grid.
    """
    if rotate == 90:
        return col, rows - row - 1
    if rotate == 180:
        return rows - row - 1, cols - col - 1
    if rotate == 270:
        return cols - col - 1, row
    return row, col


def build_tma_answer(
    layout: TmaLayout,
    answer_for: Callable[[PlacedCore], str],
    *,
    only: Iterable[tuple[int, int]] | None = None,
) -> str:
    """Build the ``TMAs:`` answer text for a grid.

    Cores whose answer is empty or ``"[]"`` are left out.

    Args:
        layout: Transformed grid.
        answer_for: Returns the answer text for one core.
        only: Restrict to these (row, col) positions of the displayed grid.
    """
    wanted = set(only) if only is not None else None
    parts = [TMA_ANSWER_PREFIX]
    for core in layout.cores:
        if wanted is not None and (core.row, core.col) not in wanted:
            continue
        answer = answer_for(core)
        if answer in _EMPTY_ANSWERS:
            continue
        r, c = unrotated_position(
            core.row, core.col, rotate=layout.rotate, rows=layout.rows, cols=layout.cols
        )
        parts.append(f"\n{r},{c}\n{answer}")
    return "".join(parts)


def shapes_in_core(
    shapes: Sequence[Shape],
    core: PlacedCore,
    diameter_px: int,
) -> list[Shape]:
    """Return the shapes lying fully inside a core's circle."""
    circle = ShapelyPoint(core.x, core.y).buffer(diameter_px / 2)
    return [s for s in shapes if circle.contains(shape_to_geometry(s))]


def build_tma_shapes_answer(
    layout: TmaLayout,
    shapes: Sequence[Shape],
    *,
    only: Iterable[tuple[int, int]] | None = None,
) -> str:
    """Assign shapes to the cores that contain them and build the answer."""

    def answer_for(core: PlacedCore) -> str:
        return encode_shapes(shapes_in_core(shapes, core, layout.diameter_px))

    return build_tma_answer(layout, answer_for, only=only)
