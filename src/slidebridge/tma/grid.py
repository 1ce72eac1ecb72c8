"""TMA core grid transform.

The service reports tissue-microarray cores row-major for the unrotated
slide, together with the rotation the slide is displayed at and a
fixed-point encoding of each core centre. This module turns that report
into pixel-space core positions laid out in the rotated grid.

Rotation remap (``i`` walks old rows, ``j`` walks old columns, the new
grid is written row-major at ``new[j * rows + i]``)::

    90:  new[j*rows + i] = old[i*cols + (cols - j - 1)]
    180: new[j*rows + i] = old[len - 1 - (j*rows + i)]
    270: new[j*rows + i] = old[(rows - i - 1)*cols + j]

Rows and columns swap after 90 and 270 degrees.

Rescale: wire coordinates are stored x1000 and normalized to the slide
width, so each coordinate is divided by ``1000 * width / max(width, height)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slidebridge.exceptions import InvalidGridShapeError

Rotation = Literal[0, 90, 180, 270]

# Wire coordinates are fixed-point with three decimals.
WIRE_SCALE = 1000.0
# Default core diameter is 2% of the slide's long side, doubled.
DEFAULT_CORE_FRACTION = 0.02


class TmaCore(BaseModel, frozen=True):
    """One core as reported by the service.

    Attributes:
        row: 0-based row in the unrotated grid.
        col: 0-based column in the unrotated grid.
        name: Core label.
        x: Wire-encoded centre x (or pixel x after rescale).
        y: Wire-encoded centre y (or pixel y after rescale).
    """

    row: int = Field(..., ge=0)
    col: int = Field(..., ge=0)
    name: str = ""
    x: int = 0
    y: int = 0

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, value: object) -> object:
        return "" if value is None else value


class TmaGridSpec(BaseModel, frozen=True):
    """TMA positions payload.

    Attributes:
        core_radius_um: Core radius in microns; values <= 0 mean unset.
        rotate: Display rotation in degrees.
        cores: Cores in row-major order.
    """

    model_config = ConfigDict(populate_by_name=True)

    core_radius_um: float = Field(default=0.0, alias="coreRadiusUM")
    rotate: Rotation = 0
    cores: tuple[TmaCore, ...] = ()

    @field_validator("cores", mode="before")
    @classmethod
    def _null_cores(cls, value: object) -> object:
        # Non-TMA slides report "cores": null.
        return () if value is None else value


@dataclass(frozen=True)
class SlideDimensions:
    """Full-resolution slide size and pixel size.

    Attributes:
        width: Level-0 width in pixels.
        height: Level-0 height in pixels.
        mpp: Averaged microns per pixel, None if unknown.
    """

    width: int
    height: int
    mpp: float | None = None

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Slide dimensions must be positive, got {self.width}x{self.height}"
            )

    @property
    def max_side(self) -> int:
        """Return the long side in pixels."""
        return max(self.width, self.height)


@dataclass(frozen=True)
class PlacedCore:
    """A core positioned in pixel space in the rotated grid."""

    row: int
    col: int
    name: str
    x: int
    y: int
    missing: bool


@dataclass(frozen=True)
class TmaLayout:
    """Result of the grid transform.

    Attributes:
        rows: Row count after rotation.
        cols: Column count after rotation.
        diameter_px: Core diameter in pixels.
        rotate: Rotation that was applied.
        cores: Cores in row-major order of the rotated grid.
    """

    rows: int
    cols: int
    diameter_px: int
    rotate: int
    cores: tuple[PlacedCore, ...]

    def core_at(self, row: int, col: int) -> PlacedCore:
        """Return the core at (row, col) of the rotated grid."""
        if not (0 <= row < self.rows and 0 <= col < self.cols):
            raise IndexError(f"Core ({row}, {col}) outside {self.rows}x{self.cols} grid")
        return self.cores[row * self.cols + col]


def grid_shape(cores: tuple[TmaCore, ...]) -> tuple[int, int]:
    """Validate a core list and return its (rows, cols).

    Raises:
        InvalidGridShapeError: If the cores are empty, not a full rectangle,
            or not in row-major order.
    """
    if not cores:
        raise InvalidGridShapeError("TMA grid has no cores", count=0)

    rows = max(c.row for c in cores) + 1
    cols = max(c.col for c in cores) + 1
    if len(cores) != rows * cols:
        raise InvalidGridShapeError(
            "TMA grid is not fully populated", rows=rows, cols=cols, count=len(cores)
        )
    for index, core in enumerate(cores):
        expected = divmod(index, cols)
        if (core.row, core.col) != expected:
            raise InvalidGridShapeError(
                f"Core {index} is at ({core.row}, {core.col}), "
                f"expected {expected} for row-major order",
                rows=rows,
                cols=cols,
                count=len(cores),
            )
    return rows, cols


def rotate_cores(
    cores: tuple[TmaCore, ...],
    rotate: int,
) -> tuple[tuple[TmaCore, ...], int, int]:
    """Reorder cores for the display rotation.

    Core records are moved, not rewritten; their ``row``/``col`` still
    name the unrotated position.

    Args:
        cores: Row-major cores of the unrotated grid.
        rotate: 0, 90, 180 or 270.

    Returns:
        (reordered cores, rows, cols) where rows/cols describe the rotated grid.

    Raises:
        InvalidGridShapeError: If the cores are not a full row-major grid.
        ValueError: If ``rotate`` is not a right angle.
    """
    rows, cols = grid_shape(cores)
    if rotate == 0:
        return cores, rows, cols
    if rotate not in (90, 180, 270):
        raise ValueError(f"Unsupported rotation {rotate}")

    count = len(cores)
    rotated: list[TmaCore | None] = [None] * count
    for i in range(rows):
        for j in range(cols):
            target = j * rows + i
            if rotate == 90:
                source = i * cols + (cols - j - 1)
            elif rotate == 180:
                source = count - target - 1
            else:
                source = (rows - i - 1) * cols + j
            rotated[target] = cores[source]

    if rotate in (90, 270):
        rows, cols = cols, rows
    return tuple(c for c in rotated if c is not None), rows, cols


def core_diameter_px(core_radius_um: float, slide: SlideDimensions) -> int:
    """Core diameter in pixels; 2% of the long side when the radius is unset."""
    if core_radius_um <= 0 or not slide.mpp:
        return 2 * int(DEFAULT_CORE_FRACTION * slide.max_side)
    return 2 * int(core_radius_um / slide.mpp)


def rescale_core(core: TmaCore, slide: SlideDimensions) -> tuple[int, int]:
    """Convert a wire-encoded core centre to pixel coordinates."""
    divisor = WIRE_SCALE * slide.width / slide.max_side
    return int(core.x / divisor), int(core.y / divisor)


def apply_grid_transform(grid: TmaGridSpec, slide: SlideDimensions) -> TmaLayout:
    """Rotate and rescale a TMA grid into pixel-space core positions.

    Pure and deterministic.

    Args:
        grid: Positions payload from the service.
        slide: Full-resolution slide size and pixel size.

    Returns:
        TmaLayout with cores in row-major order of the rotated grid.

    Raises:
        InvalidGridShapeError: If the cores do not form a full grid.
    """
    cores, rows, cols = rotate_cores(grid.cores, grid.rotate)
    diameter = core_diameter_px(grid.core_radius_um, slide)

    placed: list[PlacedCore] = []
    for index, core in enumerate(cores):
        x, y = rescale_core(core, slide)
        row, col = divmod(index, cols)
        placed.append(
            PlacedCore(row=row, col=col, name=core.name, x=x, y=y, missing=x <= 0)
        )

    return TmaLayout(
        rows=rows,
        cols=cols,
        diameter_px=diameter,
        rotate=grid.rotate,
        cores=tuple(placed),
    )
