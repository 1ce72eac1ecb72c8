"""Route answers to the inline or chunked submission path.

Encoded answers longer than ``INLINE_ANSWER_LIMIT`` characters go through
the chunked upload protocol; everything else, and every TMA answer
regardless of size, is posted inline.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from slidebridge.client.http import SlideScoreClient
from slidebridge.client.types import Answer
from slidebridge.codec.annotations import (
    EncodeOptions,
    decode_shapes_with_report,
    encode_shapes,
    is_shape_array,
)
from slidebridge.config import Settings, settings
from slidebridge.exceptions import MixedShapeKindsError
from slidebridge.geometry.primitives import PointSet, Shape
from slidebridge.tma.answers import build_tma_shapes_answer
from slidebridge.tma.grid import TmaLayout, apply_grid_transform
from slidebridge.upload.protocol import ChunkedUploader
from slidebridge.upload.session import CancellationToken

logger = logging.getLogger(__name__)

SubmitMode = Literal["inline", "chunked"]


@dataclass(frozen=True)
class SubmitResult:
    """How an answer was submitted.

    Attributes:
        mode: ``"inline"`` or ``"chunked"``.
        annotation_id: Annotation record id for chunked uploads.
    """

    mode: SubmitMode
    annotation_id: str | None = None


@dataclass
class ImportedAnswer:
    """An answer whose value decoded to shapes."""

    answer: Answer
    shapes: list[Shape] = field(default_factory=list)
    skipped_types: list[str] = field(default_factory=list)


def check_shape_kinds(shapes: Sequence[Shape]) -> None:
    """Reject point sets mixed with any other kind of shape.

    Raises:
        MixedShapeKindsError: If both kinds are present.
    """
    has_points = any(isinstance(s, PointSet) for s in shapes)
    has_other = any(not isinstance(s, PointSet) for s in shapes)
    if has_points and has_other:
        raise MixedShapeKindsError(
            "Point annotations cannot be uploaded together with other shapes; "
            "upload the points separately"
        )


class AnswerRouter:
    """Submit answers for one slide.

    Usage:
        with SlideScoreClient(url) as client:
            router = AnswerRouter(client)
            result = router.submit_shapes("Tumor area", shapes)
    """

    def __init__(
        self,
        client: SlideScoreClient,
        *,
        config: Settings | None = None,
        uploader: ChunkedUploader | None = None,
    ) -> None:
        config = config or settings
        self.client = client
        self.inline_limit = config.INLINE_ANSWER_LIMIT
        self.marker_radius = config.POINT_MARKER_RADIUS
        self.uploader = uploader or ChunkedUploader(
            client, client.resumable_endpoint, config=config
        )

    def submit(
        self,
        question: str,
        answer: str,
        *,
        tma_core_id: int | None = None,
        tma: bool = False,
        cancel: CancellationToken | None = None,
    ) -> SubmitResult:
        """Submit an encoded answer.

        Raises:
            ServiceError: If the inline post fails.
            UploadError: If the chunked upload fails. A
                ``TransferInterruptedError`` carries the resumable session.
        """
        if not tma and len(answer) > self.inline_limit:
            logger.info(
                "Answer for %r is %d characters; using chunked upload",
                question,
                len(answer),
            )
            session = self.uploader.run(
                question, answer, tma_core_id=tma_core_id, cancel=cancel
            )
            return SubmitResult(mode="chunked", annotation_id=session.annotation_id)

        self.client.post_annotation(question, answer)
        logger.info("Posted answer for %r inline (%d characters)", question, len(answer))
        return SubmitResult(mode="inline")

    def submit_shapes(
        self,
        question: str,
        shapes: Sequence[Shape],
        *,
        options: EncodeOptions | None = None,
        layout: TmaLayout | None = None,
        cancel: CancellationToken | None = None,
    ) -> SubmitResult:
        """Encode and submit shapes.

        With a TMA ``layout`` every shape is assigned to the core that
        contains it and the ``TMAs:`` answer is posted.

        Raises:
            MixedShapeKindsError: If point sets are mixed with other shapes.
        """
        check_shape_kinds(shapes)
        if layout is not None:
            answer = build_tma_shapes_answer(layout, shapes)
            return self.submit(question, answer, tma=True, cancel=cancel)
        answer = encode_shapes(shapes, options=options, marker_radius=self.marker_radius)
        return self.submit(question, answer, cancel=cancel)


def import_answers(
    client: SlideScoreClient,
    *,
    question: str | None = None,
    email: str | None = None,
    points_from_markers: bool = False,
) -> list[ImportedAnswer]:
    """Fetch answers and decode the ones holding shapes.

    Values that are not a JSON array of objects are left out.

    Raises:
        MalformedPayloadError: If a shape answer cannot be decoded.
    """
    imported: list[ImportedAnswer] = []
    for answer in client.get_answers(question, email):
        if not is_shape_array(answer.value):
            continue
        result = decode_shapes_with_report(
            answer.value, points_from_markers=points_from_markers
        )
        imported.append(
            ImportedAnswer(
                answer=answer,
                shapes=result.shapes,
                skipped_types=result.skipped_types,
            )
        )
    logger.info("Imported %d shape answer(s)", len(imported))
    return imported


def load_tma_layout(client: SlideScoreClient) -> TmaLayout | None:
    """Fetch the TMA grid and transform it; None if the slide is not a TMA.

    Raises:
        InvalidGridShapeError: If the reported cores are not a full grid.
    """
    grid = client.get_tma_positions()
    if not grid.cores:
        return None
    metadata = client.get_metadata()
    return apply_grid_transform(grid, metadata.dimensions)
