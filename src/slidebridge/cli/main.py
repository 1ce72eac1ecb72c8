"""slidebridge CLI - exchange annotations and TMA grids with a slide service.

Command-line interface for encoding/decoding annotation payloads and for
importing and uploading answers for one slide link.
"""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import TypeAdapter

from slidebridge import __version__
from slidebridge.geometry.primitives import Shape
from slidebridge.utils.logging import (
    configure_logging,
    get_logger,
    set_correlation_context,
)

if TYPE_CHECKING:
    from slidebridge.client.router import AnswerRouter, SubmitResult
    from slidebridge.exceptions import TransferInterruptedError
    from slidebridge.upload.session import CancellationToken

app = typer.Typer(
    name="slidebridge",
    help="slidebridge: annotation and TMA exchange with a slide-hosting service",
    add_completion=False,
)

_SHAPES = TypeAdapter(list[Shape])

_UrlOption = Annotated[
    str | None,
    typer.Option(
        "--url",
        "-u",
        help="Slide link (…/SlideScoreMetadata.json); defaults to SLIDESCORE_METADATA_URL",
    ),
]
_VerboseOption = Annotated[
    int, typer.Option("--verbose", "-v", count=True, help="Increase verbosity")
]
_JsonOption = Annotated[bool, typer.Option("--json", help="Output as JSON")]


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version(json_output: _JsonOption = False) -> None:
    """Show version information."""
    if json_output:
        typer.echo(json.dumps({"version": __version__}))
    else:
        typer.echo(f"slidebridge {__version__}")


@app.command()
def encode(
    input_path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            readable=True,
            help="Shapes JSON file (list of shapes with a 'kind' field)",
        ),
    ],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write wire JSON here")
    ] = None,
    color: Annotated[
        str | None, typer.Option("--color", help="Color for every entry, e.g. '#ff0000'")
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", help="Name written on every entry")
    ] = None,
    verbose: _VerboseOption = 0,
) -> None:
    """Encode shapes into the wire JSON format."""
    from slidebridge.codec.annotations import (  # noqa: PLC0415
        EncodeOptions,
        encode_shapes,
        parse_color,
    )

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        shapes = _SHAPES.validate_json(input_path.read_text(encoding="utf-8"))
        options = EncodeOptions(color=parse_color(color), name=name)
        wire = encode_shapes(shapes, options=options)
        logger.info("Encoded shapes", count=len(shapes), chars=len(wire))
        _write_or_echo(wire, output)
    except Exception as e:
        logger.exception("Encoding failed")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command()
def decode(
    input_path: Annotated[
        Path,
        typer.Argument(
            exists=True, dir_okay=False, readable=True, help="Wire JSON file"
        ),
    ],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write shapes JSON here")
    ] = None,
    points_from_markers: Annotated[
        bool,
        typer.Option(
            "--points-from-markers",
            help="Read unlabeled marker-sized ellipses back as point sets",
        ),
    ] = False,
    verbose: _VerboseOption = 0,
) -> None:
    """Decode wire JSON into shapes."""
    from slidebridge.codec.annotations import decode_shapes_with_report  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        result = decode_shapes_with_report(
            input_path.read_text(encoding="utf-8"),
            points_from_markers=points_from_markers,
        )
        if result.skipped_types:
            logger.warning("Skipped unknown entries", types=result.skipped_types)
        _write_or_echo(_dump_shapes(result.shapes), output)
    except Exception as e:
        logger.exception("Decoding failed")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


@app.command("import-tmas")
def import_tmas(
    url: _UrlOption = None,
    verbose: _VerboseOption = 0,
    json_output: _JsonOption = False,
) -> None:
    """Fetch the slide's TMA grid and print the rotated, rescaled layout."""
    from slidebridge.client.http import SlideScoreClient  # noqa: PLC0415
    from slidebridge.client.router import load_tma_layout  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        metadata_url = _resolve_url(url)
        with SlideScoreClient(metadata_url) as client:
            layout = load_tma_layout(client)

        if layout is None:
            typer.echo(json.dumps({"cores": []}) if json_output else "Slide has no TMA grid")
            raise typer.Exit(0)

        logger.info("Imported TMA grid", rows=layout.rows, cols=layout.cols)
        if json_output:
            data: dict[str, Any] = {
                "rows": layout.rows,
                "cols": layout.cols,
                "diameter_px": layout.diameter_px,
                "rotate": layout.rotate,
                "cores": [
                    {
                        "row": c.row,
                        "col": c.col,
                        "name": c.name,
                        "x": c.x,
                        "y": c.y,
                        "missing": c.missing,
                    }
                    for c in layout.cores
                ],
            }
            typer.echo(json.dumps(data, indent=2))
        else:
            typer.echo(
                f"Grid {layout.rows}x{layout.cols}, core diameter "
                f"{layout.diameter_px}px, rotated {layout.rotate}"
            )
            for c in layout.cores:
                status = " (missing)" if c.missing else ""
                typer.echo(f"  {c.row},{c.col} {c.name}: ({c.x}, {c.y}){status}")
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("TMA import failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.command("import-answers")
def import_answers(
    url: _UrlOption = None,
    question: Annotated[
        str | None, typer.Option("--question", "-q", help="Only this question")
    ] = None,
    email: Annotated[
        str | None, typer.Option("--email", "-e", help="Only answers by this user")
    ] = None,
    points_from_markers: Annotated[
        bool,
        typer.Option(
            "--points-from-markers",
            help="Read unlabeled marker-sized ellipses back as point sets",
        ),
    ] = False,
    verbose: _VerboseOption = 0,
    json_output: _JsonOption = False,
) -> None:
    """Fetch shape answers for the slide and decode them."""
    from slidebridge.client import router  # noqa: PLC0415
    from slidebridge.client.http import SlideScoreClient  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        metadata_url = _resolve_url(url)
        with SlideScoreClient(metadata_url) as client:
            imported = router.import_answers(
                client,
                question=question,
                email=email,
                points_from_markers=points_from_markers,
            )

        if json_output:
            data = [
                {
                    "question": item.answer.question,
                    "email": item.answer.email,
                    "color": item.answer.color,
                    "shapes": json.loads(_dump_shapes(item.shapes)),
                    "skipped_types": item.skipped_types,
                }
                for item in imported
            ]
            typer.echo(json.dumps(data, indent=2))
        else:
            if not imported:
                typer.echo("No shape answers found")
            for item in imported:
                typer.echo(
                    f"{item.answer.question} ({item.answer.email}): "
                    f"{len(item.shapes)} shape(s)"
                )
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Answer import failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.command()
def upload(  # noqa: PLR0913
    input_path: Annotated[
        Path,
        typer.Argument(
            exists=True, dir_okay=False, readable=True, help="Wire JSON file"
        ),
    ],
    question: Annotated[
        str, typer.Option("--question", "-q", help="Question to answer")
    ],
    url: _UrlOption = None,
    tma: Annotated[
        bool,
        typer.Option(
            "--tma/--no-tma",
            help="Assign shapes to TMA cores when the slide has a grid",
        ),
    ] = True,
    resume_attempts: Annotated[
        int,
        typer.Option(
            "--resume-attempts",
            help="Times to resume an interrupted chunked upload",
        ),
    ] = 3,
    verbose: _VerboseOption = 0,
    json_output: _JsonOption = False,
) -> None:
    """Upload a wire JSON answer, chunked when it is too large to post inline."""
    from slidebridge.client.http import SlideScoreClient  # noqa: PLC0415
    from slidebridge.client.router import (  # noqa: PLC0415
        AnswerRouter,
        check_shape_kinds,
        load_tma_layout,
    )
    from slidebridge.codec.annotations import decode_shapes  # noqa: PLC0415
    from slidebridge.exceptions import (  # noqa: PLC0415
        TransferInterruptedError,
        UploadCancelledError,
    )
    from slidebridge.upload.session import CancellationToken  # noqa: PLC0415

    _configure_logging(verbose)
    logger = get_logger(__name__)

    cancel = CancellationToken()

    def signal_handler(signum: int, frame: object) -> None:
        _ = signum, frame
        logger.warning("Cancellation requested; stopping after the current chunk")
        cancel.cancel()

    try:
        metadata_url = _resolve_url(url)
        set_correlation_context(slide_url=metadata_url, question=question)
        payload = input_path.read_text(encoding="utf-8")
        shapes = decode_shapes(payload)
        check_shape_kinds(shapes)

        previous_handler = signal.signal(signal.SIGINT, signal_handler)
        try:
            with SlideScoreClient(metadata_url) as client:
                router = AnswerRouter(client)
                layout = load_tma_layout(client) if tma else None
                try:
                    if layout is not None:
                        result = router.submit_shapes(
                            question, shapes, layout=layout, cancel=cancel
                        )
                    else:
                        result = router.submit(question, payload, cancel=cancel)
                except UploadCancelledError as e:
                    router.uploader.abandon(e.session)
                    raise
                except TransferInterruptedError as e:
                    result = _resume(router, e, resume_attempts, cancel)
        finally:
            signal.signal(signal.SIGINT, previous_handler)

        logger.info("Upload finished", mode=result.mode, annotation_id=result.annotation_id)
        if json_output:
            typer.echo(
                json.dumps({"mode": result.mode, "annotation_id": result.annotation_id})
            )
        else:
            suffix = f" (annotation {result.annotation_id})" if result.annotation_id else ""
            typer.echo(f"Uploaded answer for {question!r} {result.mode}{suffix}")
        raise typer.Exit(0)

    except typer.Exit:
        raise
    except Exception as e:
        logger.exception("Upload failed")
        _echo_error(e, json_output)
        raise typer.Exit(1) from None


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """slidebridge: annotation and TMA exchange with a slide-hosting service."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


# =============================================================================
# Helpers
# =============================================================================


def _configure_logging(verbose: int) -> None:
    """Configure logging based on verbosity level."""
    if verbose == 0:
        level = "WARNING"
    elif verbose == 1:
        level = "INFO"
    else:  # verbose >= 2
        level = "DEBUG"

    configure_logging(level=level)


def _resolve_url(url: str | None) -> str:
    if url:
        return url
    from slidebridge.config import settings  # noqa: PLC0415

    return settings.require_metadata_url()


def _dump_shapes(shapes: list[Shape]) -> str:
    return _SHAPES.dump_json(shapes, indent=2, exclude_none=True).decode("utf-8")


def _write_or_echo(text: str, output: Path | None) -> None:
    if output is None:
        typer.echo(text)
    else:
        output.write_text(text, encoding="utf-8")


def _echo_error(error: Exception, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps({"error": str(error)}))
    else:
        typer.echo(f"Error: {error}", err=True)


def _resume(
    router: AnswerRouter,
    error: TransferInterruptedError,
    attempts: int,
    cancel: CancellationToken,
) -> SubmitResult:
    """Resume an interrupted chunked upload up to ``attempts`` times."""
    from slidebridge.client.router import SubmitResult  # noqa: PLC0415
    from slidebridge.exceptions import (  # noqa: PLC0415
        TransferInterruptedError,
        UploadCancelledError,
    )

    logger = get_logger(__name__)
    session = error.session
    set_correlation_context(upload_id=session.annotation_id)
    last_error = error
    for attempt in range(1, attempts + 1):
        logger.warning(
            "Resuming interrupted upload", attempt=attempt, offset=session.bytes_sent
        )
        try:
            router.uploader.upload(session, cancel=cancel)
        except UploadCancelledError:
            router.uploader.abandon(session)
            raise
        except TransferInterruptedError as e:
            last_error = e
            continue
        return SubmitResult(mode="chunked", annotation_id=session.annotation_id)
    router.uploader.abandon(session)
    raise last_error


if __name__ == "__main__":  # pragma: no cover
    app()
