"""Exceptions for slidebridge.

Codec and grid errors are local and deterministic; they are raised to the
caller and never retried. Upload errors describe which protocol step the
remote service rejected. ``TransferInterruptedError`` is the only
retryable condition: it carries the still-open session so the caller can
resume it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from slidebridge.upload.session import UploadSession


class SlideBridgeError(Exception):
    """Base exception for all slidebridge errors."""


class MalformedPayloadError(SlideBridgeError):
    """Raised when wire JSON is not a well-formed array of shape entries.

    Attributes:
        index: Position of the offending entry, if the failure is per entry.
    """

    def __init__(self, message: str, *, index: int | None = None) -> None:
        self.index = index
        if index is not None:
            message = f"{message} (entry={index})"
        super().__init__(message)


class UnknownShapeTypeWarning(UserWarning):
    """Issued when the decoder skips an entry with an unrecognized type."""


class InvalidRegionError(SlideBridgeError):
    """Raised when a composite region has holes outside every shell."""

    def __init__(self, message: str, *, hole_indices: list[int]) -> None:
        self.hole_indices = hole_indices
        super().__init__(f"{message} (holes={hole_indices})")


class MixedShapeKindsError(SlideBridgeError):
    """Raised when point markers and other shapes are uploaded together."""


class InvalidGridShapeError(SlideBridgeError):
    """Raised when TMA cores do not form a full rectangular grid.

    Attributes:
        rows: Row count derived from the cores.
        cols: Column count derived from the cores.
        count: Number of cores supplied.
    """

    def __init__(
        self,
        message: str,
        *,
        rows: int | None = None,
        cols: int | None = None,
        count: int | None = None,
    ) -> None:
        self.rows = rows
        self.cols = cols
        self.count = count
        parts = [message]
        if rows is not None and cols is not None:
            parts.append(f"grid={rows}x{cols}")
        if count is not None:
            parts.append(f"cores={count}")
        if len(parts) == 1:
            super().__init__(message)
        else:
            super().__init__(f"{parts[0]} ({', '.join(parts[1:])})")


class ServiceError(SlideBridgeError):
    """Raised when a plain request to the slide service fails.

    Attributes:
        endpoint: Service endpoint name (e.g. ``"Answers"``).
        status_code: HTTP status if a response was received.
        body: Response text if a response was received.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class UploadError(SlideBridgeError):
    """Base exception for the chunked upload protocol."""


class SessionCreateFailedError(UploadError):
    """Raised when the service refuses to open an upload session."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Creating upload session failed: {reason}")


class FinishFailedError(UploadError):
    """Raised when the service rejects the upload completion call."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Completing upload failed: {reason}")


class TransferInterruptedError(UploadError):
    """Raised when chunk transfer stops on a transient fault.

    The session is left open; pass it back to ``ChunkedUploader.upload``
    to resume from the server-reported offset.

    Attributes:
        session: The resumable session.
        offset: Bytes acknowledged by the server when the transfer stopped.
    """

    def __init__(
        self,
        message: str,
        *,
        session: UploadSession,
        cause: Exception | None = None,
    ) -> None:
        self.session = session
        self.offset = session.bytes_sent
        self.cause = cause
        super().__init__(f"{message} (offset={self.offset}/{session.total_size})")


class UploadCancelledError(TransferInterruptedError):
    """Raised when a cancellation token stops the transfer between chunks."""
