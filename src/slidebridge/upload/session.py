"""Upload session state for the chunked annotation upload.

A session belongs to exactly one upload call stack. It is created when a
large payload upload begins and discarded on completion, terminal failure
or explicit abandon. It is never persisted.

States::

    created -> session_opened -> uploading -> finishing -> completed
         \\____________\\_____________\\____________\\-> failed | abandoned
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import TracebackType
from urllib.parse import urlparse

from slidebridge.exceptions import UploadError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024


class UploadState(Enum):
    """Upload session states."""

    CREATED = "created"
    SESSION_OPENED = "session_opened"
    UPLOADING = "uploading"
    FINISHING = "finishing"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"


TERMINAL_STATES = frozenset(
    {UploadState.COMPLETED, UploadState.FAILED, UploadState.ABANDONED}
)

_TRANSITIONS: dict[UploadState, frozenset[UploadState]] = {
    UploadState.CREATED: frozenset({UploadState.SESSION_OPENED}),
    UploadState.SESSION_OPENED: frozenset({UploadState.UPLOADING}),
    # Re-entering uploading is how an interrupted transfer resumes.
    UploadState.UPLOADING: frozenset({UploadState.UPLOADING, UploadState.FINISHING}),
    UploadState.FINISHING: frozenset({UploadState.COMPLETED}),
}


class CancellationToken:
    """Thread-safe flag checked by the uploader between chunks."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()


@dataclass
class UploadSession:
    """One in-flight chunked upload.

    Attributes:
        question: Service question the payload answers.
        tma_core_id: Optional TMA core the answer belongs to.
        upload_token: Token issued by the service for this upload.
        api_token: API token issued alongside the upload token.
        annotation_id: Id of the annotation record the upload fills.
        remote_upload_url: Resumable upload URL, set once the endpoint
            has created the upload.
        bytes_sent: Bytes acknowledged by the resumable endpoint.
        chunk_size: Bytes per chunk.
        total_size: Size of the compressed payload.
        payload_path: Temporary file holding the compressed payload.
        state: Current protocol state.
    """

    question: str
    tma_core_id: int | None = None
    upload_token: str = ""
    api_token: str = ""
    annotation_id: str = ""
    remote_upload_url: str | None = None
    bytes_sent: int = 0
    chunk_size: int = DEFAULT_CHUNK_SIZE
    total_size: int = 0
    payload_path: Path | None = None
    state: UploadState = field(default=UploadState.CREATED)

    @property
    def upload_id(self) -> str:
        """Last path segment of the resumable upload URL."""
        if self.remote_upload_url is None:
            return ""
        path = urlparse(self.remote_upload_url).path.rstrip("/")
        return path.rsplit("/", 1)[-1]

    @property
    def is_terminal(self) -> bool:
        """Whether the session reached completed, failed or abandoned."""
        return self.state in TERMINAL_STATES

    @property
    def remaining(self) -> int:
        """Bytes not yet acknowledged."""
        return max(0, self.total_size - self.bytes_sent)

    def transition(self, new_state: UploadState) -> None:
        """Move to a new state.

        Failed and abandoned are reachable from any non-terminal state.

        Raises:
            UploadError: If the transition is not allowed.
        """
        if self.is_terminal:
            raise UploadError(
                f"Upload session is {self.state.value}; cannot move to {new_state.value}"
            )
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed and new_state not in (
            UploadState.FAILED,
            UploadState.ABANDONED,
        ):
            raise UploadError(
                f"Invalid upload transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(
            "Upload session %s: %s -> %s",
            self.annotation_id or "<new>",
            self.state.value,
            new_state.value,
        )
        self.state = new_state
        if self.is_terminal:
            self.discard_payload()

    def discard_payload(self) -> None:
        """Delete the temporary compressed payload, if any."""
        if self.payload_path is not None:
            self.payload_path.unlink(missing_ok=True)
            self.payload_path = None

    def abandon(self) -> None:
        """Give up on the upload and release the temporary payload."""
        if not self.is_terminal:
            self.transition(UploadState.ABANDONED)
        self.discard_payload()

    def __enter__(self) -> UploadSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.abandon()
