"""Resumable chunked upload of large annotation answers.

Answers too large for a single form post are gzip-compressed to a
temporary file and pushed to the service's resumable endpoint in fixed
size chunks. The protocol has three remote steps:

1. ``create_upload_session`` on the metadata API returns the upload and
   API tokens plus the annotation id.
2. Chunks go to the resumable endpoint. Every retry and every resume
   starts from the offset the server reports, never from a local guess.
3. ``finish_upload`` tells the metadata API the bytes are in place.

A transient fault while transferring raises ``TransferInterruptedError``
with the session still open; calling ``upload`` again with that session
resumes it. Retries inside one ``upload`` call are bounded.
"""

from __future__ import annotations

import gzip
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

import httpx
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from slidebridge.config import Settings, settings
from slidebridge.exceptions import (
    FinishFailedError,
    ServiceError,
    SessionCreateFailedError,
    TransferInterruptedError,
    UploadCancelledError,
    UploadError,
)
from slidebridge.upload.session import (
    CancellationToken,
    UploadSession,
    UploadState,
)
from slidebridge.upload.tus import ResumableEndpoint, TusTransientError

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (httpx.TransportError, TusTransientError)


@dataclass(frozen=True)
class UploadGrant:
    """Tokens returned when the service opens an upload session."""

    upload_token: str
    api_token: str
    annotation_id: str


class UploadTransport(Protocol):
    """Metadata API calls the uploader relies on."""

    def create_upload_session(
        self, question: str, tma_core_id: int | None = None
    ) -> UploadGrant:
        """Open an upload session.

        Raises:
            SessionCreateFailedError: If the service refuses.
        """
        ...

    def finish_upload(self, upload_token: str, upload_id: str, api_token: str) -> None:
        """Mark an upload complete.

        Raises:
            FinishFailedError: If the service rejects the completion.
            ServiceError: If the request could not be delivered.
        """
        ...


def write_compressed_payload(payload: str, directory: str | None = None) -> Path:
    """Gzip a payload into a new temporary file and return its path."""
    fd, name = tempfile.mkstemp(prefix="slidebridge_anno_", suffix=".json.gz", dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as raw, gzip.GzipFile(fileobj=raw, mode="wb") as gz:
            gz.write(payload.encode("utf-8"))
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


class ChunkedUploader:
    """Drives an ``UploadSession`` through the chunked upload protocol.

    Usage:
        uploader = ChunkedUploader(client, client.resumable_endpoint)
        session = uploader.open_session("Tumor area", payload)
        while True:
            try:
                uploader.upload(session)
                break
            except TransferInterruptedError:
                continue  # resume from the server offset
    """

    def __init__(
        self,
        transport: UploadTransport,
        endpoint: ResumableEndpoint,
        *,
        config: Settings | None = None,
        retry_wait: wait_base | None = None,
        temp_dir: str | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            transport: Metadata API client.
            endpoint: Resumable upload endpoint.
            config: Settings for chunk size, timeout and retry bound. The chunk
                timeout applies to each network phase of a PATCH, so a
                connection that keeps trickling bytes is not cut off by it.
            retry_wait: Tenacity wait strategy between chunk retries.
            temp_dir: Directory for the compressed payload.
        """
        config = config or settings
        self.transport = transport
        self.endpoint = endpoint
        self.chunk_size = config.UPLOAD_CHUNK_SIZE
        self.chunk_timeout = config.UPLOAD_CHUNK_TIMEOUT_SECONDS
        self.max_chunk_attempts = config.UPLOAD_MAX_CHUNK_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, max=10)
        self.temp_dir = temp_dir

    # -------------------------------------------------------------------------
    # created -> session_opened
    # -------------------------------------------------------------------------

    def open_session(
        self,
        question: str,
        payload: str,
        *,
        tma_core_id: int | None = None,
    ) -> UploadSession:
        """Compress the payload and open a remote upload session.

        Raises:
            SessionCreateFailedError: If the service refuses the session.
        """
        session = UploadSession(
            question=question, tma_core_id=tma_core_id, chunk_size=self.chunk_size
        )
        session.payload_path = write_compressed_payload(payload, self.temp_dir)
        session.total_size = session.payload_path.stat().st_size

        try:
            grant = self.transport.create_upload_session(question, tma_core_id)
        except SessionCreateFailedError:
            session.transition(UploadState.FAILED)
            raise
        except BaseException:
            session.abandon()
            raise

        session.upload_token = grant.upload_token
        session.api_token = grant.api_token
        session.annotation_id = grant.annotation_id
        session.transition(UploadState.SESSION_OPENED)
        logger.info(
            "Opened upload session %s for question %r (%d bytes compressed)",
            session.annotation_id,
            question,
            session.total_size,
        )
        return session

    # -------------------------------------------------------------------------
    # session_opened -> uploading -> finishing -> completed
    # -------------------------------------------------------------------------

    def upload(
        self,
        session: UploadSession,
        *,
        cancel: CancellationToken | None = None,
    ) -> UploadSession:
        """Transfer the payload and complete the upload.

        May be called again with the same session after a
        ``TransferInterruptedError`` to resume.

        Raises:
            TransferInterruptedError: On a transient fault; session stays open.
            UploadCancelledError: If ``cancel`` fired between chunks.
            FinishFailedError: If the service rejects completion.
            UploadError: If the session is in a state that cannot upload,
                or the endpoint rejects the upload outright.
        """
        if session.state in (UploadState.SESSION_OPENED, UploadState.UPLOADING):
            session.transition(UploadState.UPLOADING)
            self._transfer(session, cancel)
            session.transition(UploadState.FINISHING)
        elif session.state is not UploadState.FINISHING:
            raise UploadError(
                f"Cannot upload a session in state {session.state.value}"
            )
        self._finish(session)
        return session

    def _transfer(self, session: UploadSession, cancel: CancellationToken | None) -> None:
        if session.payload_path is None:
            raise UploadError("Upload session has no payload to send")
        try:
            self._sync_offset(session)
            with session.payload_path.open("rb") as payload:
                while session.bytes_sent < session.total_size:
                    if cancel is not None and cancel.cancelled:
                        raise UploadCancelledError("Upload cancelled", session=session)
                    self._send_chunk(session, payload)
        except _TRANSIENT_ERRORS as e:
            logger.warning(
                "Upload %s interrupted at %d/%d bytes: %s",
                session.annotation_id,
                session.bytes_sent,
                session.total_size,
                e,
            )
            raise TransferInterruptedError(
                "Chunk transfer interrupted", session=session, cause=e
            ) from e
        except TransferInterruptedError:
            raise
        except UploadError:
            session.transition(UploadState.FAILED)
            raise

        logger.info(
            "Uploaded %d bytes for annotation %s",
            session.total_size,
            session.annotation_id,
        )

    def _retrying(
        self, retry_on: tuple[type[BaseException], ...] = _TRANSIENT_ERRORS
    ) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_chunk_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(retry_on),
            reraise=True,
        )

    def _sync_offset(self, session: UploadSession) -> None:
        """Create the remote upload or read back the server's offset.

        Creation is retried only when the connection was never made. Any
        later fault may have created an upload whose location was lost,
        so it interrupts the transfer instead of creating a second one.
        """
        if session.remote_upload_url is None:
            for attempt in self._retrying(retry_on=(httpx.ConnectError,)):
                with attempt:
                    session.remote_upload_url = self.endpoint.create(
                        session.total_size,
                        {
                            "filename": session.payload_path.name
                            if session.payload_path
                            else "",
                            "uploadtoken": session.upload_token,
                            "apitoken": session.api_token,
                        },
                    )
            session.bytes_sent = 0
            return
        for attempt in self._retrying():
            with attempt:
                session.bytes_sent = self.endpoint.offset(session.remote_upload_url)

    def _send_chunk(self, session: UploadSession, payload: BinaryIO) -> None:
        assert session.remote_upload_url is not None
        for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    # The last chunk may have landed even though its ack was lost.
                    session.bytes_sent = self.endpoint.offset(session.remote_upload_url)
                    if session.bytes_sent >= session.total_size:
                        return
                payload.seek(session.bytes_sent)
                data = payload.read(session.chunk_size)
                new_offset = self.endpoint.patch(
                    session.remote_upload_url,
                    session.bytes_sent,
                    data,
                    timeout=self.chunk_timeout,
                )
                if new_offset <= session.bytes_sent:
                    raise UploadError(
                        f"Resumable endpoint did not advance past offset {session.bytes_sent}"
                    )
                session.bytes_sent = new_offset
                logger.debug(
                    "Chunk acknowledged: %d/%d bytes",
                    session.bytes_sent,
                    session.total_size,
                )

    def _finish(self, session: UploadSession) -> None:
        try:
            self.transport.finish_upload(
                session.upload_token, session.upload_id, session.api_token
            )
        except FinishFailedError:
            session.transition(UploadState.FAILED)
            raise
        except ServiceError as e:
            raise TransferInterruptedError(
                "Completion request was not delivered", session=session, cause=e
            ) from e
        session.transition(UploadState.COMPLETED)
        logger.info("Completed upload for annotation %s", session.annotation_id)

    # -------------------------------------------------------------------------
    # Convenience
    # -------------------------------------------------------------------------

    def abandon(self, session: UploadSession) -> None:
        """Abandon a session and delete its temporary payload."""
        session.abandon()

    def run(
        self,
        question: str,
        payload: str,
        *,
        tma_core_id: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> UploadSession:
        """Open a session and upload in one call.

        On ``TransferInterruptedError`` the session (attached to the error)
        stays resumable and keeps its payload. Cancellation and any other
        failure leave the session terminal with its payload deleted.
        """
        session = self.open_session(question, payload, tma_core_id=tma_core_id)
        try:
            return self.upload(session, cancel=cancel)
        except UploadCancelledError:
            session.abandon()
            raise
        except TransferInterruptedError:
            raise
        except BaseException:
            session.abandon()
            raise
