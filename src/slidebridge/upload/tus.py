"""Minimal tus 1.0.0 client for the service's resumable upload endpoint.

Only the three core requests are used:

- ``POST <files>`` creates an upload and returns its URL (``Location``).
- ``HEAD <upload>`` reports the server's current ``Upload-Offset``.
- ``PATCH <upload>`` appends bytes at a given offset.

The server's offset is the only resume point the uploader trusts, so a
chunk whose acknowledgment was lost is never applied twice.
"""

from __future__ import annotations

import base64
from collections.abc import Mapping
from typing import Protocol
from urllib.parse import urljoin

import httpx

from slidebridge.exceptions import UploadError

TUS_VERSION = "1.0.0"
_OFFSET_CONTENT_TYPE = "application/offset+octet-stream"

# Offset conflicts, locks and throttling are retried along with any 5xx.
_TRANSIENT_STATUS = frozenset({409, 423, 429})


class TusError(UploadError):
    """Raised when the resumable endpoint rejects a request.

    Attributes:
        status_code: HTTP status returned by the endpoint.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        suffix = f" (status={status_code})" if status_code is not None else ""
        super().__init__(f"{message}{suffix}")


class TusTransientError(TusError):
    """Raised for endpoint responses that a retry may fix."""


class ResumableEndpoint(Protocol):
    """Interface the uploader needs from a resumable endpoint."""

    def create(self, length: int, metadata: Mapping[str, str]) -> str:
        """Create an upload of ``length`` bytes and return its URL."""
        ...

    def offset(self, upload_url: str) -> int:
        """Return the number of bytes the server has stored."""
        ...

    def patch(
        self,
        upload_url: str,
        offset: int,
        data: bytes,
        *,
        timeout: float | None = None,
    ) -> int:
        """Append ``data`` at ``offset`` and return the new server offset."""
        ...


def encode_metadata(metadata: Mapping[str, str]) -> str:
    """Encode an ``Upload-Metadata`` header value."""
    return ",".join(
        f"{key} {base64.b64encode(value.encode('utf-8')).decode('ascii')}"
        for key, value in metadata.items()
    )


def _check(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    status = response.status_code
    if status in _TRANSIENT_STATUS or status >= 500:
        raise TusTransientError(f"Resumable {action} failed", status_code=status)
    raise TusError(f"Resumable {action} rejected", status_code=status)


def _offset_header(response: httpx.Response, action: str) -> int:
    value = response.headers.get("Upload-Offset")
    if value is None:
        raise TusError(
            f"Resumable {action} response has no Upload-Offset",
            status_code=response.status_code,
        )
    try:
        return int(value)
    except ValueError as e:
        raise TusError(
            f"Resumable {action} returned invalid Upload-Offset {value!r}",
            status_code=response.status_code,
        ) from e


class TusEndpoint:
    """tus client bound to one creation URL and one httpx client."""

    def __init__(self, files_url: str, client: httpx.Client) -> None:
        self.files_url = files_url
        self._client = client

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"Tus-Resumable": TUS_VERSION, **extra}

    def create(self, length: int, metadata: Mapping[str, str]) -> str:
        response = self._client.post(
            self.files_url,
            headers=self._headers(
                **{
                    "Upload-Length": str(length),
                    "Upload-Metadata": encode_metadata(metadata),
                }
            ),
        )
        _check(response, "creation")
        location = response.headers.get("Location")
        if not location:
            raise TusError(
                "Resumable creation response has no Location",
                status_code=response.status_code,
            )
        return urljoin(self.files_url, location)

    def offset(self, upload_url: str) -> int:
        response = self._client.head(upload_url, headers=self._headers())
        _check(response, "offset query")
        return _offset_header(response, "offset query")

    def patch(
        self,
        upload_url: str,
        offset: int,
        data: bytes,
        *,
        timeout: float | None = None,
    ) -> int:
        """Send one chunk and return the offset the server acknowledges.

        ``timeout`` bounds each network phase of the request (connect,
        write, read, pool) separately; it is not a deadline for the whole
        chunk.
        """
        request_timeout = (
            httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT
        )
        response = self._client.patch(
            upload_url,
            content=data,
            headers=self._headers(
                **{
                    "Upload-Offset": str(offset),
                    "Content-Type": _OFFSET_CONTENT_TYPE,
                }
            ),
            timeout=request_timeout,
        )
        _check(response, "chunk transfer")
        return _offset_header(response, "chunk transfer")
