"""HTTP client for the slide service.

Every endpoint is derived from the slide's metadata link, which looks like
``https://host/i/<slide>/<token>/SlideScoreMetadata.json``: the other
endpoints replace ``SlideScoreMetadata`` in that URL, and the resumable
upload endpoint lives at ``<app root>/files`` where the app root is
everything before ``/i/``.
"""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from slidebridge.client.types import (
    Answer,
    Question,
    SlideMetadata,
    parse_answers,
    parse_questions,
)
from slidebridge.config import Settings, settings
from slidebridge.exceptions import (
    FinishFailedError,
    ServiceError,
    SessionCreateFailedError,
)
from slidebridge.tma.grid import TmaGridSpec
from slidebridge.upload.protocol import UploadGrant
from slidebridge.upload.tus import TusEndpoint
from slidebridge.utils.logging import redact_slide_url

logger = logging.getLogger(__name__)

METADATA_ENDPOINT = "SlideScoreMetadata"
_APP_ROOT_MARKER = "/i/"

_M = TypeVar("_M", bound=BaseModel)


def _is_success(value: Any) -> bool:
    return str(value).lower() == "true"


def _rejection_reason(error: ServiceError) -> str:
    """Status and the start of the body of an HTTP error answer."""
    if error.status_code is None:
        return str(error)
    body = (error.body or "").strip()[:200]
    return f"HTTP {error.status_code}: {body}" if body else f"HTTP {error.status_code}"


class SlideScoreClient:
    """Synchronous client bound to one slide link.

    Usage:
        with SlideScoreClient(settings.require_metadata_url()) as client:
            metadata = client.get_metadata()
            grid = client.get_tma_positions()
    """

    def __init__(
        self,
        metadata_url: str,
        *,
        config: Settings | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            metadata_url: Slide link ending in ``SlideScoreMetadata.json``.
            config: Settings providing the request timeout.
            client: Existing httpx client to use; not closed by ``close()``.

        Raises:
            ValueError: If the link is not a slide metadata link.
        """
        if METADATA_ENDPOINT not in metadata_url or _APP_ROOT_MARKER not in metadata_url:
            raise ValueError(f"Not a slide metadata link: {metadata_url!r}")
        config = config or settings
        self.metadata_url = metadata_url
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS)
        self._request_logged = False

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def endpoint_url(self, name: str) -> str:
        """Return the URL of a named endpoint for this slide."""
        return self.metadata_url.replace(METADATA_ENDPOINT, name)

    @property
    def app_root(self) -> str:
        return self.metadata_url[: self.metadata_url.index(_APP_ROOT_MARKER)]

    @property
    def resumable_endpoint(self) -> TusEndpoint:
        """tus endpoint for chunked uploads, sharing this client's connection pool."""
        return TusEndpoint(f"{self.app_root}/files", self._client)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def _log_request(self, method: str, url: str) -> None:
        url = redact_slide_url(url)
        if not self._request_logged:
            logger.info("First request to slide service: %s %s", method, url)
            self._request_logged = True
        else:
            logger.debug("%s %s", method, url)

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = self.endpoint_url(endpoint)
        self._log_request(method, url)
        try:
            response = self._client.request(method, url, data=data)
        except httpx.HTTPError as e:
            raise ServiceError(
                f"{endpoint} request failed: {e}", endpoint=endpoint
            ) from e
        if not response.is_success:
            raise ServiceError(
                f"{endpoint} returned HTTP {response.status_code}",
                endpoint=endpoint,
                status_code=response.status_code,
                body=response.text,
            )
        return response

    def _get_json(self, endpoint: str) -> Any:
        response = self._send("GET", endpoint)
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ServiceError(
                f"{endpoint} returned invalid JSON", endpoint=endpoint
            ) from e

    def _get_model(self, endpoint: str, model: type[_M]) -> _M:
        try:
            return model.model_validate(self._get_json(endpoint))
        except ValidationError as e:
            raise ServiceError(
                f"{endpoint} returned an unexpected payload: {e.error_count()} error(s)",
                endpoint=endpoint,
            ) from e

    def _post_form(self, endpoint: str, form: dict[str, str]) -> str:
        return self._send("POST", endpoint, data=form).text

    # -------------------------------------------------------------------------
    # Slide data
    # -------------------------------------------------------------------------

    def get_metadata(self) -> SlideMetadata:
        """Fetch the slide's size and pixel calibration.

        Raises:
            ServiceError: If the request fails. A 503 means the slide is gone
                or the link has expired.
        """
        try:
            metadata = self._get_model(METADATA_ENDPOINT, SlideMetadata)
        except ServiceError as e:
            if e.status_code == 503:
                raise ServiceError(
                    "Slide is unavailable or the link has expired; "
                    "request a new link from the study page",
                    endpoint=METADATA_ENDPOINT,
                    status_code=503,
                ) from e
            raise
        logger.info(
            "Opened slide %s (%dx%d, mpp=%s)",
            metadata.file_name or "<unnamed>",
            metadata.width,
            metadata.height,
            metadata.mpp,
        )
        return metadata

    def get_tma_positions(self) -> TmaGridSpec:
        """Fetch the slide's TMA grid; ``cores`` is empty for non-TMA slides."""
        return self._get_model("TMAPositions", TmaGridSpec)

    def get_questions(self) -> list[Question]:
        return parse_questions(self._send("GET", "Questions").text)

    def get_annotation_questions(self) -> list[str]:
        """Names of questions answered with annotations."""
        return [q.name for q in self.get_questions() if q.is_annotation]

    def get_annotation_shape_questions(self) -> list[str]:
        """Names of questions answered with shapes."""
        return [q.name for q in self.get_questions() if q.is_shape]

    def get_answers(
        self,
        question: str | None = None,
        email: str | None = None,
    ) -> list[Answer]:
        """Fetch answers, optionally filtered by question and email."""
        text = self._send("GET", "Answers").text
        return parse_answers(text, question=question, email=email)

    # -------------------------------------------------------------------------
    # Answer submission
    # -------------------------------------------------------------------------

    def post_annotation(self, question: str, answer: str) -> str:
        """Submit an answer inline and return the service's response text."""
        return self._post_form("AnnoAnswer", {"question": question, "answer": answer})

    def create_upload_session(
        self, question: str, tma_core_id: int | None = None
    ) -> UploadGrant:
        """Open a chunked upload session for a large answer.

        Raises:
            SessionCreateFailedError: If the request fails or the service
                refuses.
        """
        form = {"question": question}
        if tma_core_id is not None and tma_core_id > 0:
            form["tmaCoreId"] = str(tma_core_id)
        try:
            data = json.loads(self._post_form("CreateAnno2", form))
        except ServiceError as e:
            raise SessionCreateFailedError(_rejection_reason(e)) from e
        except json.JSONDecodeError as e:
            raise SessionCreateFailedError("invalid response") from e

        if not isinstance(data, dict) or not _is_success(data.get("success")):
            error = data.get("error") if isinstance(data, dict) else None
            raise SessionCreateFailedError(error or "service refused")
        try:
            grant = UploadGrant(
                upload_token=str(data["uploadToken"]),
                api_token=str(data["apiToken"]),
                annotation_id=str(data["annoUUID"]),
            )
        except KeyError as e:
            raise SessionCreateFailedError(f"response is missing {e.args[0]}") from e
        logger.info("Created annotation record %s", grant.annotation_id)
        return grant

    def finish_upload(self, upload_token: str, upload_id: str, api_token: str) -> None:
        """Tell the service that all bytes of an upload are stored.

        Raises:
            FinishFailedError: If the service rejects the completion,
                including with an HTTP 4xx status.
            ServiceError: If the request could not be delivered or the
                service answered with a 5xx status.
        """
        try:
            text = self._post_form(
                "FinishAnno2Upload",
                {"uploadToken": upload_token, "uploadId": upload_id, "apiToken": api_token},
            )
        except ServiceError as e:
            if e.status_code is not None and e.status_code < 500:
                raise FinishFailedError(_rejection_reason(e)) from e
            raise
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise FinishFailedError("invalid response") from e
        if not isinstance(data, dict) or not _is_success(data.get("success")):
            error = data.get("error") if isinstance(data, dict) else None
            raise FinishFailedError(error or "service refused")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> SlideScoreClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
