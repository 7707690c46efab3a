"""Async client for the iTwin Platform Storage REST API."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from types import TracebackType
from typing import IO, TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import ValidationError

from .envelopes import LinksT, ListResult, MutationResult, SingleResult, StatusResult
from .models import ITEM_TYPE_FILE, ITEM_TYPE_FOLDER, ApiModel, ErrorDetails, File, Folder

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.bentley.com"
ACCEPT_JSON = "application/vnd.bentley.itwin-platform.v1+json"
ACCEPT_OCTET_STREAM = "application/vnd.bentley.itwin-platform.v1+octet-stream"
CONTENT_TYPE_JSON_PATCH = "application/json-patch+json"
BLOB_TYPE_HEADER = "x-ms-blob-type"
BLOB_TYPE_BLOCK = "BlockBlob"
UPLOAD_CHUNK_SIZE = 64 * 1024

ModelT = TypeVar("ModelT", bound=ApiModel)
Headers = Mapping[str, str]


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Immutable configuration of an :class:`EndpointClient`."""

    token: str
    base_url: str = API_BASE_URL
    accept: str = ACCEPT_JSON
    download_accept: str = ACCEPT_OCTET_STREAM
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0

    @property
    def authorization(self) -> str:
        """Value of the ``Authorization`` header.

        A token pasted together with its scheme (``Bearer eyJ...``) is used
        verbatim, a bare token gets the ``Bearer`` scheme.
        """
        token = self.token.strip()
        if " " in token:
            return token
        return f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: Settings, *, token: str | None = None) -> ClientConfig:
        token = token or settings.itwin_token
        if not token:
            raise ValueError("An authorization token is required")
        return cls(
            token=token,
            base_url=str(settings.api_base_url).rstrip("/"),
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries,
            retry_backoff_seconds=settings.http_retry_backoff_seconds,
        )


def _decode_json(text: str) -> Any:
    if not text or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def _error_details(text: str) -> ErrorDetails | None:
    payload = _decode_json(text)
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        try:
            return ErrorDetails.model_validate(payload["error"])
        except ValidationError:
            logger.debug("[_error_details] unrecognised error object; body:%s", text)
    return None


def _unwrap_single_property(payload: Any) -> Any:
    # Created/updated entities come wrapped as {"<entityType>": {...}}.
    if not isinstance(payload, dict) or not payload:
        return None
    return next(iter(payload.values()))


def _remaining_size(stream: IO[bytes]) -> int | None:
    try:
        if not stream.seekable():
            return None
        position = stream.tell()
        end = stream.seek(0, os.SEEK_END)
        stream.seek(position)
    except (AttributeError, OSError):
        return None
    return end - position


async def _iter_chunks(stream: IO[bytes], chunk_size: int = UPLOAD_CHUNK_SIZE) -> AsyncIterator[bytes]:
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


class EndpointClient:
    """Thin wrapper around the Storage API returning typed result envelopes.

    HTTP failures are never raised: they are reported through the envelope's
    ``status``/``content``/``error`` fields and left to the caller. A success
    body that is not a JSON object yields an empty envelope with the raw text
    in ``content``. Transport errors from ``httpx`` propagate.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        timeout = httpx.Timeout(config.timeout_seconds)
        self._client = httpx.AsyncClient(
            headers={
                "Accept": config.accept,
                "Authorization": config.authorization,
            },
            timeout=timeout,
            transport=transport,
        )
        # Pre-signed blob URLs carry their own authorization.
        self._blob_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._blob_client.aclose()

    async def __aenter__(self) -> EndpointClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def full_url(self, path: str) -> str:
        """Return ``path`` untouched when it is already absolute, else prefix the API origin."""
        if path[:4].lower() == "http":
            return path
        return f"{self._config.base_url}{path}"

    # GET

    async def get_list(
        self,
        path: str,
        links_model: type[LinksT],
        *,
        params: Mapping[str, Any] | None = None,
        headers: Headers | None = None,
    ) -> ListResult[LinksT]:
        """List files and folders, routing every item by its ``type`` field."""
        response = await self._request("GET", path, params=params, headers=headers)
        result: ListResult[LinksT] = ListResult(status=response.status_code, content=response.text)
        if response.status_code != 200:
            result.error = _error_details(response.text)
            return result

        payload = _decode_json(response.text)
        if not isinstance(payload, dict):
            return result
        for raw in payload.get("items") or []:
            item_type = raw.get("type") if isinstance(raw, dict) else None
            if item_type == ITEM_TYPE_FILE:
                result.files.append(File.model_validate(raw))
            elif item_type == ITEM_TYPE_FOLDER:
                result.folders.append(Folder.model_validate(raw))
        links = payload.get("_links")
        if links is not None:
            result.links = links_model.model_validate(links)
        return result

    async def get_single(
        self,
        path: str,
        model: type[ModelT],
        *,
        field: str,
        params: Mapping[str, Any] | None = None,
        headers: Headers | None = None,
    ) -> SingleResult[ModelT]:
        """Get one entity found under the top-level property ``field`` (e.g. ``"folder"``)."""
        response = await self._request("GET", path, params=params, headers=headers)
        result: SingleResult[ModelT] = SingleResult(status=response.status_code, content=response.text)
        if response.status_code != 200:
            result.error = _error_details(response.text)
            return result

        payload = _decode_json(response.text)
        value = payload.get(field) if isinstance(payload, dict) else None
        if value is not None:
            result.instance = model.model_validate(value)
        return result

    async def download(
        self,
        path: str,
        destination: str | Path,
        *,
        headers: Headers | None = None,
    ) -> StatusResult:
        """Stream a file's content to ``destination``, replacing any existing file."""
        merged = {"Accept": self._config.download_accept, **(headers or {})}
        request = self._client.build_request("GET", self.full_url(path), headers=merged)
        response = await self._send(self._client, request, stream=True)
        try:
            if response.status_code != 200:
                await response.aread()
                return StatusResult(
                    status=response.status_code,
                    content=response.text,
                    error=_error_details(response.text),
                )
            with open(destination, "wb") as fh:
                async for chunk in response.aiter_bytes():
                    fh.write(chunk)
        finally:
            await response.aclose()

        logger.debug("[download] saved; url:%s destination:%s", request.url, destination)
        return StatusResult(status=response.status_code)

    # POST

    async def post(
        self,
        path: str,
        result_model: type[ModelT],
        body: ApiModel | None = None,
        *,
        headers: Headers | None = None,
    ) -> MutationResult[ModelT]:
        """Create an entity (or trigger an action returning one) and unwrap the response."""
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["json"] = body.to_payload()
        response = await self._request("POST", path, headers=headers, **kwargs)
        return _mutation_result(response, result_model, success=response.is_success)

    async def post_action(self, path: str, *, headers: Headers | None = None) -> StatusResult:
        """POST without payload nor result, e.g. restoring an item from the recycle bin."""
        response = await self._request("POST", path, headers=headers)
        result = StatusResult(status=response.status_code, content=response.text)
        if not response.is_success:
            result.error = _error_details(response.text)
        return result

    # PATCH

    async def patch(
        self,
        path: str,
        body: ApiModel,
        result_model: type[ModelT],
        *,
        headers: Headers | None = None,
    ) -> MutationResult[ModelT]:
        merged = {"Content-Type": CONTENT_TYPE_JSON_PATCH, **(headers or {})}
        content = json.dumps(body.to_payload()).encode("utf-8")
        response = await self._request("PATCH", path, headers=merged, content=content)
        return _mutation_result(response, result_model, success=response.status_code == 200)

    # PUT

    async def upload(
        self,
        url: str,
        content: bytes | IO[bytes],
        *,
        headers: Headers | None = None,
    ) -> StatusResult:
        """Upload raw content to a pre-signed blob URL.

        ``bytes`` are sent as-is. A binary file object is streamed in chunks
        from its current position; such an upload is not retried on 429
        since its body can only be read once.
        """
        merged = {BLOB_TYPE_HEADER: BLOB_TYPE_BLOCK, **(headers or {})}
        body: bytes | AsyncIterator[bytes]
        if isinstance(content, (bytes, bytearray)):
            body = bytes(content)
            retry = True
        else:
            size = _remaining_size(content)
            if size is not None:
                merged.setdefault("Content-Length", str(size))
            body = _iter_chunks(content)
            retry = False

        request = self._blob_client.build_request("PUT", url, content=body, headers=merged)
        response = await self._send(self._blob_client, request, retry=retry)
        if response.is_success:
            return StatusResult(status=response.status_code)
        return StatusResult(status=response.status_code, content=response.text)

    # DELETE

    async def delete(self, path: str, *, headers: Headers | None = None) -> StatusResult:
        """Delete an entity; only ``204 No Content`` counts as success."""
        response = await self._request("DELETE", path, headers=headers)
        if response.status_code == 204:
            return StatusResult(status=204)
        return StatusResult(
            status=response.status_code,
            content=response.text,
            error=_error_details(response.text),
        )

    # Internals

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Headers | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        request = self._client.build_request(
            method,
            self.full_url(path),
            params=params,
            headers=dict(headers) if headers else None,
            **kwargs,
        )
        return await self._send(self._client, request)

    async def _send(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        *,
        stream: bool = False,
        retry: bool = True,
    ) -> httpx.Response:
        attempt = 0
        while True:
            response = await client.send(request, stream=stream)
            logger.debug(
                "[_send] %s %s; status:%s", request.method, request.url, response.status_code
            )
            if (
                response.status_code != httpx.codes.TOO_MANY_REQUESTS
                or not retry
                or attempt >= self._config.max_retries
            ):
                return response

            delay = self._retry_delay(response, attempt)
            logger.warning(
                "[_send] throttled, retrying; method:%s url:%s attempt:%s delay:%.2f",
                request.method,
                request.url,
                attempt + 1,
                delay,
            )
            await response.aclose()
            await asyncio.sleep(delay)
            attempt += 1

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = (response.headers.get("Retry-After") or "").strip()
        if retry_after.isdigit():
            return float(retry_after)
        if retry_after:
            try:
                when = parsedate_to_datetime(retry_after)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())
        return self._config.retry_backoff_seconds * (2**attempt)


def _mutation_result(
    response: httpx.Response,
    result_model: type[ModelT],
    *,
    success: bool,
) -> MutationResult[ModelT]:
    result: MutationResult[ModelT] = MutationResult(
        status=response.status_code, content=response.text
    )
    if not success:
        result.error = _error_details(response.text)
        return result

    value = _unwrap_single_property(_decode_json(response.text))
    if value is not None:
        result.instance = result_model.model_validate(value)
    return result
