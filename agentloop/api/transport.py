"""HTTP transport for the Anthropic Messages API.

Owns the httpx client, auth headers, timeout policy and the single
retry for rate-limit / overload responses. Everything above this layer
only sees raw SSE lines (streaming) or a JSON message document.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from agentloop.api.request import MessagesRequest
from agentloop.config import Settings
from agentloop.errors import TransportFailure, TransportTimeout

logger = logging.getLogger(__name__)

_MESSAGES_PATH = "/v1/messages"
_RETRY_STATUSES = frozenset({429, 500, 529})
_MAX_RETRY_AFTER = 30.0


class Transport(Protocol):
    """What the runner needs from an HTTP collaborator."""

    def stream_lines(self, request: MessagesRequest) -> AsyncIterator[str]: ...

    async def send(self, request: MessagesRequest) -> dict[str, Any]: ...


def build_headers(settings: Settings) -> dict[str, str]:
    """Default headers: API version, content type and one auth header.

    An explicit auth token always uses Bearer auth; otherwise the API key
    goes in x-api-key.
    """
    headers: dict[str, str] = {
        "anthropic-version": settings.api_version,
        "content-type": "application/json",
    }
    if settings.anthropic_auth_token:
        headers["authorization"] = f"Bearer {settings.anthropic_auth_token}"
    elif settings.anthropic_api_key:
        headers["x-api-key"] = settings.anthropic_api_key
    else:
        logger.warning(
            "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
            "API calls will fail"
        )
    return headers


def _failure_from_body(status_code: int, body: bytes) -> TransportFailure:
    """Build a TransportFailure from a non-200 response body."""
    try:
        error = json.loads(body).get("error", {})
        error_type = error.get("type", "unknown")
        error_msg = error.get("message", "unknown error")
    except (ValueError, AttributeError):
        error_type = "http_error"
        error_msg = body.decode("utf-8", errors="replace")[:500]
    return TransportFailure(
        f"Anthropic API error ({status_code}): {error_type} - {error_msg}",
        status_code=status_code,
    )


def _retry_delay(response: httpx.Response) -> float:
    try:
        retry_after = float(response.headers.get("retry-after", "1"))
    except ValueError:
        retry_after = 1.0
    return min(max(retry_after, 0.0), _MAX_RETRY_AFTER)


class AnthropicTransport:
    """httpx-backed Transport.

    ``http_transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._http_transport = http_transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        settings = self._settings
        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=build_headers(settings),
            timeout=timeout,
            transport=self._http_transport,
        )
        logger.info("httpx client initialized (base_url: %s)", settings.api_base_url)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> AnthropicTransport:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _client(self) -> httpx.AsyncClient:
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")
        return self._http

    async def send(self, request: MessagesRequest) -> dict[str, Any]:
        """Non-streaming call. Returns the JSON message document."""
        http = self._client()
        payload = request.to_payload()
        payload.pop("stream", None)

        for attempt in range(2):  # initial + 1 retry
            try:
                response = await http.post(_MESSAGES_PATH, json=payload)
            except httpx.TimeoutException as e:
                raise TransportTimeout(f"API request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise TransportFailure(f"HTTP error: {e}") from e

            if response.status_code == 200:
                try:
                    message = response.json()
                except ValueError as e:
                    raise TransportFailure(
                        f"API returned a non-JSON body: {response.text[:200]!r}", status_code=200
                    ) from e
                if not isinstance(message, dict):
                    raise TransportFailure(
                        f"API returned {type(message).__name__} instead of a message object", status_code=200
                    )
                return message

            failure = _failure_from_body(response.status_code, response.content)
            if response.status_code in _RETRY_STATUSES and attempt == 0:
                delay = _retry_delay(response)
                logger.warning("%s -- retrying in %.1fs", failure, delay)
                await asyncio.sleep(delay)
                continue
            raise failure

        raise TransportFailure("API call failed with unknown error")

    async def stream_lines(self, request: MessagesRequest) -> AsyncIterator[str]:
        """Streaming call. Yields raw SSE lines as they arrive.

        Retries once on 429/500/529, always before any line is yielded.
        """
        http = self._client()
        payload = request.to_payload()
        payload["stream"] = True

        for attempt in range(2):
            delay = 0.0
            try:
                async with http.stream("POST", _MESSAGES_PATH, json=payload) as response:
                    if response.status_code != 200:
                        body = await response.aread()
                        failure = _failure_from_body(response.status_code, body)
                        if response.status_code not in _RETRY_STATUSES or attempt > 0:
                            raise failure
                        delay = _retry_delay(response)
                        logger.warning("%s -- retrying in %.1fs", failure, delay)
                    else:
                        async for line in response.aiter_lines():
                            yield line
                        return
            except httpx.TimeoutException as e:
                raise TransportTimeout(f"API stream timed out: {e}") from e
            except httpx.HTTPError as e:
                raise TransportFailure(f"HTTP error: {e}") from e

            await asyncio.sleep(delay)
