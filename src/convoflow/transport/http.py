"""HTTP transport for the agent backend.

Posts exchanges to ``/reply`` and decodes the server-sent event stream it
returns. Uses httpx for async streaming requests.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import DEFAULT_CONNECT_TIMEOUT, DEFAULT_REQUEST_TIMEOUT, SECRET_KEY_HEADER
from ..errors import TransportError
from .base import ReplyTransport
from .models import (
    ErrorEvent,
    FinishEvent,
    MessageEvent,
    RecipeRequest,
    RecipeResponse,
    ReplyRequest,
    ReplyStream,
    SessionDetails,
    parse_reply_event,
)

logger = logging.getLogger(__name__)

REPLY_PATH = "/reply"
SESSION_PATH = "/sessions/{session_id}"
RECIPE_PATH = "/recipe/create"


class HttpReplyTransport(ReplyTransport):
    """Backend transport over HTTP with server-sent events.

    Hidden design decisions:
    - httpx client initialization and timeouts
    - Secret key authentication header
    - SSE framing and event decoding
    - Mapping httpx failures onto TransportError
    """

    def __init__(
        self,
        base_url: str,
        secret_key: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        **client_kwargs: Any
    ):
        """Initialize the HTTP transport.

        Args:
            base_url: Backend base URL
            secret_key: Shared secret sent as the X-Secret-Key header
            timeout: Seconds without stream activity before the request fails
            connect_timeout: Seconds allowed to establish a connection
            **client_kwargs: Additional kwargs for httpx.AsyncClient
        """
        headers = {}
        if secret_key:
            headers[SECRET_KEY_HEADER] = secret_key
        self._base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            **client_kwargs
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def stream_reply(self, request: ReplyRequest) -> ReplyStream:
        """Open a streaming exchange on ``/reply``.

        The HTTP request is issued lazily, on first iteration of the returned
        stream, so cancelling the consumer also tears down the connection.
        """
        return ReplyStream(self._stream_generator(request.to_wire()))

    async def _stream_generator(
        self,
        body: dict[str, Any],
    ) -> AsyncIterator[MessageEvent | ErrorEvent | FinishEvent]:
        try:
            async with self._client.stream(
                "POST",
                REPLY_PATH,
                json=body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(
                        f"Reply request failed with HTTP {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                async for event in _decode_events(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as e:
            raise TransportError(f"Reply stream failed: {e}") from e

    async def fetch_session_details(self, session_id: str) -> SessionDetails:
        data = await self._request_json("GET", SESSION_PATH.format(session_id=session_id))
        try:
            return SessionDetails.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Malformed session details: {e}") from e

    async def create_recipe(self, request: RecipeRequest) -> RecipeResponse:
        data = await self._request_json("POST", RECIPE_PATH, json=request.to_wire())
        try:
            return RecipeResponse.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Malformed recipe response: {e}") from e

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        if response.is_error:
            raise TransportError(
                f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON") from e

    async def close(self) -> None:
        """Close the httpx client."""
        await self._client.aclose()


async def _decode_events(
    lines: AsyncIterator[str],
) -> AsyncIterator[MessageEvent | ErrorEvent | FinishEvent]:
    """Turn SSE lines into typed events.

    Multi-line ``data:`` fields are joined with newlines; a blank line ends
    an event. Undecodable payloads are logged and skipped.
    """
    data_lines: list[str] = []

    async for line in lines:
        if line == "":
            if data_lines:
                event = _parse_payload("\n".join(data_lines))
                data_lines = []
                if event is not None:
                    yield event
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].removeprefix(" "))

    # Trailing event without a terminating blank line
    if data_lines:
        event = _parse_payload("\n".join(data_lines))
        if event is not None:
            yield event


def _parse_payload(payload: str) -> MessageEvent | ErrorEvent | FinishEvent | None:
    try:
        return parse_reply_event(json.loads(payload))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Skipping undecodable stream event: %s", e)
        return None
