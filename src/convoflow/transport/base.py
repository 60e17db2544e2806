from abc import ABC, abstractmethod
from typing import Any

from .models import RecipeRequest, RecipeResponse, ReplyRequest, ReplyStream, SessionDetails


class ReplyTransport(ABC):
    """Abstract base class for backend transports.

    This module hides the design decision of how the client talks to the
    agent backend. Implementations must handle:
    - Connection setup and authentication
    - Request encoding and stream decoding
    - Mapping transport failures onto ``TransportError``

    Supports async context manager protocol for proper resource cleanup:
        async with transport:
            stream = await transport.stream_reply(request)
        # Automatically cleaned up
    """

    @abstractmethod
    async def stream_reply(self, request: ReplyRequest) -> ReplyStream:
        """Open a streaming exchange.

        Args:
            request: Session id, working directory and outgoing messages

        Returns:
            ReplyStream yielding Message, Error and Finish events

        Raises:
            TransportError: On connection or HTTP failures
        """

    @abstractmethod
    async def fetch_session_details(self, session_id: str) -> SessionDetails:
        """Fetch session metadata, including the running token total.

        Raises:
            TransportError: On connection or HTTP failures
        """

    @abstractmethod
    async def create_recipe(self, request: RecipeRequest) -> RecipeResponse:
        """Ask the backend to build a recipe from a conversation."""

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ReplyTransport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup,
        a known harmless race in httpx/anyio teardown.
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
