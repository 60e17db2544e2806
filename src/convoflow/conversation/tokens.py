"""Token accounting decoupled from the conversation hot path."""

import asyncio
import logging
from collections.abc import Callable

from ..errors import TransportError
from ..transport import ReplyTransport

logger = logging.getLogger(__name__)


class TokenAccountant:
    """Keeps a per-session token total fresh for display.

    Every ``refresh`` supersedes the previous one; a result that comes back
    after a newer refresh was requested is dropped. Failures are logged and
    leave the last published count in place.
    """

    def __init__(
        self,
        transport: ReplyTransport,
        on_update: Callable[[int], None] | None = None,
    ):
        self._transport = transport
        self._on_update = on_update
        self._total_tokens = 0
        self._request = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    def refresh(self, session_id: str) -> "asyncio.Task[None] | None":
        """Schedule a fetch of the session's token total.

        Returns:
            The scheduled task, or None if ``session_id`` is empty
        """
        if not session_id:
            return None
        self._request += 1
        task = asyncio.create_task(self._fetch(self._request, session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _fetch(self, request: int, session_id: str) -> None:
        try:
            details = await self._transport.fetch_session_details(session_id)
        except TransportError as e:
            logger.warning("Error fetching session token count for %s: %s", session_id, e)
            return

        if request != self._request:
            logger.debug("Dropping stale token count for %s", session_id)
            return

        total = details.metadata.total_tokens
        if total is None:
            return
        self._total_tokens = total
        if self._on_update is not None:
            self._on_update(total)

    async def aclose(self) -> None:
        """Cancel outstanding fetches."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
