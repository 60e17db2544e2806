"""Bridges controller change events to a chat store."""

import asyncio
import logging

from ..conversation.models import ChatRecord
from .base import ChatStore

logger = logging.getLogger(__name__)


class ChatRecorder:
    """Change listener that persists the latest chat record.

    Saves are coalesced: while one save is running, further changes only
    replace the record waiting to be written next, so a burst of streamed
    deltas costs at most two writes.

    Example:
        recorder = ChatRecorder(store)
        controller.add_listener(recorder)
        ...
        await recorder.flush()
    """

    def __init__(self, store: ChatStore):
        self._store = store
        self._pending: ChatRecord | None = None
        self._task: asyncio.Task[None] | None = None

    def __call__(self, record: ChatRecord) -> None:
        self._pending = record
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            record, self._pending = self._pending, None
            try:
                await self._store.save_chat(record)
            except Exception:
                logger.exception("Failed to persist chat %s", record.id)

    async def flush(self) -> None:
        """Wait until every recorded change has been written."""
        while self._task is not None and not self._task.done():
            await self._task
