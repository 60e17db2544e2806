"""In-memory chat store.

Simple dict-based storage; data is lost when the application exits.
"""

from ..conversation.models import ChatRecord
from .base import ChatStore


class InMemoryChatStore(ChatStore):
    """In-memory chat store (process lifetime only).

    Suitable for single-session use or testing.
    """

    def __init__(self) -> None:
        self._records: dict[str, ChatRecord] = {}

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""
        pass

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""
        pass

    async def save_chat(self, record: ChatRecord) -> None:
        # Re-insert so dict order tracks save recency
        self._records.pop(record.id, None)
        self._records[record.id] = record.model_copy(deep=True)

    async def load_chat(self, chat_id: str) -> ChatRecord | None:
        record = self._records.get(chat_id)
        return record.model_copy(deep=True) if record else None

    async def list_chats(self, limit: int = 20) -> list[ChatRecord]:
        records = list(reversed(self._records.values()))
        return [record.model_copy(deep=True) for record in records[:limit]]

    async def delete_chat(self, chat_id: str) -> None:
        self._records.pop(chat_id, None)

    @property
    def backend_type(self) -> str:
        return "memory"
