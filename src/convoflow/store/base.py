"""Abstract base class for chat stores.

This module defines the interface for persisting chat records.
The abstraction hides:
- Storage format (JSON, SQLite, etc.)
- Persistence mechanism (file, database, in-memory)
- Connection management
"""

from abc import ABC, abstractmethod

from ..conversation.models import ChatRecord


class ChatStore(ABC):
    """Abstract chat store backend.

    Provides a unified interface for saving and resuming chat records
    across different storage backends.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def save_chat(self, record: ChatRecord) -> None:
        """Insert or replace a chat record."""

    @abstractmethod
    async def load_chat(self, chat_id: str) -> ChatRecord | None:
        """Load a chat record, or None if it does not exist."""

    @abstractmethod
    async def list_chats(self, limit: int = 20) -> list[ChatRecord]:
        """List stored chats, most recently saved first."""

    @abstractmethod
    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat record if present."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""
