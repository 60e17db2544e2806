"""Data models for conversation state.

These models define the session identity, stream status and the state a
controller owns for one open chat, independent of how it is persisted.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..messages import Message


class Session(BaseModel):
    """Identity of the backend session a chat is talking to.

    Attributes:
        id: Backend session id
        title: Display title
        message_history_index: Messages below this index are replayed
            history and get no interactive controls; only moves forward
    """

    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    id: str
    title: str = ""
    message_history_index: int = Field(default=0, ge=0, alias="messageHistoryIndex")

    def advance_history_index(self, index: int) -> None:
        """Move the history boundary forward.

        Raises:
            ValueError: If ``index`` is below the current boundary
        """
        if index < self.message_history_index:
            raise ValueError(
                f"messageHistoryIndex only moves forward "
                f"({index} < {self.message_history_index})"
            )
        self.message_history_index = index


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    CANCELLED = "cancelled"
    ERROR = "error"


class StreamStatus(BaseModel):
    """Status of the stream client; ``reason`` is set for errors."""

    model_config = ConfigDict(frozen=True)

    state: StreamState = StreamState.IDLE
    reason: str | None = None

    @classmethod
    def idle(cls) -> "StreamStatus":
        return cls(state=StreamState.IDLE)

    @classmethod
    def streaming(cls) -> "StreamStatus":
        return cls(state=StreamState.STREAMING)

    @classmethod
    def cancelled(cls) -> "StreamStatus":
        return cls(state=StreamState.CANCELLED)

    @classmethod
    def error(cls, reason: str) -> "StreamStatus":
        return cls(state=StreamState.ERROR, reason=reason)

    @property
    def is_streaming(self) -> bool:
        return self.state is StreamState.STREAMING


class ChatRecord(BaseModel):
    """The unit persisted and resumed by the surrounding application."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    message_history_index: int = Field(default=0, ge=0, alias="messageHistoryIndex")
    messages: list[Message] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "messageHistoryIndex": self.message_history_index,
            "messages": [message.to_wire() for message in self.messages],
        }


class SummaryResult(BaseModel):
    """Output of the context-management component.

    Attributes:
        summarized_thread: Messages the summary replaces
        summary_content: Summary text, possibly edited by the user
    """

    summarized_thread: list[Message] = Field(default_factory=list)
    summary_content: str = ""


class ConversationState(BaseModel):
    """Complete state of one open chat.

    ``messages`` is always replaced as a whole, never patched in place, so
    consumers can compare by identity.
    """

    session: Session
    messages: list[Message] = Field(default_factory=list)
    ancestor_messages: list[Message] = Field(default_factory=list)
    pending_input: str | None = None
    stream_status: StreamStatus = Field(default_factory=StreamStatus.idle)

    @field_validator("messages", "ancestor_messages")
    @classmethod
    def _copy_sequence(cls, value: list[Message]) -> list[Message]:
        return list(value)

    @classmethod
    def from_record(cls, record: ChatRecord) -> "ConversationState":
        """Seed state from a persisted chat record."""
        return cls(
            session=Session(
                id=record.id,
                title=record.title,
                message_history_index=record.message_history_index,
            ),
            messages=record.messages,
        )

    def to_record(self) -> ChatRecord:
        return ChatRecord(
            id=self.session.id,
            title=self.session.title,
            message_history_index=self.session.message_history_index,
            messages=self.messages,
        )
