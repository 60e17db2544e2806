"""Wire models for the backend contract.

Request bodies use the backend's snake_case keys; events are parsed from the
``data:`` payloads of the reply stream.
"""

from collections.abc import AsyncIterator
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..messages import Message


class ReplyRequest(BaseModel):
    """Body of a streaming exchange request."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    session_working_dir: str
    messages: list[Message] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "session_working_dir": self.session_working_dir,
            "messages": [message.to_wire() for message in self.messages],
        }


class MessageEvent(BaseModel):
    type: Literal["Message"] = "Message"
    message: Message


class ErrorEvent(BaseModel):
    type: Literal["Error"] = "Error"
    error: str


class FinishEvent(BaseModel):
    type: Literal["Finish"] = "Finish"
    reason: str = "stop"


ReplyEvent = Annotated[
    Union[MessageEvent, ErrorEvent, FinishEvent],
    Field(discriminator="type"),
]

_reply_event_adapter: TypeAdapter[ReplyEvent] = TypeAdapter(ReplyEvent)


def parse_reply_event(data: dict[str, Any]) -> MessageEvent | ErrorEvent | FinishEvent:
    """Validate one decoded ``data:`` payload into a typed event."""
    return _reply_event_adapter.validate_python(data)


class ReplyStream:
    """Wrapper for a reply stream that records how it ended.

    Acts as an async iterator of events while remembering the finish reason,
    which only becomes available at the end of the stream.

    Usage:
        stream = await transport.stream_reply(request)
        async for event in stream:
            handle(event)
        print(stream.finish_reason)  # "stop", "error" or None if cut short
    """

    def __init__(self, async_iter: AsyncIterator[MessageEvent | ErrorEvent | FinishEvent]):
        self._iter = async_iter
        self._finish_reason: str | None = None

    @property
    def finish_reason(self) -> str | None:
        """Reason carried by the Finish event (None until one arrives)."""
        return self._finish_reason

    @property
    def finished(self) -> bool:
        return self._finish_reason is not None

    def __aiter__(self) -> "ReplyStream":
        return self

    async def __anext__(self) -> MessageEvent | ErrorEvent | FinishEvent:
        event = await self._iter.__anext__()
        if isinstance(event, FinishEvent):
            self._finish_reason = event.reason
        return event

    async def aclose(self) -> None:
        """Close the underlying iterator and its connection."""
        aclose = getattr(self._iter, "aclose", None)
        if aclose is not None:
            await aclose()


class SessionMetadata(BaseModel):
    """Per-session metadata; only the token total is consumed here."""

    model_config = ConfigDict(extra="allow")

    total_tokens: int | None = Field(default=None, description="Tokens used by the session")
    description: str | None = None
    working_dir: str | None = None
    message_count: int | None = None


class SessionDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    session_id: str | None = None
    metadata: SessionMetadata
    messages: list[Message] = Field(default_factory=list)


class RecipeRequest(BaseModel):
    messages: list[Message]
    title: str = ""
    description: str = ""

    def to_wire(self) -> dict[str, Any]:
        return {
            "messages": [message.to_wire() for message in self.messages],
            "title": self.title,
            "description": self.description,
        }


class RecipeResponse(BaseModel):
    recipe: dict[str, Any] | None = None
    error: str | None = None
