"""Typed conversation entries and their content items.

The content union mirrors the backend wire format: each item carries a
``type`` discriminator and camelCase keys, so a ``Message`` can be parsed from
and dumped to the exact JSON the backend speaks.
"""

import time
from enum import Enum
from typing import Annotated, Any, Literal, Union, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..errors import UnhandledContentError


def _new_id() -> str:
    return str(uuid4())


def _now() -> int:
    return int(time.time())


class ContentType(str, Enum):
    """Discriminator values of the content union."""

    TEXT = "text"
    TOOL_REQUEST = "toolRequest"
    TOOL_CONFIRMATION_REQUEST = "toolConfirmationRequest"
    TOOL_RESPONSE = "toolResponse"
    CONTEXT_LENGTH_EXCEEDED = "contextLengthExceeded"


class ToolCall(BaseModel):
    """A tool invocation requested by the backend."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Name of the tool to invoke")
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolCallResult(BaseModel):
    """Outcome of parsing a tool call: pending, a ``ToolCall`` or an error."""

    model_config = ConfigDict(frozen=True)

    status: Literal["pending", "success", "error"]
    value: ToolCall | None = None
    error: str | None = None

    @classmethod
    def pending(cls) -> "ToolCallResult":
        return cls(status="pending")

    @classmethod
    def success(cls, call: ToolCall) -> "ToolCallResult":
        return cls(status="success", value=call)

    @classmethod
    def failure(cls, error: str) -> "ToolCallResult":
        return cls(status="error", error=error)


class ToolResult(BaseModel):
    """Result delivered back to the backend for a tool request."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success", "error"]
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any) -> "ToolResult":
        return cls(status="success", value=value)

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(status="error", error=error)


class TextContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolRequestContent(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["toolRequest"] = "toolRequest"
    id: str
    tool_call: ToolCallResult = Field(alias="toolCall")


class ToolConfirmationRequestContent(BaseModel):
    """A tool call that needs explicit user approval before it runs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["toolConfirmationRequest"] = "toolConfirmationRequest"
    id: str
    tool_name: str = Field(alias="toolName")
    arguments: dict[str, Any] = Field(default_factory=dict)
    prompt: str | None = None


class ToolResponseContent(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: Literal["toolResponse"] = "toolResponse"
    id: str
    tool_result: ToolResult = Field(alias="toolResult")


class ContextLengthExceededContent(BaseModel):
    """Backend marker that the history no longer fits the model's input budget."""

    model_config = ConfigDict(frozen=True)

    type: Literal["contextLengthExceeded"] = "contextLengthExceeded"
    msg: str = ""


ContentItem = Annotated[
    Union[
        TextContent,
        ToolRequestContent,
        ToolConfirmationRequestContent,
        ToolResponseContent,
        ContextLengthExceededContent,
    ],
    Field(discriminator="type"),
]

CONTENT_VARIANTS: tuple[type[BaseModel], ...] = get_args(get_args(ContentItem)[0])

_VARIANT_TYPES: dict[type[BaseModel], ContentType] = {
    variant: ContentType(variant.model_fields["type"].default)
    for variant in CONTENT_VARIANTS
}


def _check_content_variants() -> None:
    """Fail at import time if the union and ``ContentType`` drift apart."""
    missing = set(ContentType) - set(_VARIANT_TYPES.values())
    if missing or len(_VARIANT_TYPES) != len(ContentType):
        names = sorted(t.value for t in missing)
        raise RuntimeError(f"Content union is out of sync with ContentType: {names}")


_check_content_variants()


def content_type(item: object) -> ContentType:
    """Return the variant tag of a content item.

    Raises:
        UnhandledContentError: If ``item`` is not a member of the union
    """
    try:
        return _VARIANT_TYPES[type(item)]
    except KeyError:
        raise UnhandledContentError(item) from None


class Message(BaseModel):
    """A single conversation entry.

    Attributes:
        id: Unique identifier within the session
        role: 'user' or 'assistant'
        created: Unix timestamp in seconds
        display: False for entries kept for protocol correctness only
        send_to_llm: False for entries excluded from backend requests
        content: Ordered content items
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str | None = Field(default_factory=_new_id)
    role: Literal["user", "assistant"]
    created: int = Field(default_factory=_now)
    display: bool = True
    send_to_llm: bool = Field(default=True, alias="sendToLLM")
    content: list[ContentItem] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        """Serialize using the backend's JSON keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> "Message":
        return cls.model_validate(data)
