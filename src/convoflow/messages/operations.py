"""Construction helpers and classification predicates for messages.

Every function here matches content items through ``content_type`` so an
unknown variant raises instead of silently falling through.
"""

from collections.abc import Iterable, Sequence

from ..errors import ProtocolInvariantViolation
from .models import (
    ContentType,
    Message,
    TextContent,
    ToolResponseContent,
    ToolResult,
    content_type,
)

_REQUEST_TYPES = (ContentType.TOOL_REQUEST, ContentType.TOOL_CONFIRMATION_REQUEST)


def create_user_message(text: str) -> Message:
    """Build a fresh user-authored message carrying one text item."""
    return Message(
        role="user",
        display=True,
        send_to_llm=True,
        content=[TextContent(text=text)],
    )


def create_tool_error_message(tool_ids: Sequence[str], notice: str) -> Message:
    """Build one user-role message answering each tool id with an error."""
    return Message(
        role="user",
        display=True,
        send_to_llm=True,
        content=[
            ToolResponseContent(id=tool_id, tool_result=ToolResult.failure(notice))
            for tool_id in tool_ids
        ],
    )


def is_user_authored(message: Message) -> bool:
    """Return True if the message represents something the user said.

    Assistant messages never count. A user-role message made only of tool
    confirmation requests is a backend-authored prompt, so it does not count
    either.
    """
    if message.role == "assistant":
        return False
    return not all(
        content_type(item) is ContentType.TOOL_CONFIRMATION_REQUEST
        for item in message.content
    )


def has_tool_response(message: Message) -> bool:
    return any(
        content_type(item) is ContentType.TOOL_RESPONSE for item in message.content
    )


def has_context_length_exceeded(message: Message) -> bool:
    return any(
        content_type(item) is ContentType.CONTEXT_LENGTH_EXCEEDED
        for item in message.content
    )


def text_content(message: Message) -> str:
    """Return the text of the first text item, or an empty string."""
    for item in message.content:
        if content_type(item) is ContentType.TEXT:
            return item.text
    return ""


def tool_request_ids(message: Message) -> list[str]:
    """Return request and confirmation ids in emission order, de-duplicated.

    A tool request and its confirmation prompt share one id and denote a
    single logical request.
    """
    ids: list[str] = []
    for item in message.content:
        if content_type(item) in _REQUEST_TYPES and item.id not in ids:
            ids.append(item.id)
    return ids


def unmatched_tool_requests(messages: Sequence[Message]) -> list[str]:
    """Return ids of tool requests with no later tool response.

    Args:
        messages: Conversation history in canonical order

    Returns:
        Unanswered request ids in emission order
    """
    pending: list[str] = []
    for message in messages:
        for item in message.content:
            kind = content_type(item)
            if kind in _REQUEST_TYPES:
                if item.id not in pending:
                    pending.append(item.id)
            elif kind is ContentType.TOOL_RESPONSE and item.id in pending:
                pending.remove(item.id)
    return pending


def ensure_tool_requests_answered(messages: Sequence[Message]) -> None:
    """Raise if any tool request in ``messages`` lacks a response."""
    pending = unmatched_tool_requests(messages)
    if pending:
        raise ProtocolInvariantViolation(pending)


def is_displayable(message: Message) -> bool:
    """Decide whether a message gets its own entry in the conversation view.

    Standalone tool-response messages are folded into the assistant message
    that issued the request, so they are hidden here.
    """
    if not message.display:
        return False
    if message.role == "assistant":
        return True

    kinds = [content_type(item) for item in message.content]
    only_responses = all(kind is ContentType.TOOL_RESPONSE for kind in kinds)
    has_text = ContentType.TEXT in kinds
    only_confirmations = all(
        kind is ContentType.TOOL_CONFIRMATION_REQUEST for kind in kinds
    )
    return has_text or not only_responses or only_confirmations


def command_history(messages: Iterable[Message]) -> list[str]:
    """Return the user's past inputs, most recent first."""
    history = []
    for message in messages:
        if is_displayable(message) and is_user_authored(message):
            text = text_content(message).strip()
            if text:
                history.append(text)
    history.reverse()
    return history
