"""Interruption resolution.

Turns the history left behind by a stopped stream into a well-formed one:
an unanswered user turn is withdrawn (its text handed back for the input
field) and tool requests cut off mid-flight get synthesized error responses.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..config import INTERRUPTED_NOTICE
from ..messages import (
    Message,
    create_tool_error_message,
    has_tool_response,
    is_user_authored,
    text_content,
    tool_request_ids,
    unmatched_tool_requests,
)

logger = logging.getLogger(__name__)


@dataclass
class InterruptionResult:
    """Outcome of resolving an interruption.

    Attributes:
        messages: Corrected history (the input list when nothing changed)
        pending_input: Text to restore into the input field, if any
        synthesized: Tool ids that received a synthesized error response
    """

    messages: list[Message]
    pending_input: str | None = None
    synthesized: list[str] = field(default_factory=list)
    changed: bool = False


def close_pending_tool_requests(
    messages: Sequence[Message],
    notice: str,
) -> tuple[list[Message], list[str]]:
    """Answer every still-pending request of the last message with an error.

    Args:
        messages: Conversation history
        notice: Error text carried by each synthesized response

    Returns:
        Tuple of (new history, answered ids); the history is returned
        unchanged when there was nothing to answer
    """
    if not messages:
        return list(messages), []

    unanswered = set(unmatched_tool_requests(messages))
    pending = [tool_id for tool_id in tool_request_ids(messages[-1]) if tool_id in unanswered]
    if not pending:
        return list(messages), []

    return [*messages, create_tool_error_message(pending, notice)], pending


def resolve_interruption(messages: Sequence[Message]) -> InterruptionResult:
    """Correct the history after a stop.

    Args:
        messages: History as it stood once the stream acknowledged cancellation

    Returns:
        InterruptionResult with the corrected history
    """
    current = list(messages)
    if not current:
        return InterruptionResult(messages=current)

    last = current[-1]

    if is_user_authored(last) and not has_tool_response(last):
        # The user's turn never got a reply; withdraw it and keep the text
        logger.debug("Withdrawing unanswered user message %s", last.id)
        return InterruptionResult(
            messages=current[:-1],
            pending_input=text_content(last),
            changed=True,
        )

    if not is_user_authored(last):
        resolved, answered = close_pending_tool_requests(current, INTERRUPTED_NOTICE)
        if answered:
            logger.debug("Closed interrupted tool requests: %s", answered)
            return InterruptionResult(messages=resolved, synthesized=answered, changed=True)

    return InterruptionResult(messages=current)
