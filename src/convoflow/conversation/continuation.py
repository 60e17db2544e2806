"""Session continuation after a context-length overflow.

When the context-management component hands over a summary, the chat moves
to a fresh backend session: the current history is archived as ancestor
messages, replaced by a single summary message, and every later request is
addressed to the new session id. Submissions wait on an explicit settled
signal rather than a timer.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from ..config import CONTINUED_TITLE_PREFIX, SESSION_ID_FORMAT
from ..messages import Message, TextContent
from .models import ConversationState, SummaryResult
from .stream_client import StreamClient

logger = logging.getLogger(__name__)


def generate_session_id(now: datetime | None = None) -> str:
    """Mint a session id in the backend's timestamp format."""
    return (now or datetime.now()).strftime(SESSION_ID_FORMAT)


def create_summary_message(summary_content: str) -> Message:
    """Build the synthetic message that stands in for summarized history.

    It is sent to the backend so the model keeps the context, but it is not
    rendered as a turn of its own.
    """
    return Message(
        role="user",
        display=False,
        send_to_llm=True,
        content=[TextContent(text=summary_content)],
    )


def reset_messages_with_summary(
    messages: Sequence[Message],
    ancestor_messages: Sequence[Message],
    summary_content: str,
) -> tuple[list[Message], list[Message]]:
    """Archive the current history and start over from a summary.

    Args:
        messages: Current history
        ancestor_messages: Previously archived history
        summary_content: Summary text

    Returns:
        Tuple of (new ancestor messages, new messages)
    """
    return [*ancestor_messages, *messages], [create_summary_message(summary_content)]


class SessionContinuationManager:
    """Moves a conversation onto a new session once a summary is ready.

    Lifecycle: ``begin`` rotates the session identity as soon as the summary
    arrives; ``complete`` performs the history reset, normally right before
    the next submission, and releases everything waiting in
    ``wait_settled``.
    """

    def __init__(
        self,
        state: ConversationState,
        stream_client: StreamClient,
        commit: Callable[[list[Message]], None] | None = None,
        id_factory: Callable[[], str] = generate_session_id,
    ):
        self._state = state
        self._stream_client = stream_client
        self._commit = commit or self._assign_messages
        self._id_factory = id_factory
        self._summary: SummaryResult | None = None
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def pending(self) -> bool:
        """True between ``begin`` and ``complete``."""
        return self._summary is not None

    @property
    def summary_content(self) -> str | None:
        return self._summary.summary_content if self._summary else None

    def begin(self, summary: SummaryResult) -> str | None:
        """Rotate the session identity for a new summary.

        Args:
            summary: Summarized thread and summary text

        Returns:
            The new session id, or None if the summary was empty
        """
        if not summary.summarized_thread:
            return None

        session = self._state.session
        # The boundary indexes the rendered sequence, ancestors first. A resumed
        # record carries no ancestors, so it never moves below the stored value.
        boundary = max(
            len(self._state.ancestor_messages) + len(summary.summarized_thread),
            session.message_history_index,
        )

        previous_id = session.id
        new_id = self._mint_id(previous_id)

        session.advance_history_index(boundary)
        session.id = new_id
        session.title = f"{CONTINUED_TITLE_PREFIX}{previous_id}"
        self._stream_client.update_body(new_id)

        self._summary = summary
        self._settled.clear()
        logger.info("Continuing session %s as %s", previous_id, new_id)
        return new_id

    def update_summary(self, summary_content: str) -> None:
        """Replace the summary text before the continuation completes."""
        if self._summary is None:
            raise RuntimeError("No continuation in progress")
        self._summary = self._summary.model_copy(update={"summary_content": summary_content})

    def complete(self) -> bool:
        """Archive the history under the summary and signal completion.

        Returns:
            True if a pending continuation was completed
        """
        if self._summary is None:
            return False

        ancestors, messages = reset_messages_with_summary(
            self._state.messages,
            self._state.ancestor_messages,
            self._summary.summary_content,
        )
        self._state.ancestor_messages = ancestors
        self._commit(messages)
        self._summary = None
        self._settled.set()
        logger.debug("Continuation settled with %d ancestor messages", len(ancestors))
        return True

    async def wait_settled(self) -> None:
        """Wait until no continuation is pending."""
        await self._settled.wait()

    def _mint_id(self, previous_id: str) -> str:
        new_id = self._id_factory()
        suffix = 1
        candidate = new_id
        while candidate == previous_id:
            candidate = f"{new_id}_{suffix}"
            suffix += 1
        return candidate

    def _assign_messages(self, messages: list[Message]) -> None:
        self._state.messages = messages
