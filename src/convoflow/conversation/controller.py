"""Conversation controller: the single actor that owns a chat.

Wires the stream client, interruption resolver, continuation manager and
token accountant around one ConversationState. Every mutation of the history
goes through ``_commit`` so listeners (persistence, token accounting) see
each whole-sequence replacement exactly once.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from ..config import (
    FINISH_NOTIFICATION_BODY,
    FINISH_NOTIFICATION_TITLE,
    NOTIFY_AFTER_SECONDS,
    STREAM_FAILED_NOTICE,
)
from ..errors import ConversationError, StreamBusyError, TransportError
from ..messages import (
    Message,
    command_history,
    create_user_message,
    has_context_length_exceeded,
    has_tool_response,
    is_displayable,
    is_user_authored,
    text_content,
)
from ..transport import RecipeRequest, ReplyTransport
from .collaborators import ChatContext
from .continuation import SessionContinuationManager, generate_session_id
from .interruption import InterruptionResult, close_pending_tool_requests, resolve_interruption
from .models import ChatRecord, ConversationState, Session, StreamStatus, SummaryResult
from .stream_client import StreamClient, StreamOutcome
from .tokens import TokenAccountant

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChatRecord], None]


class ConversationController:
    """Drives one open chat against the backend.

    Entry points are serialized through an asyncio lock; the stream itself
    runs in a background task so ``stop`` can be called at any time.

    Example:
        async with create_transport("http", base_url=url) as transport:
            controller = ConversationController.open(transport, record, context)
            task = await controller.submit("fix the bug")
            ...
            await controller.stop()   # withdraws the turn, sets pending_input
    """

    def __init__(
        self,
        transport: ReplyTransport,
        state: ConversationState,
        context: ChatContext | None = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = generate_session_id,
    ):
        """Initialize the controller.

        Args:
            transport: Backend transport
            state: Conversation state this controller owns from now on
            context: Working directory and desktop-shell collaborators
            clock: Monotonic clock used for the finish notification cooldown
            id_factory: Mints session ids on continuation
        """
        self._transport = transport
        self._state = state
        self._context = context or ChatContext()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._listeners: list[ChangeListener] = []
        self._token_listeners: list[Callable[[int], None]] = []
        self._last_interaction = clock()
        self._last_error: ConversationError | None = None
        self._stop_queued = False
        self._deferred_submissions = 0

        self._stream_client = StreamClient(
            transport,
            state,
            working_dir=self._context.working_dir,
            listener=self,
            commit=self._commit,
        )
        self._continuation = SessionContinuationManager(
            state,
            self._stream_client,
            commit=self._commit,
            id_factory=id_factory,
        )
        self._tokens = TokenAccountant(transport, on_update=self._publish_tokens)

    @classmethod
    def open(
        cls,
        transport: ReplyTransport,
        record: ChatRecord | None = None,
        context: ChatContext | None = None,
        **kwargs: Any
    ) -> "ConversationController":
        """Open a chat, resuming ``record`` or starting a fresh session."""
        if record is None:
            state = ConversationState(session=Session(id=generate_session_id()))
        else:
            logger.debug("Resuming chat %s with %d messages", record.id, len(record.messages))
            state = ConversationState.from_record(record)
        return cls(transport, state, context=context, **kwargs)

    # ------------------------------------------------------------------
    # Observable state

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def session(self) -> Session:
        return self._state.session

    @property
    def messages(self) -> list[Message]:
        return self._state.messages

    @property
    def stream_status(self) -> StreamStatus:
        return self._state.stream_status

    @property
    def last_error(self) -> ConversationError | None:
        """Most recent stream failure, cleared by the next submission."""
        return self._last_error

    @property
    def token_count(self) -> int:
        return self._tokens.total_tokens

    @property
    def continuation_pending(self) -> bool:
        return self._continuation.pending

    @property
    def visible_messages(self) -> list[Message]:
        """Ancestor and live messages that get an entry of their own."""
        return [
            message
            for message in [*self._state.ancestor_messages, *self._state.messages]
            if is_displayable(message)
        ]

    @property
    def command_history(self) -> list[str]:
        """Previous user inputs, most recent first."""
        return command_history([*self._state.ancestor_messages, *self._state.messages])

    def take_pending_input(self) -> str | None:
        """Return the text to restore into the input field, clearing it."""
        text = self._state.pending_input
        self._state.pending_input = None
        return text

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback receiving the chat record after every change."""
        self._listeners.append(listener)

    def add_token_listener(self, listener: Callable[[int], None]) -> None:
        self._token_listeners.append(listener)

    # ------------------------------------------------------------------
    # Entry points

    async def submit(self, text: str) -> "asyncio.Task[StreamOutcome] | None":
        """Send user input as a new turn.

        A submission made while a continuation is pending is deferred until
        the history reset has completed, so it is delivered under the new
        session id.

        Returns:
            The stream task, or None when nothing was sent

        Raises:
            StreamBusyError: If a stream is still open
        """
        if not text.strip():
            return None

        self._context.power_save.start()
        self._last_interaction = self._clock()

        deferred = self._continuation.pending
        if deferred:
            self._deferred_submissions += 1
        try:
            async with self._lock:
                if self._state.stream_status.is_streaming:
                    self._context.power_save.stop()
                    raise StreamBusyError()

                if self._continuation.pending:
                    self._continuation.complete()
                await self._continuation.wait_settled()

                if self._stop_queued:
                    # Stopped while waiting on the continuation: hand the text back
                    self._stop_queued = False
                    logger.debug("Applying queued stop to the deferred submission")
                    self._context.power_save.stop()
                    self._state.pending_input = text
                    return None

                self._last_error = None
                try:
                    return self._stream_client.append(create_user_message(text))
                except ConversationError:
                    self._context.power_save.stop()
                    raise
        finally:
            if deferred:
                self._deferred_submissions -= 1
                if not self._deferred_submissions:
                    self._stop_queued = False

    async def stop(self) -> InterruptionResult | None:
        """Stop the in-flight exchange and repair the history.

        A stop that arrives while a submission is waiting on a continuation
        is queued and applied to that submission once the continuation
        settles.

        Returns:
            The resolution that was applied, or None if nothing was stopped
        """
        self._last_interaction = self._clock()

        if self._deferred_submissions:
            self._stop_queued = True
            logger.debug("Stop queued until the continuation settles")
            return None

        cancelled = self._stream_client.stop()
        self._context.power_save.stop()
        if not cancelled:
            return None

        async with self._lock:
            await self._stream_client.wait_closed()
            return self._apply_resolution(resolve_interruption(self._state.messages))

    async def retry_last(self) -> "asyncio.Task[StreamOutcome] | None":
        """Re-submit the text of the last user-authored message.

        A turn that never got a reply is taken out of the history first, so
        the backend sees it once.

        Raises:
            StreamBusyError: If a stream is still open
        """
        if self._state.stream_status.is_streaming:
            raise StreamBusyError()

        messages = self._state.messages
        for index in range(len(messages) - 1, -1, -1):
            message = messages[index]
            if not is_user_authored(message) or has_tool_response(message):
                continue
            text = text_content(message)
            if not text.strip():
                continue
            if index == len(messages) - 1:
                logger.debug("Withdrawing unanswered message %s before retry", message.id)
                self._commit(messages[:-1])
            return await self.submit(text)
        return None

    async def begin_continuation(self, summary: SummaryResult) -> str | None:
        """Hand the chat over to a fresh session once a summary is ready.

        Returns:
            The new session id, or None if the summary thread was empty
        """
        async with self._lock:
            new_id = self._continuation.begin(summary)
            if new_id is not None:
                self._notify_listeners()
                self._tokens.refresh(new_id)
            return new_id

    def update_summary(self, summary_content: str) -> None:
        """Replace the pending summary text, e.g. after the user edited it."""
        self._continuation.update_summary(summary_content)

    async def create_recipe(self, title: str = "", description: str = "") -> dict[str, Any] | None:
        """Turn the conversation into a recipe and open it in the editor.

        Failures are logged; the conversation is never affected.
        """
        logger.info("Making recipe from chat %s", self._state.session.id)
        request = RecipeRequest(messages=self._state.messages, title=title, description=description)
        try:
            response = await self._transport.create_recipe(request)
        except TransportError as e:
            logger.warning("Failed to create recipe: %s", e)
            return None

        if response.error:
            logger.warning("Failed to create recipe: %s", response.error)
            return None
        if not response.recipe:
            logger.warning("Failed to create recipe: no recipe data received")
            return None

        self._context.windows.open_recipe_editor(response.recipe)
        return response.recipe

    async def wait(self) -> StreamOutcome | None:
        """Wait for the current stream, if any, to end."""
        return await self._stream_client.wait_closed()

    async def aclose(self) -> None:
        """Stop streaming and cancel background work."""
        if self._stream_client.stop():
            await self._stream_client.wait_closed()
            self._state.stream_status = StreamStatus.idle()
        await self._tokens.aclose()

    # ------------------------------------------------------------------
    # StreamListener

    def on_start(self) -> None:
        logger.debug("Streaming reply for session %s", self._state.session.id)

    def on_finish(self, message: Message | None, reason: str) -> None:
        self._context.power_save.stop()

        idle_for = self._clock() - self._last_interaction
        if idle_for > NOTIFY_AFTER_SECONDS:
            self._context.notifications.show(FINISH_NOTIFICATION_TITLE, FINISH_NOTIFICATION_BODY)

        if message is not None and has_context_length_exceeded(message):
            logger.info("Context length exceeded in session %s", self._state.session.id)
            self._context.context_limit.on_context_exceeded(list(self._state.messages))

    def on_error(self, error: ConversationError) -> None:
        self._last_error = error
        self._context.power_save.stop()
        repaired, answered = close_pending_tool_requests(self._state.messages, STREAM_FAILED_NOTICE)
        if answered:
            logger.debug("Closed tool requests left open by the failure: %s", answered)
            self._commit(repaired)

    # ------------------------------------------------------------------

    def _apply_resolution(self, result: InterruptionResult) -> InterruptionResult:
        if result.changed:
            self._commit(result.messages)
        if result.pending_input is not None:
            self._state.pending_input = result.pending_input
        self._state.stream_status = StreamStatus.idle()
        return result

    def _commit(self, messages: list[Message]) -> None:
        self._state.messages = messages
        self._notify_listeners()
        self._tokens.refresh(self._state.session.id)

    def _notify_listeners(self) -> None:
        record = self._state.to_record()
        for listener in self._listeners:
            try:
                listener(record)
            except Exception:
                logger.exception("Chat change listener failed")

    def _publish_tokens(self, total: int) -> None:
        for listener in self._token_listeners:
            listener(total)
