"""Stream client: one cancellable streaming exchange at a time.

Hides how a user turn is sent to the backend and how the reply events are
materialized into the shared history. Completion and cancellation race for
the same compare-and-swap on (generation, status), so exactly one of them
wins and a delta that arrives after a stop is dropped.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from ..errors import BackendError, ConversationError, StreamBusyError, TransportError
from ..messages import (
    ContentType,
    Message,
    TextContent,
    content_type,
    ensure_tool_requests_answered,
)
from ..transport import ErrorEvent, FinishEvent, MessageEvent, ReplyRequest, ReplyTransport
from .models import ConversationState, StreamStatus

logger = logging.getLogger(__name__)


class StreamOutcome(str, Enum):
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


class StreamListener(Protocol):
    def on_start(self) -> None: ...

    def on_finish(self, message: Message | None, reason: str) -> None: ...

    def on_error(self, error: ConversationError) -> None: ...


class NullStreamListener:
    def on_start(self) -> None:
        pass

    def on_finish(self, message: Message | None, reason: str) -> None:
        pass

    def on_error(self, error: ConversationError) -> None:
        pass


def merge_messages(existing: Message, incoming: Message) -> Message:
    """Fold a streamed chunk into the message it continues.

    Adjacent text items are concatenated; everything else is appended.
    """
    content = list(existing.content)
    extra = list(incoming.content)
    if (
        content
        and extra
        and content_type(content[-1]) is ContentType.TEXT
        and content_type(extra[0]) is ContentType.TEXT
    ):
        content[-1] = TextContent(text=content[-1].text + extra[0].text)
        extra = extra[1:]
    return existing.model_copy(update={"content": content + extra})


class StreamClient:
    """Owns the single in-flight exchange of a ConversationState.

    Hidden design decisions:
    - Request body construction (session id, working directory, sendToLLM filter)
    - Materialization of reply events into the history
    - Serialized completion/cancellation transitions

    Example:
        client = StreamClient(transport, state, working_dir="/repo")
        task = client.append(create_user_message("hello"))
        outcome = await task
    """

    def __init__(
        self,
        transport: ReplyTransport,
        state: ConversationState,
        working_dir: str,
        listener: StreamListener | None = None,
        commit: Callable[[list[Message]], None] | None = None,
    ):
        """Initialize the stream client.

        Args:
            transport: Backend transport
            state: Conversation state whose history this client appends to
            working_dir: Working directory reported to the backend
            listener: Receives start/finish/error callbacks
            commit: Replaces ``state.messages`` as a whole; defaults to plain
                assignment
        """
        self._transport = transport
        self._state = state
        self._session_id = state.session.id
        self._working_dir = working_dir
        self._listener = listener or NullStreamListener()
        self._commit = commit or self._assign_messages
        self._generation = 0
        self._stopped_generation = -1
        self._task: asyncio.Task[StreamOutcome] | None = None

    @property
    def status(self) -> StreamStatus:
        return self._state.stream_status

    @property
    def session_id(self) -> str:
        """Session id carried by outgoing requests."""
        return self._session_id

    @property
    def working_dir(self) -> str:
        return self._working_dir

    def update_body(self, session_id: str, working_dir: str | None = None) -> None:
        """Re-point every subsequent request at another session."""
        logger.debug("Request body now targets session %s", session_id)
        self._session_id = session_id
        if working_dir is not None:
            self._working_dir = working_dir

    def append(self, message: Message) -> "asyncio.Task[StreamOutcome]":
        """Append a user message and start streaming the reply.

        Must be called from within a running event loop.

        Args:
            message: The user-authored message to send

        Returns:
            Task resolving to the StreamOutcome once the exchange ends

        Raises:
            StreamBusyError: If a stream is already open
            ProtocolInvariantViolation: If the outgoing history has a tool
                request without a response
        """
        if self.status.is_streaming:
            raise StreamBusyError()

        history = [*self._state.messages, message]
        outgoing = [m for m in history if m.send_to_llm]
        ensure_tool_requests_answered(outgoing)

        self._generation += 1
        generation = self._generation
        request = ReplyRequest(
            session_id=self._session_id,
            session_working_dir=self._working_dir,
            messages=outgoing,
        )

        self._commit(history)
        self._state.stream_status = StreamStatus.streaming()
        self._listener.on_start()
        logger.debug("Stream %d started for session %s", generation, self._session_id)

        self._task = asyncio.create_task(self._run(generation, request))
        return self._task

    def stop(self) -> bool:
        """Request cancellation of the current stream without blocking.

        Returns:
            True if a stream was cancelled, False if there was nothing to stop
        """
        if not self.status.is_streaming:
            return False

        self._stopped_generation = self._generation
        self._state.stream_status = StreamStatus.cancelled()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Stream %d cancelled", self._generation)
        return True

    async def wait_closed(self) -> StreamOutcome | None:
        """Wait until the current stream has fully torn down.

        Returns:
            Outcome of the last stream, or None if none was ever started
        """
        task = self._task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return StreamOutcome.CANCELLED
            raise
        except Exception:
            return StreamOutcome.FAILED

    async def _run(self, generation: int, request: ReplyRequest) -> StreamOutcome:
        stream = None
        try:
            stream = await self._transport.stream_reply(request)
            async for event in stream:
                if not self._is_live(generation):
                    logger.debug("Discarding %s event from stream %d", event.type, generation)
                    continue
                if isinstance(event, MessageEvent):
                    self._apply_message(event.message)
                elif isinstance(event, ErrorEvent):
                    raise BackendError(event.error)
                elif isinstance(event, FinishEvent):
                    break

            if stream.finish_reason is None:
                raise TransportError("Stream closed before the backend finished")
            if stream.finish_reason == "error":
                raise BackendError("stream finished with reason 'error'")

            if self._transition(generation, StreamStatus.idle()):
                self._listener.on_finish(self._reply_message(), stream.finish_reason)
                return StreamOutcome.FINISHED
            return StreamOutcome.CANCELLED

        except asyncio.CancelledError:
            if self._stopped_generation == generation:
                return StreamOutcome.CANCELLED
            raise

        except ConversationError as e:
            if self._transition(generation, StreamStatus.error(str(e))):
                logger.warning("Stream %d failed: %s", generation, e)
                self._listener.on_error(e)
                return StreamOutcome.FAILED
            return StreamOutcome.CANCELLED

        except Exception as e:
            logger.exception("Unexpected failure in stream %d", generation)
            error = TransportError(f"Unexpected stream failure: {e}")
            error.__cause__ = e
            if self._transition(generation, StreamStatus.error(str(error))):
                self._listener.on_error(error)
                return StreamOutcome.FAILED
            return StreamOutcome.CANCELLED

        finally:
            if stream is not None:
                await stream.aclose()

    def _is_live(self, generation: int) -> bool:
        return generation == self._generation and self.status.is_streaming

    def _transition(self, generation: int, status: StreamStatus) -> bool:
        """Leave STREAMING for ``status`` unless someone else already did."""
        if not self._is_live(generation):
            return False
        self._state.stream_status = status
        return True

    def _apply_message(self, incoming: Message) -> None:
        messages = self._state.messages
        if messages and incoming.id is not None and messages[-1].id == incoming.id:
            self._commit([*messages[:-1], merge_messages(messages[-1], incoming)])
        else:
            self._commit([*messages, incoming])

    def _reply_message(self) -> Message | None:
        messages = self._state.messages
        if messages and messages[-1].role == "assistant":
            return messages[-1]
        return None

    def _assign_messages(self, messages: list[Message]) -> None:
        self._state.messages = messages
