"""Unit tests for the conversation controller."""
import asyncio
import logging

import pytest

from convoflow.config import FINISH_NOTIFICATION_TITLE, STREAM_FAILED_NOTICE
from convoflow.conversation import (
    ChatRecord,
    ConversationController,
    StreamOutcome,
    StreamState,
    SummaryResult,
)
from convoflow.errors import StreamBusyError, TransportError
from convoflow.messages import text_content, unmatched_tool_requests
from convoflow.transport import FinishEvent, RecipeResponse


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def settle() -> None:
    """Let already scheduled background tasks run."""
    for _ in range(3):
        await asyncio.sleep(0)


async def wait_for_messages(controller, count: int) -> None:
    while len(controller.messages) < count:
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(transport, state, recording, clock):
    return ConversationController(
        transport,
        state,
        recording.as_chat_context(),
        clock=clock,
        id_factory=lambda: "20240101_130000",
    )


class TestSubmit:
    """Tests for submitting user input."""

    @pytest.mark.asyncio
    async def test_submit_streams_reply(self, controller, transport, recording, factory, event):
        transport.script(event(factory.assistant("hello", "a1")), FinishEvent())

        task = await controller.submit("hi")
        outcome = await task

        assert outcome is StreamOutcome.FINISHED
        assert [text_content(m) for m in controller.messages] == ["hi", "hello"]
        assert controller.stream_status.state is StreamState.IDLE
        assert recording.power_save_calls == ["start", "stop"]
        assert recording.notifications == []

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, controller, transport):
        assert await controller.submit("   ") is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_submit_while_streaming_is_rejected(self, controller, transport, recording):
        gate = asyncio.Event()
        transport.script(gate, FinishEvent())
        task = await controller.submit("one")

        with pytest.raises(StreamBusyError):
            await controller.submit("two")

        assert recording.power_save_calls[-1] == "stop"
        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_finish_notifies_after_long_idle(self, controller, transport, recording, clock):
        """Test that a notification is shown when the user has been away."""
        gate = asyncio.Event()
        transport.script(gate, FinishEvent())
        task = await controller.submit("long task")

        clock.now = 61.0
        gate.set()
        await task

        assert recording.notifications[0][0] == FINISH_NOTIFICATION_TITLE

    @pytest.mark.asyncio
    async def test_context_length_exceeded_is_reported(self, controller, transport, recording, factory, event):
        transport.script(event(factory.context_exceeded()), FinishEvent())

        await (await controller.submit("hi"))

        assert len(recording.context_exceeded) == 1
        assert len(recording.context_exceeded[0]) == 2

    @pytest.mark.asyncio
    async def test_listeners_receive_records(self, controller, transport, factory, event):
        records: list[ChatRecord] = []
        controller.add_listener(records.append)
        transport.script(event(factory.assistant("hello", "a1")), FinishEvent())

        await (await controller.submit("hi"))

        assert records[-1].id == controller.session.id
        assert len(records[-1].messages) == 2

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, controller, caplog):
        def broken(record):
            raise RuntimeError("disk full")

        controller.add_listener(broken)

        with caplog.at_level(logging.ERROR):
            await (await controller.submit("hi"))

        assert "Chat change listener failed" in caplog.text
        assert controller.stream_status.state is StreamState.IDLE


class TestStop:
    """Tests for stopping an exchange."""

    @pytest.mark.asyncio
    async def test_stop_before_reply_restores_input(self, controller, transport):
        """Test that stopping before any reply withdraws the turn."""
        transport.script(asyncio.Event(), FinishEvent())
        await controller.submit("fix it")

        result = await controller.stop()

        assert result.pending_input == "fix it"
        assert controller.messages == []
        assert controller.stream_status.state is StreamState.IDLE
        assert controller.take_pending_input() == "fix it"
        assert controller.take_pending_input() is None

    @pytest.mark.asyncio
    async def test_stop_mid_tool_call_allows_next_turn(self, controller, transport, factory, event):
        """Test that interrupted tool requests are answered before the next turn."""
        transport.script(event(factory.tool_request("t1")), asyncio.Event(), FinishEvent())
        await controller.submit("run it")
        await wait_for_messages(controller, 2)

        result = await controller.stop()

        assert result.synthesized == ["t1"]
        assert unmatched_tool_requests(controller.messages) == []

        transport.script(FinishEvent())
        outcome = await (await controller.submit("actually, do this"))

        assert outcome is StreamOutcome.FINISHED
        sent = transport.requests[-1].messages
        assert unmatched_tool_requests(sent) == []
        assert text_content(sent[-1]) == "actually, do this"

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, controller):
        assert await controller.stop() is None

    @pytest.mark.asyncio
    async def test_second_stop_changes_nothing(self, controller, transport, factory, event):
        transport.script(event(factory.tool_request("t1")), asyncio.Event(), FinishEvent())
        await controller.submit("run it")
        await wait_for_messages(controller, 2)

        await controller.stop()
        after_first = controller.messages

        assert await controller.stop() is None
        assert controller.messages is after_first

    @pytest.mark.asyncio
    async def test_stop_after_complete_reply_keeps_history(self, controller, transport, factory, event):
        """Test that stopping once the reply is whole leaves the history alone."""
        transport.script(event(factory.assistant("all done", "a1")), asyncio.Event(), FinishEvent())
        await controller.submit("hi")
        await wait_for_messages(controller, 2)
        before = controller.messages

        result = await controller.stop()

        assert not result.changed
        assert controller.messages == before
        assert controller.take_pending_input() is None


class TestErrors:
    """Tests for failure handling and retry."""

    @pytest.mark.asyncio
    async def test_failure_closes_tool_requests(self, controller, transport, factory, event):
        transport.script(event(factory.tool_request("t1")), TransportError("connection reset"))

        outcome = await (await controller.submit("run"))

        assert outcome is StreamOutcome.FAILED
        assert isinstance(controller.last_error, TransportError)
        assert controller.stream_status.state is StreamState.ERROR
        closing = controller.messages[-1]
        assert closing.content[0].tool_result.error == STREAM_FAILED_NOTICE

    @pytest.mark.asyncio
    async def test_retry_resubmits_last_input(self, controller, transport, factory, event):
        transport.script(event(factory.tool_request("t1")), TransportError("connection reset"))
        await (await controller.submit("run"))

        transport.script(FinishEvent())
        outcome = await (await controller.retry_last())

        assert outcome is StreamOutcome.FINISHED
        assert controller.last_error is None
        assert text_content(transport.requests[-1].messages[-1]) == "run"

    @pytest.mark.asyncio
    async def test_retry_before_any_reply_sends_turn_once(self, controller, transport):
        """Test that retrying an unanswered turn does not duplicate it."""
        transport.script(TransportError("connection refused"))
        await (await controller.submit("fix the bug"))

        transport.script(FinishEvent())
        outcome = await (await controller.retry_last())

        assert outcome is StreamOutcome.FINISHED
        sent = transport.requests[-1].messages
        assert [(m.role, text_content(m)) for m in sent] == [("user", "fix the bug")]
        assert [text_content(m) for m in controller.messages] == ["fix the bug"]

    @pytest.mark.asyncio
    async def test_retry_while_streaming_is_rejected(self, controller, transport):
        gate = asyncio.Event()
        transport.script(gate, FinishEvent())
        task = await controller.submit("one")

        with pytest.raises(StreamBusyError):
            await controller.retry_last()

        assert len(controller.messages) == 1
        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_repaired(self, controller, transport, recording, factory, event):
        """Test that a non-transport exception still releases and repairs the chat."""
        transport.script(event(factory.tool_request("t1")), ValueError("bad payload"))

        outcome = await (await controller.submit("run"))

        assert outcome is StreamOutcome.FAILED
        assert isinstance(controller.last_error, TransportError)
        assert isinstance(controller.last_error.__cause__, ValueError)
        assert recording.power_save_calls[-1] == "stop"
        assert unmatched_tool_requests(controller.messages) == []


class TestContinuation:
    """Tests for handing the chat over to a new session."""

    @pytest.fixture
    def thread(self, state, factory):
        messages = [factory.user("a"), factory.assistant("b")]
        state.messages = list(messages)
        return messages

    @pytest.mark.asyncio
    async def test_submission_goes_to_new_session(self, controller, transport, thread):
        """Test that the first submission after a summary uses the new session."""
        new_id = await controller.begin_continuation(
            SummaryResult(summarized_thread=thread, summary_content="summary")
        )
        assert controller.continuation_pending

        await (await controller.submit("next"))

        request = transport.requests[-1]
        assert request.session_id == new_id == "20240101_130000"
        assert [text_content(m) for m in request.messages] == ["summary", "next"]
        assert controller.state.ancestor_messages == thread
        assert [text_content(m) for m in controller.visible_messages] == ["a", "b", "next"]
        assert not controller.continuation_pending

    @pytest.mark.asyncio
    async def test_stop_during_deferred_submission(self, controller, transport, thread):
        """Test that a stop queued behind a continuation hands the text back."""
        await controller.begin_continuation(
            SummaryResult(summarized_thread=thread, summary_content="summary")
        )

        async with controller._lock:
            submission = asyncio.create_task(controller.submit("next"))
            await asyncio.sleep(0)
            assert await controller.stop() is None

        assert await submission is None
        assert transport.requests == []
        assert controller.take_pending_input() == "next"
        assert [text_content(m) for m in controller.messages] == ["summary"]

    @pytest.mark.asyncio
    async def test_empty_summary_keeps_session(self, controller, state):
        assert await controller.begin_continuation(SummaryResult()) is None
        assert controller.session.id == "20240101_120000"

    @pytest.mark.asyncio
    async def test_two_continuations_in_a_row(self, transport, state, recording, clock, factory):
        """Test that a second overflow rotates the session again."""
        session_ids = iter(["20240101_130000", "20240101_140000"])
        controller = ConversationController(
            transport,
            state,
            recording.as_chat_context(),
            clock=clock,
            id_factory=lambda: next(session_ids),
        )
        first_thread = [
            factory.user(str(n)) if n % 2 == 0 else factory.assistant(str(n))
            for n in range(6)
        ]
        state.messages = list(first_thread)

        await controller.begin_continuation(
            SummaryResult(summarized_thread=first_thread, summary_content="first summary")
        )
        await (await controller.submit("next"))
        second_thread = list(controller.messages)

        new_id = await controller.begin_continuation(
            SummaryResult(summarized_thread=second_thread, summary_content="second summary")
        )

        assert new_id == "20240101_140000"
        assert controller.session.id == new_id
        assert controller.session.title == "Continued from 20240101_130000"
        assert controller.session.message_history_index == 8

        await (await controller.submit("again"))

        request = transport.requests[-1]
        assert request.session_id == "20240101_140000"
        assert [text_content(m) for m in request.messages] == ["second summary", "again"]
        assert controller.state.ancestor_messages == [*first_thread, *second_thread]
        assert [text_content(m) for m in controller.visible_messages] == [
            "0", "1", "2", "3", "4", "5", "next", "again"
        ]


class TestQueries:
    """Tests for derived views, tokens and recipes."""

    @pytest.mark.asyncio
    async def test_token_count_follows_commits(self, controller, transport):
        transport.token_totals["20240101_120000"] = 42
        totals: list[int] = []
        controller.add_token_listener(totals.append)

        await (await controller.submit("hi"))
        await settle()

        assert controller.token_count == 42
        assert totals[-1] == 42

    def test_command_history(self, controller, state, factory):
        state.messages = [factory.user("one"), factory.assistant("x"), factory.user("two")]

        assert controller.command_history == ["two", "one"]

    def test_open_resumes_record(self, transport, factory):
        record = ChatRecord(
            id="20231231_235959",
            title="old chat",
            message_history_index=1,
            messages=[factory.user("a"), factory.assistant("b")],
        )

        controller = ConversationController.open(transport, record)

        assert controller.session.id == "20231231_235959"
        assert controller.session.message_history_index == 1
        assert len(controller.messages) == 2

    @pytest.mark.asyncio
    async def test_create_recipe_opens_editor(self, controller, transport, recording, state, factory):
        state.messages = [factory.user("a")]

        recipe = await controller.create_recipe(title="Deploy")

        assert recipe == {"title": "Recipe"}
        assert recording.recipes == [recipe]
        assert transport.recipe_requests[0].title == "Deploy"

    @pytest.mark.asyncio
    async def test_create_recipe_failure_is_logged(self, controller, transport, recording, caplog):
        transport.recipe_response = RecipeResponse(error="no messages")

        with caplog.at_level(logging.WARNING):
            assert await controller.create_recipe() is None

        assert "Failed to create recipe: no messages" in caplog.text
        assert recording.recipes == []
