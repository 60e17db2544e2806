"""Pytest configuration and shared fixtures."""
import asyncio

import pytest

from convoflow.conversation import ChatContext, ConversationState, Session
from convoflow.messages import (
    ContextLengthExceededContent,
    Message,
    TextContent,
    ToolCall,
    ToolCallResult,
    ToolConfirmationRequestContent,
    ToolRequestContent,
    ToolResponseContent,
    ToolResult,
    create_user_message,
)
from convoflow.transport import (
    FinishEvent,
    MessageEvent,
    RecipeRequest,
    RecipeResponse,
    ReplyRequest,
    ReplyStream,
    ReplyTransport,
    SessionDetails,
    SessionMetadata,
)


class FakeTransport(ReplyTransport):
    """Transport that replays scripted reply streams.

    A script item is an event to yield, an exception to raise, or an
    ``asyncio.Event`` the stream waits on before going further.
    """

    def __init__(self):
        self.requests: list[ReplyRequest] = []
        self.scripts: list[list] = []
        self.token_totals: dict[str, int] = {}
        self.session_error: Exception | None = None
        self.detail_requests: list[str] = []
        self.recipe_requests: list[RecipeRequest] = []
        self.recipe_response = RecipeResponse(recipe={"title": "Recipe"})
        self.closed = False

    def script(self, *items) -> None:
        self.scripts.append(list(items))

    async def stream_reply(self, request: ReplyRequest) -> ReplyStream:
        self.requests.append(request)
        items = self.scripts.pop(0) if self.scripts else [FinishEvent()]
        return ReplyStream(self._play(items))

    async def _play(self, items):
        for item in items:
            if isinstance(item, asyncio.Event):
                await item.wait()
            elif isinstance(item, BaseException):
                raise item
            else:
                yield item

    async def fetch_session_details(self, session_id: str) -> SessionDetails:
        self.detail_requests.append(session_id)
        if self.session_error is not None:
            raise self.session_error
        return SessionDetails(
            session_id=session_id,
            metadata=SessionMetadata(total_tokens=self.token_totals.get(session_id)),
        )

    async def create_recipe(self, request: RecipeRequest) -> RecipeResponse:
        self.recipe_requests.append(request)
        return self.recipe_response

    async def close(self) -> None:
        self.closed = True


class MessageFactory:
    """Builders for the message shapes the tests need."""

    @staticmethod
    def user(text: str) -> Message:
        return create_user_message(text)

    @staticmethod
    def assistant(text: str, message_id: str | None = None) -> Message:
        kwargs = {"id": message_id} if message_id else {}
        return Message(role="assistant", content=[TextContent(text=text)], **kwargs)

    @staticmethod
    def tool_request(*tool_ids: str, text: str | None = None) -> Message:
        content = [TextContent(text=text)] if text else []
        content += [
            ToolRequestContent(
                id=tool_id,
                tool_call=ToolCallResult.success(ToolCall(name="shell", arguments={"cmd": "ls"})),
            )
            for tool_id in tool_ids
        ]
        return Message(role="assistant", content=content)

    @staticmethod
    def confirmation(*tool_ids: str, role: str = "user") -> Message:
        return Message(
            role=role,
            content=[
                ToolConfirmationRequestContent(id=tool_id, tool_name="shell", arguments={})
                for tool_id in tool_ids
            ],
        )

    @staticmethod
    def tool_response(*tool_ids: str) -> Message:
        return Message(
            role="user",
            content=[
                ToolResponseContent(id=tool_id, tool_result=ToolResult.success("ok"))
                for tool_id in tool_ids
            ],
        )

    @staticmethod
    def context_exceeded() -> Message:
        return Message(role="assistant", content=[ContextLengthExceededContent(msg="too long")])


class RecordingContext:
    """Collaborator doubles that record every call."""

    def __init__(self):
        self.notifications: list[tuple[str, str]] = []
        self.power_save_calls: list[str] = []
        self.recipes: list[dict] = []
        self.context_exceeded: list[list[Message]] = []

    def show(self, title: str, body: str) -> None:
        self.notifications.append((title, body))

    def start(self) -> None:
        self.power_save_calls.append("start")

    def stop(self) -> None:
        self.power_save_calls.append("stop")

    def open_recipe_editor(self, recipe: dict) -> None:
        self.recipes.append(recipe)

    def on_context_exceeded(self, messages) -> None:
        self.context_exceeded.append(list(messages))

    def as_chat_context(self, working_dir: str = "/work") -> ChatContext:
        return ChatContext(
            working_dir=working_dir,
            notifications=self,
            power_save=self,
            windows=self,
            context_limit=self,
        )


def reply(message: Message) -> MessageEvent:
    return MessageEvent(message=message)


@pytest.fixture
def factory():
    """Return the message builders."""
    return MessageFactory


@pytest.fixture
def transport():
    """Return a scripted fake transport."""
    return FakeTransport()


@pytest.fixture
def recording():
    """Return collaborator doubles that record calls."""
    return RecordingContext()


@pytest.fixture
def state():
    """Return an empty conversation state."""
    return ConversationState(session=Session(id="20240101_120000"))


@pytest.fixture
def event():
    """Return the Message event builder."""
    return reply
