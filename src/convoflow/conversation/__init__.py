"""Conversation stream controller.

Drives a cancellable streaming exchange, resolves interruptions into
well-formed history edits and hands a summarized conversation over to a
fresh session.
"""

from .collaborators import (
    ChatContext,
    ContextLimitListener,
    NotificationSink,
    PowerSaveBlocker,
    WindowOpener,
)
from .continuation import (
    SessionContinuationManager,
    create_summary_message,
    generate_session_id,
    reset_messages_with_summary,
)
from .controller import ConversationController
from .interruption import InterruptionResult, close_pending_tool_requests, resolve_interruption
from .models import (
    ChatRecord,
    ConversationState,
    Session,
    StreamState,
    StreamStatus,
    SummaryResult,
)
from .stream_client import StreamClient, StreamListener, StreamOutcome, merge_messages
from .tokens import TokenAccountant

__all__ = [
    "ChatContext",
    "ChatRecord",
    "ContextLimitListener",
    "ConversationController",
    "ConversationState",
    "InterruptionResult",
    "NotificationSink",
    "PowerSaveBlocker",
    "Session",
    "SessionContinuationManager",
    "StreamClient",
    "StreamListener",
    "StreamOutcome",
    "StreamState",
    "StreamStatus",
    "SummaryResult",
    "TokenAccountant",
    "WindowOpener",
    "close_pending_tool_requests",
    "create_summary_message",
    "generate_session_id",
    "merge_messages",
    "reset_messages_with_summary",
    "resolve_interruption",
]
