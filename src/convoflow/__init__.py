"""
convoflow: conversation state engine for streaming agent chat clients.

Each sub-package hides one design decision: the message model, the backend
transport, the conversation controller and chat persistence.
"""

__version__ = "0.1.0"

from .conversation import (
    ChatContext,
    ChatRecord,
    ConversationController,
    ConversationState,
    Session,
    SummaryResult,
)
from .errors import (
    BackendError,
    ConversationError,
    ProtocolInvariantViolation,
    StreamBusyError,
    TransportError,
)
from .messages import Message, create_user_message, is_user_authored
from .transport import ReplyTransport, create_transport

__all__ = [
    "BackendError",
    "ChatContext",
    "ChatRecord",
    "ConversationController",
    "ConversationError",
    "ConversationState",
    "Message",
    "ProtocolInvariantViolation",
    "ReplyTransport",
    "Session",
    "StreamBusyError",
    "SummaryResult",
    "TransportError",
    "create_transport",
    "create_user_message",
    "is_user_authored",
]
