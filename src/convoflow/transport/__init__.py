from .base import ReplyTransport
from .factory import create_transport
from .http import HttpReplyTransport
from .models import (
    ErrorEvent,
    FinishEvent,
    MessageEvent,
    RecipeRequest,
    RecipeResponse,
    ReplyRequest,
    ReplyStream,
    SessionDetails,
    SessionMetadata,
    parse_reply_event,
)

__all__ = [
    "ReplyTransport",
    "create_transport",
    "HttpReplyTransport",
    "ErrorEvent",
    "FinishEvent",
    "MessageEvent",
    "RecipeRequest",
    "RecipeResponse",
    "ReplyRequest",
    "ReplyStream",
    "SessionDetails",
    "SessionMetadata",
    "parse_reply_event",
]
