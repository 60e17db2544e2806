"""Chat record persistence for convoflow.

Stores the unit the surrounding application resumes from:
``{id, title, messageHistoryIndex, messages}``.
"""

from .base import ChatStore
from .factory import create_chat_store
from .recorder import ChatRecorder

__all__ = [
    "ChatRecorder",
    "ChatStore",
    "create_chat_store",
]
