"""Exception hierarchy for convoflow.

Every error raised by the conversation engine derives from
``ConversationError`` so callers can catch the whole family at once, and
``is_retryable()`` tells the caller whether re-submitting makes sense.
"""


class ConversationError(Exception):
    """Base class for conversation engine errors."""

    def is_retryable(self) -> bool:
        """Override in subclasses to control retry behavior."""
        return False


class TransportError(ConversationError):
    """The streaming exchange failed before or during delivery (retryable)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    def is_retryable(self) -> bool:
        return True


class BackendError(TransportError):
    """The backend reported an error event inside the stream."""

    def __init__(self, message: str):
        super().__init__(f"Backend error: {message}")
        self.backend_message = message


class ProtocolInvariantViolation(ConversationError):
    """A tool request lacks its response when a new turn is about to be sent.

    The interruption resolver repairs this before it can happen on the happy
    path, so seeing it means a local bug rather than a runtime condition.
    """

    def __init__(self, tool_ids: list[str]):
        super().__init__(
            "Tool requests without a response: " + ", ".join(tool_ids)
        )
        self.tool_ids = list(tool_ids)


class StreamBusyError(ConversationError):
    """``append`` was called while a stream is still open."""

    def __init__(self) -> None:
        super().__init__("A stream is already in flight; stop it before appending")


class UnhandledContentError(ConversationError):
    """A content item reached a consumer that does not know its variant."""

    def __init__(self, item: object):
        super().__init__(f"Unhandled content item: {type(item).__name__}")
        self.item = item
