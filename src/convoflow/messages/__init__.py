"""Message model: typed conversation entries and their invariants."""

from .models import (
    CONTENT_VARIANTS,
    ContentItem,
    ContentType,
    ContextLengthExceededContent,
    Message,
    TextContent,
    ToolCall,
    ToolCallResult,
    ToolConfirmationRequestContent,
    ToolRequestContent,
    ToolResponseContent,
    ToolResult,
    content_type,
)
from .operations import (
    command_history,
    create_tool_error_message,
    create_user_message,
    ensure_tool_requests_answered,
    has_context_length_exceeded,
    has_tool_response,
    is_displayable,
    is_user_authored,
    text_content,
    tool_request_ids,
    unmatched_tool_requests,
)

__all__ = [
    "CONTENT_VARIANTS",
    "ContentItem",
    "ContentType",
    "ContextLengthExceededContent",
    "Message",
    "TextContent",
    "ToolCall",
    "ToolCallResult",
    "ToolConfirmationRequestContent",
    "ToolRequestContent",
    "ToolResponseContent",
    "ToolResult",
    "command_history",
    "content_type",
    "create_tool_error_message",
    "create_user_message",
    "ensure_tool_requests_answered",
    "has_context_length_exceeded",
    "has_tool_response",
    "is_displayable",
    "is_user_authored",
    "text_content",
    "tool_request_ids",
    "unmatched_tool_requests",
]
