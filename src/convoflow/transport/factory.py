from typing import Any

from .base import ReplyTransport
from .http import HttpReplyTransport


def create_transport(transport: str = "http", **config: Any) -> ReplyTransport:
    """Create a backend transport instance.

    This factory function hides which transport implementation is used.

    Args:
        transport: Transport type ('http')
        **config: Transport-specific configuration
            For HTTP:
                - base_url: str (required)
                - secret_key: str | None
                - timeout: float (default: 600.0)
                - connect_timeout: float (default: 10.0)

    Returns:
        Initialized transport instance

    Raises:
        ValueError: If transport type is not supported
        TypeError: If required configuration is missing

    Examples:
        >>> transport = create_transport(
        ...     "http",
        ...     base_url="http://127.0.0.1:3000",
        ...     secret_key="..."
        ... )
    """
    transport_lower = transport.lower()

    if transport_lower == "http":
        if "base_url" not in config:
            raise TypeError("HTTP transport requires 'base_url' in config")
        return HttpReplyTransport(**config)

    raise ValueError(
        f"Unsupported transport: {transport}. "
        f"Supported transports: 'http'"
    )
