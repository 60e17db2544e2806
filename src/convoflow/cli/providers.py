"""Factory functions for CLI.

Centralizes creation of the transport and chat store from settings so
command implementations never deal with configuration details.
"""

import logging
from collections.abc import Sequence

from rich.console import Console

from ..config import Settings
from ..conversation import ChatContext
from ..messages import Message
from ..store import ChatStore, create_chat_store
from ..transport import ReplyTransport, create_transport


def configure_logging(level: str) -> None:
    """Configure the root logger from a level name such as 'INFO'."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_transport(settings: Settings) -> ReplyTransport:
    """Create the backend transport described by ``settings``."""
    return create_transport(
        "http",
        base_url=settings.api_url,
        secret_key=settings.secret_key,
        timeout=settings.request_timeout,
    )


def get_store(settings: Settings) -> ChatStore:
    """Create the chat store described by ``settings``."""
    if settings.store == "sqlite":
        return create_chat_store("sqlite", path=settings.store_path)
    return create_chat_store(settings.store)


class ConsoleNotifications:
    """Notification sink printing to the terminal."""

    def __init__(self, console: Console):
        self._console = console

    def show(self, title: str, body: str) -> None:
        self._console.print(f"[bold magenta]{title}[/] {body}")


class ConsoleContextLimit:
    """Tells the user the chat is full.

    The CLI has no summarizer, so it never hands a summary back to the
    controller; the chat continues in the same session.
    """

    def __init__(self, console: Console):
        self._console = console

    def on_context_exceeded(self, messages: Sequence[Message]) -> None:
        self._console.print(
            f"[yellow]The conversation ({len(messages)} messages) no longer fits "
            f"the model's context. Start a new chat to continue.[/]"
        )


def get_context(settings: Settings, console: Console) -> ChatContext:
    return ChatContext(
        working_dir=settings.working_dir,
        notifications=ConsoleNotifications(console),
        context_limit=ConsoleContextLimit(console),
    )
