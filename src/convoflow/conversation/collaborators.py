"""Interfaces to the collaborators the controller calls out to.

The controller never reaches for global state: the working directory and
every desktop-shell side effect arrive through a ``ChatContext``.
"""

import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..messages import Message


class NotificationSink(Protocol):
    def show(self, title: str, body: str) -> None: ...


class PowerSaveBlocker(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class WindowOpener(Protocol):
    def open_recipe_editor(self, recipe: dict[str, Any]) -> None: ...


class ContextLimitListener(Protocol):
    """Context-management component notified of context-length overflows.

    It is expected to produce a summary and hand it back through
    ``ConversationController.begin_continuation``.
    """

    def on_context_exceeded(self, messages: Sequence[Message]) -> None: ...


class NullNotificationSink:
    def show(self, title: str, body: str) -> None:
        pass


class NullPowerSaveBlocker:
    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


class NullWindowOpener:
    def open_recipe_editor(self, recipe: dict[str, Any]) -> None:
        pass


class NullContextLimitListener:
    def on_context_exceeded(self, messages: Sequence[Message]) -> None:
        pass


@dataclass
class ChatContext:
    """Everything the controller needs from its surroundings."""

    working_dir: str = field(default_factory=os.getcwd)
    notifications: NotificationSink = field(default_factory=NullNotificationSink)
    power_save: PowerSaveBlocker = field(default_factory=NullPowerSaveBlocker)
    windows: WindowOpener = field(default_factory=NullWindowOpener)
    context_limit: ContextLimitListener = field(default_factory=NullContextLimitListener)
