"""Outbound notifications consumed by presentation code."""

from __future__ import annotations

import logging
from typing import List, Protocol, Tuple

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Fire-and-forget sink for user-facing workflow messages."""

    def on_success(self, message: str) -> None:
        """Report a completed step or workflow."""

    def on_error(self, message: str) -> None:
        """Report a failed step."""

    def on_info(self, message: str) -> None:
        """Report progress."""

    def on_warning(self, message: str) -> None:
        """Report a neutral problem such as a declined approval."""


class LoggingNotifier:
    """Send notifications to the standard logging system."""

    def __init__(self, name: str = "profileflow.notifications") -> None:
        self._logger = logging.getLogger(name)

    def on_success(self, message: str) -> None:
        self._logger.info(message)

    def on_error(self, message: str) -> None:
        self._logger.error(message)

    def on_info(self, message: str) -> None:
        self._logger.info(message)

    def on_warning(self, message: str) -> None:
        self._logger.warning(message)


class RecordingNotifier:
    """Keep notifications in memory.

    Useful for tests or for front ends that drain messages in batches.
    """

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def on_success(self, message: str) -> None:
        self.messages.append(("success", message))

    def on_error(self, message: str) -> None:
        self.messages.append(("error", message))

    def on_info(self, message: str) -> None:
        self.messages.append(("info", message))

    def on_warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def of_level(self, level: str) -> List[str]:
        return [m for lvl, m in self.messages if lvl == level]

    def clear(self) -> None:
        self.messages.clear()


def safe_notify(notifier: Notifier, level: str, message: str) -> None:
    """Deliver ``message`` without letting a broken sink break the workflow."""
    try:
        getattr(notifier, f"on_{level}")(message)
    except Exception as e:
        logger.error(f"Notifier failed to deliver {level} message {message!r}: {e}")


__all__ = ["Notifier", "LoggingNotifier", "RecordingNotifier", "safe_notify"]
