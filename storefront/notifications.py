"""
Notification sink used to tell the shopper what happened.

Calls are fire-and-forget: nothing in the core reads a return value.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Abstract notification interface"""

    @abstractmethod
    def notify(self, level: str, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        ...

    def show_success(self, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        self.notify("success", message, title, duration)

    def show_error(self, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        self.notify("error", message, title, duration)

    def show_warning(self, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        self.notify("warning", message, title, duration)


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the application log"""

    _levels = {"success": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}

    def notify(self, level: str, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        prefix = f"{title}: " if title else ""
        logger.log(self._levels.get(level, logging.INFO), f"[notification:{level}] {prefix}{message}")


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    title: Optional[str] = None
    duration: Optional[int] = None


class RecordingNotificationSink(NotificationSink):
    """Keeps notifications in memory, e.g. to render them later"""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, level: str, message: str, title: Optional[str] = None, duration: Optional[int] = None) -> None:
        self.notifications.append(Notification(level, message, title, duration))

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [n.message for n in self.notifications if level is None or n.level == level]

    def clear(self) -> None:
        self.notifications.clear()
