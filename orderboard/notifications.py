"""
User-facing notifications (toasts) emitted by the sync controller.

Fire-and-forget: subscriber failures are logged and never reach the engine.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Any, List

from .schema import utc_now

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    kind: str
    title: str
    description: str = ""
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


class Notifier:
    """Fans notifications out to subscribers and keeps the most recent ones."""

    def __init__(self, history_size: int = 50):
        self.subscribers: List[Callable[[Notification], None]] = []
        self._recent = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self.subscribers.append(callback)

    def notify(self, kind: str, title: str, description: str = "") -> Notification:
        notification = Notification(kind=kind, title=title, description=description)
        self._recent.append(notification)
        log = logger.error if kind == ERROR else logger.info
        log(f"[{kind}] {title}: {description}")
        for callback in self.subscribers:
            try:
                callback(notification)
            except Exception as e:
                logger.warning(f"Notification subscriber failed: {e}")
        return notification

    def success(self, title: str, description: str = "") -> Notification:
        return self.notify(SUCCESS, title, description)

    def error(self, title: str, description: str = "") -> Notification:
        return self.notify(ERROR, title, description)

    def recent(self, limit: int = 20) -> List[Notification]:
        """Most recent notifications, newest first."""
        return list(reversed(self._recent))[:limit]
