from pydantic import BaseModel, Field
from typing import Callable, Deque, List, Literal, Optional
from collections import deque
from datetime import datetime
import uuid

from loguru import logger

class Notification(BaseModel):
    """User-visible notification shown on the counter terminal"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"
    created_at: datetime = Field(default_factory=datetime.now)

class Notifier:
    """Collects notifications for one agent session until the UI drains them"""

    def __init__(self, max_pending: int = 100):
        self._pending: Deque[Notification] = deque(maxlen=max_pending)
        self._listeners: List[Callable[[Notification], None]] = []

    def notify(self, title: str, description: str, destructive: bool = False) -> Notification:
        notification = Notification(
            title=title,
            description=description,
            variant="destructive" if destructive else "default"
        )
        self._pending.append(notification)

        if destructive:
            logger.warning(f"{title}: {description}")
        else:
            logger.info(f"{title}: {description}")

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("Notification listener failed")

        return notification

    def error(self, title: str, description: str) -> Notification:
        return self.notify(title, description, destructive=True)

    def add_listener(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def pending(self) -> List[Notification]:
        return list(self._pending)

    def drain(self) -> List[Notification]:
        """Return and clear pending notifications"""
        notifications = list(self._pending)
        self._pending.clear()
        return notifications

    def find(self, title: str) -> Optional[Notification]:
        for notification in self._pending:
            if notification.title == title:
                return notification
        return None
