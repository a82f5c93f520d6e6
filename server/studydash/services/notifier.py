"""User-facing notifications (toasts) for one workspace.

Each notification is kept in a bounded history, queued until the next REST
response drains it, and pushed to the workspace's Socket.IO room.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Emit = Callable[[str, dict, str], Awaitable[Any]]


@dataclass
class Notification:
    title: str
    description: str = ""
    variant: str = "default"  # "default" or "destructive"
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)


class Notifier:
    def __init__(self, room: Optional[str] = None, emit: Optional[Emit] = None):
        self.room = room
        self._emit = emit
        self._history: list[Notification] = []
        self._pending: list[Notification] = []
        self._max_history = 100

    async def notify(
        self,
        title: str,
        description: str = "",
        variant: str = "default",
    ) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self._history.append(notification)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
        self._pending.append(notification)

        if self._emit and self.room:
            try:
                await self._emit("notification", notification.to_dict(), self.room)
            except Exception as e:
                logger.error(f"Notifier [{self.room}]: failed to emit '{title}': {e}")
        return notification

    def drain(self) -> list[Notification]:
        """Return and clear notifications not yet delivered over REST."""
        pending, self._pending = self._pending, []
        return pending

    def recent(self, limit: int = 20) -> list[Notification]:
        return self._history[-limit:]
