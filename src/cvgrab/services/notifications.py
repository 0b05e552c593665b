from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cvgrab.core.normalize import MailRecord

NEW_EMAIL_EVENT = "newEmail"
MSG_NEW_WITH_PDF = "New email with PDF attachment received!"
MSG_NEW = "New email received!"
MSG_BACKFILLED = "Email updated with PDF attachment data!"


@dataclass(slots=True)
class NotificationEvent:
    message: str
    email: MailRecord
    event: str = NEW_EMAIL_EVENT

    def to_dict(self) -> dict[str, Any]:
        return {"event": self.event, "message": self.message, "email": self.email.to_dict()}


Listener = Callable[[NotificationEvent], None]


class NotificationHub:
    """Fire-and-forget broadcast to whoever is subscribed at publish time."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def subscribe_queue(
        self,
        loop: asyncio.AbstractEventLoop,
    ) -> tuple[asyncio.Queue[NotificationEvent], Callable[[], None]]:
        """Deliver events into an asyncio queue owned by ``loop`` (safe from worker threads)."""
        queue: asyncio.Queue[NotificationEvent] = asyncio.Queue()

        def enqueue(event: NotificationEvent) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        return queue, self.subscribe(enqueue)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: NotificationEvent) -> int:
        with self._lock:
            listeners = list(self._listeners)

        delivered = 0
        for listener in listeners:
            try:
                listener(event)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Notification listener failed: %s", exc)
        return delivered
