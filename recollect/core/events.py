"""In-process publish/subscribe for pipeline outcome events."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger

from ..utils.exceptions import ExceptionHandler
from .outcome import MemoryOutcome


class EventAction(str, Enum):
    MEMORY_OUTCOME = "utterance.memory_outcome"


@dataclass(slots=True)
class MemoryOutcomeEvent:
    """Emitted once per utterance when the memory pipeline reaches a terminal state."""

    owner: str
    thread_id: str
    outcome: MemoryOutcome
    message_id: int | None = None
    action: str = EventAction.MEMORY_OUTCOME.value
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action,
            "owner": self.owner,
            "thread_id": self.thread_id,
            "outcome": self.outcome.to_dict(),
            "created_at": self.created_at.isoformat(),
        }
        if self.message_id is not None:
            data["message_id"] = self.message_id
        return data


EventHandler = Callable[[MemoryOutcomeEvent], None]


class Subscription:
    def __init__(self, bus: EventBus, handler: EventHandler):
        self._bus = bus
        self.handler = handler

    def close(self) -> None:
        self._bus._remove(self)


class EventBus:
    """Calls subscribers inline. A failing subscriber never affects the publisher."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, handler)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: MemoryOutcomeEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.handler(event)
            except Exception as exc:
                ExceptionHandler.log_exception(
                    exc,
                    level="WARNING",
                    message=f"Subscriber for {event.action} failed: {exc}",
                )
        logger.debug(
            f"Published {event.action} ({event.outcome.state.value}) to {len(subscriptions)} subscribers"
        )

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def close(self) -> None:
        with self._lock:
            self._subscriptions.clear()
