"""Per-queue event channel.

Listeners for ``completed``, ``failed``, ``stalled`` and ``progress`` may be
plain functions or coroutine functions. A failing listener is logged and
never affects the job or the other listeners.
"""

import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"
STALLED = "stalled"
PROGRESS = "progress"
EVENTS = (COMPLETED, FAILED, STALLED, PROGRESS)


class QueueEvents:
    """Observer lists for one queue."""

    def __init__(self, queue_name: str):
        self.queue_name = queue_name
        self._listeners: dict[str, list[Callable]] = {event: [] for event in EVENTS}

    def on(self, event: str, listener: Callable) -> Callable[[], None]:
        """Subscribe; returns a function that unsubscribes."""
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event: {event}")
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    async def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                outcome = listener(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(
                    f"Listener for '{event}' on queue {self.queue_name} failed",
                    extra={"queue": self.queue_name},
                )
