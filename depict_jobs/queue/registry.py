"""Queue registry: one instance per queue name for the whole process.

Built once at startup by ``create_registry`` and handed to producers,
workers and the admin surface.
"""

import logging
from typing import Any, Callable, Iterator, Optional, Union

from depict_jobs.config import Settings, get_settings
from depict_jobs.errors import QueueNotFound, StoreUnavailable

from .definitions import QUEUE_DEFINITIONS
from .degraded import DegradedQueue
from .job_queue import Queue
from .models import QueueOptions
from .store import JobStore, create_store, probe_store
from .worker import Worker

logger = logging.getLogger(__name__)

AnyQueue = Union[Queue, DegradedQueue]


class QueueRegistry:
    """Named queues sharing one store (or degraded stand-ins without one)."""

    def __init__(
        self,
        store: Optional[JobStore],
        definitions: Optional[dict[str, QueueOptions]] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], int]] = None,
        payload_validator: Optional[Callable[[str, str, Any], dict]] = None,
    ):
        if payload_validator is None:
            # Lazy import to avoid circular imports (payloads -> queue.definitions)
            from depict_jobs.payloads import validate_payload as payload_validator
        self.store = store
        self._validate = payload_validator
        self.settings = settings or get_settings()
        self._clock = clock
        self._queues: dict[str, AnyQueue] = {}
        for name, options in (definitions if definitions is not None else QUEUE_DEFINITIONS).items():
            self.define(name, options)

    @property
    def is_degraded(self) -> bool:
        return self.store is None

    def define(self, name: str, options: Optional[QueueOptions] = None) -> AnyQueue:
        """Create a queue lazily; an existing queue of that name is returned."""
        if name in self._queues:
            return self._queues[name]
        if self.store is None:
            queue: AnyQueue = DegradedQueue(name, options, payload_validator=self._validate)
        else:
            queue = Queue(
                name,
                self.store,
                options,
                key_prefix=self.settings.queue_key_prefix,
                stall_interval_ms=self.settings.stall_interval_ms,
                payload_validator=self._validate,
                clock=self._clock,
            )
        self._queues[name] = queue
        return queue

    def get(self, name: str) -> AnyQueue:
        try:
            return self._queues[name]
        except KeyError:
            raise QueueNotFound(name) from None

    def names(self) -> list[str]:
        return list(self._queues)

    def __contains__(self, name: str) -> bool:
        return name in self._queues

    def __iter__(self) -> Iterator[AnyQueue]:
        return iter(list(self._queues.values()))

    def register_handler(
        self,
        queue_name: str,
        category: Optional[str],
        concurrency: int,
        handler: Callable,
    ) -> Optional[Worker]:
        """
        Start a worker for ``queue_name``.

        Args:
            category: Job category to handle, or '*' / None for all
            concurrency: Max jobs this registration runs at once
            handler: ``async def handler(job) -> result``

        Returns:
            The worker, or None in degraded mode
        """
        queue = self.get(queue_name)
        worker = queue.process(
            category,
            concurrency,
            handler,
            poll_interval_ms=self.settings.poll_interval_ms,
            stall_check_interval_ms=self.settings.stall_check_interval_ms,
        )
        if worker is not None:
            logger.info(f"Registered handler for {queue_name}:{category or '*'} (concurrency {concurrency})")
        return worker

    def on_completed(self, queue_name: str, listener: Callable[[str, str, Any], Any]) -> Callable[[], None]:
        return self.get(queue_name).on_completed(listener)

    def on_failed(self, queue_name: str, listener: Callable[[str, str, str], Any]) -> Callable[[], None]:
        return self.get(queue_name).on_failed(listener)

    def on_stalled(self, queue_name: str, listener: Callable[[str], Any]) -> Callable[[], None]:
        return self.get(queue_name).on_stalled(listener)

    async def close(self, grace_ms: Optional[int] = None) -> None:
        """Close every queue, then release the store connection."""
        grace = self.settings.shutdown_grace_ms if grace_ms is None else grace_ms
        logger.info("Closing all queues...")
        for queue in self:
            await queue.close(grace)
        if self.store is not None:
            await self.store.close()
        logger.info("All queues closed")


async def create_registry(
    settings: Optional[Settings] = None,
    store: Optional[JobStore] = None,
    definitions: Optional[dict[str, QueueOptions]] = None,
    clock: Optional[Callable[[], int]] = None,
) -> QueueRegistry:
    """
    Probe the store once and build the registry.

    An unreachable store (or ``redis_enabled = false``) yields a degraded
    registry instead of an error.
    """
    settings = settings or get_settings()

    if not settings.redis_enabled:
        logger.info("Redis disabled - job queues run in degraded mode")
        return QueueRegistry(None, definitions, settings=settings, clock=clock)

    store = store or create_store(settings)
    try:
        await probe_store(store, timeout=settings.store_probe_timeout_seconds)
    except StoreUnavailable as e:
        logger.warning(f"Job store unavailable - job queues run in degraded mode ({e})")
        try:
            await store.close()
        except Exception as close_error:
            logger.debug(f"Closing unavailable store failed: {close_error}")
        return QueueRegistry(None, definitions, settings=settings, clock=clock)

    registry = QueueRegistry(store, definitions, settings=settings, clock=clock)
    logger.info(f"Job queues initialized: {registry.names()}")
    return registry
