"""Forward job outcomes to the real-time notification service.

The queue only knows about its own events; this module subscribes to
completed/failed events and pushes them to whatever ``NotificationBridge``
is attached. Delivery problems are logged and never reach the worker.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

import httpx

from depict_jobs.queue.registry import QueueRegistry

logger = logging.getLogger(__name__)


class NotificationBridge(Protocol):
    async def job_completed(self, queue_name: str, job_id: str, category: str, result: Any) -> None: ...

    async def job_failed(self, queue_name: str, job_id: str, category: str, reason: str) -> None: ...


def attach_notification_bridge(
    registry: QueueRegistry,
    bridge: NotificationBridge,
    queue_names: Optional[Iterable[str]] = None,
) -> list:
    """
    Subscribe ``bridge`` to completed/failed events.

    Args:
        queue_names: Queues to watch (default: all registered queues)

    Returns:
        Unsubscribe callables, one per subscription
    """
    names = list(queue_names) if queue_names is not None else registry.names()
    unsubscribers = []

    for name in names:
        async def on_completed(job_id, category, result, _queue=name):
            await bridge.job_completed(_queue, job_id, category, result)

        async def on_failed(job_id, category, reason, _queue=name):
            await bridge.job_failed(_queue, job_id, category, reason)

        unsubscribers.append(registry.on_completed(name, on_completed))
        unsubscribers.append(registry.on_failed(name, on_failed))

    logger.info(f"Notification bridge attached to queues: {names}")
    return unsubscribers


class HttpNotificationBridge:
    """Posts job events to the notification service webhook."""

    def __init__(
        self,
        webhook_url: str,
        service_token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.webhook_url = webhook_url
        self.service_token = service_token
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._timeout, connect=5.0))
        return self._client

    async def job_completed(self, queue_name: str, job_id: str, category: str, result: Any) -> None:
        await self._post({
            "event": "job.completed",
            "queue": queue_name,
            "job_id": job_id,
            "category": category,
            "result": result,
        })

    async def job_failed(self, queue_name: str, job_id: str, category: str, reason: str) -> None:
        await self._post({
            "event": "job.failed",
            "queue": queue_name,
            "job_id": job_id,
            "category": category,
            "reason": reason,
        })

    async def _post(self, event: dict) -> bool:
        event["timestamp"] = datetime.now(timezone.utc).isoformat()
        headers = {"Content-Type": "application/json"}
        if self.service_token:
            headers["Authorization"] = f"Bearer {self.service_token}"

        try:
            response = await self._get_client().post(self.webhook_url, json=event, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Notification webhook unreachable for job {event['job_id']}: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.warning(f"Job {event['job_id']} result is not JSON serializable, event dropped: {e}")
            return False

        if response.status_code not in (200, 201, 202, 204):
            logger.warning(
                f"Notification webhook returned {response.status_code} for job {event['job_id']}: "
                f"{response.text[:200]}"
            )
            return False
        return True

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
