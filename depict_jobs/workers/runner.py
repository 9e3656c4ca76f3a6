"""Standalone worker process: consume queues until SIGTERM/SIGINT."""

import asyncio
import logging
import signal
from typing import Optional

from depict_jobs.bridge import HttpNotificationBridge, attach_notification_bridge
from depict_jobs.config import Settings, get_settings
from depict_jobs.lib.json_logger import configure_logging
from depict_jobs.queue.registry import create_registry

from .email_worker import MailTransport, start_email_worker

logger = logging.getLogger(__name__)


async def run_worker(
    settings: Optional[Settings] = None,
    transport: Optional[MailTransport] = None,
    stop_event: Optional[asyncio.Event] = None,
):
    """
    Run the background workers until signalled.

    Args:
        settings: Defaults to the environment settings
        transport: Mail transport (SMTP by default)
        stop_event: Set it to stop the worker without a signal
    """
    settings = settings or get_settings()
    stop_event = stop_event or asyncio.Event()

    registry = await create_registry(settings)
    if registry.is_degraded:
        logger.warning("Job store unavailable - worker has nothing to consume")

    start_email_worker(registry, settings, transport)

    bridge = None
    if settings.notification_webhook_url:
        bridge = HttpNotificationBridge(settings.notification_webhook_url, settings.service_token)
        attach_notification_bridge(registry, bridge)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def shutdown():
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown)
        except (NotImplementedError, RuntimeError):
            # Windows, or not running in the main thread
            pass

    logger.info(f"Worker running for queues: {registry.names()}")
    try:
        await stop_event.wait()
    except asyncio.CancelledError:
        logger.info("Worker cancelled")
    finally:
        await registry.close(settings.shutdown_grace_ms)
        if bridge is not None:
            await bridge.close()
        logger.info("Worker stopped")


def main():
    """Console entry point."""
    configure_logging(get_settings())
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
