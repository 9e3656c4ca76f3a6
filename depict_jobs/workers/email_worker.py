"""Email worker: renders mail jobs and hands them to an SMTP transport."""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional, Protocol

from depict_jobs.config import Settings, get_settings
from depict_jobs.errors import HandlerError
from depict_jobs.lib.json_logger import job_logger
from depict_jobs.queue.definitions import QUEUE_EMAIL
from depict_jobs.queue.models import Job
from depict_jobs.queue.registry import QueueRegistry
from depict_jobs.queue.worker import WILDCARD, Worker

from .email_templates import TEMPLATES

logger = logging.getLogger(__name__)

SENDER_NAME = "Carbon Depict"


class MailTransport(Protocol):
    async def send(self, sender: str, to: str, subject: str, html: str) -> str:
        """Deliver one message and return its message id."""
        ...


class SmtpTransport:
    """Sends mail with smtplib; each send runs in the default executor."""

    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.timeout = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    async def send(self, sender: str, to: str, subject: str, html: str) -> str:
        message = EmailMessage()
        message["From"] = sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=sender.rsplit("@", 1)[-1].rstrip(">"))
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        # Run in executor since smtplib is synchronous
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, message)
        return message["Message-ID"]

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.is_configured:
                smtp.login(self.user, self.password)
            smtp.send_message(message)


class EmailWorker:
    """Handler for every category on the email queue."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[MailTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport or SmtpTransport(self.settings)
        self.sender = formataddr((SENDER_NAME, self.settings.smtp_from))

    async def process(self, job: Job) -> dict:
        """
        Render and send one mail job.

        Raises:
            HandlerError: no template for the job category
        """
        log = job_logger(job.id, job.queue, job.category)
        log.info(f"Processing email job: {job.category} (Job ID: {job.id})")

        template = TEMPLATES.get(job.category)
        if template is None:
            raise HandlerError(f"Email template '{job.category}' not found")

        rendered = template(job.payload, self.settings.client_url.rstrip("/"))
        subject = job.payload.get("subject") or rendered.subject

        message_id = await self.transport.send(self.sender, job.payload["to"], subject, rendered.html)
        log.info(f"Email sent: {message_id}")

        await job.set_progress(100)
        return {"success": True, "message_id": message_id}


def _log_completed(job_id: str, category: str, result) -> None:
    logger.info(f"Email job completed: {category} (Job ID: {job_id})")


def _log_failed(job_id: str, category: str, reason: str) -> None:
    logger.error(f"Email job failed: {category} (Job ID: {job_id}): {reason}")


def _log_stalled(job_id: str) -> None:
    logger.warning(f"Email job stalled (Job ID: {job_id})")


def start_email_worker(
    registry: QueueRegistry,
    settings: Optional[Settings] = None,
    transport: Optional[MailTransport] = None,
) -> Optional[Worker]:
    """Register the email handler on the registry's email queue."""
    settings = settings or registry.settings
    email_worker = EmailWorker(settings, transport)

    if isinstance(email_worker.transport, SmtpTransport) and not email_worker.transport.is_configured:
        logger.info("SMTP credentials not configured - sending without authentication")

    worker = registry.register_handler(QUEUE_EMAIL, WILDCARD, settings.email_concurrency, email_worker.process)
    registry.on_completed(QUEUE_EMAIL, _log_completed)
    registry.on_failed(QUEUE_EMAIL, _log_failed)
    registry.on_stalled(QUEUE_EMAIL, _log_stalled)

    logger.info("Email worker started")
    return worker
