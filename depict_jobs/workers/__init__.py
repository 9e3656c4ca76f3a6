"""Job handlers and the worker process."""

from .email_worker import EmailWorker, MailTransport, SmtpTransport, start_email_worker

__all__ = ["EmailWorker", "MailTransport", "SmtpTransport", "start_email_worker"]
