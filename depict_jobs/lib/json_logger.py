"""Structured JSON logging for the queue engine and workers.

Outputs one JSON object per line for the log aggregation stack.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .pii_redactor import PIIRedactor

# Fields lifted to the top level of every record when present
STANDARD_FIELDS = (
    "job_id", "queue", "category", "state", "attempts",
    "duration_ms", "delay_ms", "worker", "error_code",
)

_RESERVED = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'asctime', 'taskName',
}


class JSONFormatter(logging.Formatter):
    """Format log records as JSON with structured fields."""
    
    def __init__(self, redact_pii: bool = True):
        super().__init__()
        self.redact_pii = redact_pii
    
    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redact(record.getMessage()),
        }
        
        for field in STANDARD_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value
        
        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": self._redact(str(record.exc_info[1])) if record.exc_info[1] else None,
                "traceback": self._redact(self.formatException(record.exc_info)),
            }
        
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith('_') or key in STANDARD_FIELDS:
                continue
            log_obj[key] = self._redact(value)
        
        return json.dumps(log_obj, default=str, ensure_ascii=False)
    
    def _redact(self, value: Any) -> Any:
        """Redact PII if enabled."""
        if not self.redact_pii:
            return value
        return PIIRedactor.redact_value(value)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds structured context to all log messages."""
    
    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})
    
    def process(self, msg, kwargs):
        """Add extra context to log record."""
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs
    
    def with_context(self, **context) -> 'StructuredLoggerAdapter':
        """Create a new adapter with additional context."""
        new_extra = {**self.extra, **context}
        return StructuredLoggerAdapter(self.logger, new_extra)


def setup_json_logging(level: str = "INFO", redact_pii: bool = True):
    """
    Configure root logger for JSON output.
    
    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        redact_pii: Whether to redact PII from logs
    """
    formatter = JSONFormatter(redact_pii=redact_pii)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    
    # Quiet chatty client libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_text_logging(level: str = "INFO"):
    """Plain-text logging for local development."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def configure_logging(settings) -> None:
    """Configure logging from settings.log_format."""
    if settings.log_format == "json":
        setup_json_logging(level=settings.log_level, redact_pii=True)
    else:
        setup_text_logging(level=settings.log_level)


def get_structured_logger(name: str, **context) -> StructuredLoggerAdapter:
    """
    Get a structured logger with optional context.
    
    Args:
        name: Logger name
        **context: Default context fields (job_id, queue, etc.)
    """
    logger = logging.getLogger(name)
    return StructuredLoggerAdapter(logger, context)


def job_logger(job_id: str, queue: str, category: Optional[str] = None) -> StructuredLoggerAdapter:
    """Create a logger pre-configured for a specific job."""
    return get_structured_logger(
        f"depict_jobs.jobs.{queue}",
        job_id=job_id,
        queue=queue,
        category=category,
    )
