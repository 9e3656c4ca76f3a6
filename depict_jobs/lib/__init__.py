"""Library utilities for the job queue service."""

from .pii_redactor import PIIRedactor
from .json_logger import (
    JSONFormatter,
    StructuredLoggerAdapter,
    setup_json_logging,
    setup_text_logging,
    configure_logging,
    get_structured_logger,
    job_logger,
)

__all__ = [
    "PIIRedactor",
    "JSONFormatter",
    "StructuredLoggerAdapter",
    "setup_json_logging",
    "setup_text_logging",
    "configure_logging",
    "get_structured_logger",
    "job_logger",
]
