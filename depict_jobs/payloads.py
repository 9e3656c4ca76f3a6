"""Payload schemas per (queue, category).

Known job categories get a typed payload; anything without a registered
schema is accepted as an opaque JSON object.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from depict_jobs.queue.definitions import (
    QUEUE_AI_PREDICTIONS,
    QUEUE_DATA_PROCESSING,
    QUEUE_EMAIL,
    QUEUE_EXPORTS,
    QUEUE_NOTIFICATIONS,
    QUEUE_REPORTS,
)

WILDCARD = "*"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class VerificationEmail(Payload):
    """Account verification mail."""
    to: str
    token: str
    first_name: str
    subject: str = "Verify your Carbon Depict account"


class WelcomeEmail(Payload):
    to: str
    first_name: str
    company_name: str
    subject: str = "Welcome to Carbon Depict"


class PasswordResetEmail(Payload):
    to: str
    token: str
    first_name: str
    subject: str = "Reset your Carbon Depict password"


class ReportRequest(Payload):
    """Report generation for one company."""
    report_type: str
    company_id: str
    user_id: str
    params: dict = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utcnow)


class DataProcessingRequest(Payload):
    """Emissions aggregation, ESG scoring and other bulk calculations."""
    company_id: str
    data: dict = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utcnow)


class AIPredictionRequest(Payload):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_type: str
    company_id: str
    input_data: dict = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utcnow)


class NotificationRequest(Payload):
    user_id: str
    data: dict = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utcnow)


class ExportRequest(Payload):
    export_type: str
    company_id: str
    user_id: str
    params: dict = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=_utcnow)


PAYLOAD_SCHEMAS: dict[tuple[str, str], Type[Payload]] = {
    (QUEUE_EMAIL, "verification"): VerificationEmail,
    (QUEUE_EMAIL, "welcome"): WelcomeEmail,
    (QUEUE_EMAIL, "password_reset"): PasswordResetEmail,
    (QUEUE_REPORTS, "generate"): ReportRequest,
    (QUEUE_DATA_PROCESSING, WILDCARD): DataProcessingRequest,
    (QUEUE_AI_PREDICTIONS, "predict"): AIPredictionRequest,
    (QUEUE_NOTIFICATIONS, WILDCARD): NotificationRequest,
    (QUEUE_EXPORTS, "export"): ExportRequest,
}


def schema_for(queue_name: str, category: str) -> Optional[Type[Payload]]:
    """Exact (queue, category) schema first, then the queue's wildcard."""
    return PAYLOAD_SCHEMAS.get((queue_name, category)) or PAYLOAD_SCHEMAS.get((queue_name, WILDCARD))


def validate_payload(queue_name: str, category: str, payload: Any) -> dict:
    """
    Validate and normalise a payload for storage.

    Raises:
        pydantic.ValidationError: payload does not match the category schema
        TypeError: payload is not a mapping or model
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    if not isinstance(payload, dict):
        raise TypeError(f"Job payload must be a mapping, got {type(payload).__name__}")

    schema = schema_for(queue_name, category)
    if schema is None:
        return payload
    return schema.model_validate(payload).model_dump(mode="json")
