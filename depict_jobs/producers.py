"""Producer helpers used by the application to enqueue work.

Every helper returns the accepted job (a synthetic ``sync-`` job in
degraded mode) and raises ``pydantic.ValidationError`` for payloads that do
not match the category schema.
"""

import logging
from typing import Any, Optional

from depict_jobs.payloads import (
    AIPredictionRequest,
    DataProcessingRequest,
    ExportRequest,
    NotificationRequest,
    PasswordResetEmail,
    ReportRequest,
    VerificationEmail,
    WelcomeEmail,
)
from depict_jobs.queue.definitions import (
    QUEUE_AI_PREDICTIONS,
    QUEUE_DATA_PROCESSING,
    QUEUE_EMAIL,
    QUEUE_EXPORTS,
    QUEUE_NOTIFICATIONS,
    QUEUE_REPORTS,
    QUEUE_SCHEDULED,
)
from depict_jobs.queue.models import DEFAULT_PRIORITY, Job, JobOptions
from depict_jobs.queue.registry import QueueRegistry

logger = logging.getLogger(__name__)


class JobProducer:
    """Enqueue jobs on the registry's queues."""

    def __init__(self, registry: QueueRegistry):
        self.registry = registry

    async def enqueue(
        self,
        queue_name: str,
        category: str,
        payload: Any = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        """Generic entry point; queue defaults apply unless overridden."""
        return await self.registry.get(queue_name).enqueue(category, payload, options, **overrides)

    # ==================== Mail ====================

    async def add_email_job(
        self,
        category: str,
        payload: Any,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        overrides.setdefault("priority", DEFAULT_PRIORITY)
        job = await self.enqueue(QUEUE_EMAIL, category, payload, options, **overrides)
        logger.info(f"Email job added: {category} (Job ID: {job.id})")
        return job

    async def send_verification_email(self, email: str, token: str, first_name: str) -> Job:
        payload = VerificationEmail(to=email, token=token, first_name=first_name)
        return await self.add_email_job("verification", payload, priority=1)

    async def send_welcome_email(self, email: str, first_name: str, company_name: str) -> Job:
        payload = WelcomeEmail(to=email, first_name=first_name, company_name=company_name)
        return await self.add_email_job("welcome", payload, priority=3)

    async def send_password_reset_email(self, email: str, token: str, first_name: str) -> Job:
        payload = PasswordResetEmail(to=email, token=token, first_name=first_name)
        return await self.add_email_job("password_reset", payload, priority=1)

    # ==================== Reports, data, AI ====================

    async def generate_report(
        self,
        report_type: str,
        company_id: str,
        user_id: str,
        params: Optional[dict] = None,
    ) -> Job:
        payload = ReportRequest(
            report_type=report_type,
            company_id=company_id,
            user_id=user_id,
            params=params or {},
        )
        job = await self.enqueue(QUEUE_REPORTS, "generate", payload)
        logger.info(f"Report generation job added: {report_type} (Job ID: {job.id})")
        return job

    async def process_data(
        self,
        processing_type: str,
        company_id: str,
        data: Optional[dict] = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        payload = DataProcessingRequest(company_id=company_id, data=data or {})
        job = await self.enqueue(QUEUE_DATA_PROCESSING, processing_type, payload, options, **overrides)
        logger.info(f"Data processing job added: {processing_type} (Job ID: {job.id})")
        return job

    async def calculate_emissions_aggregate(self, company_id: str, date_range: dict) -> Job:
        return await self.process_data("emissions_aggregate", company_id, {"date_range": date_range})

    async def calculate_esg_scores(self, company_id: str, year: int) -> Job:
        return await self.process_data("esg_scores", company_id, {"year": year})

    async def generate_ai_prediction(
        self,
        model_type: str,
        company_id: str,
        input_data: Optional[dict] = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        payload = AIPredictionRequest(model_type=model_type, company_id=company_id, input_data=input_data or {})
        job = await self.enqueue(QUEUE_AI_PREDICTIONS, "predict", payload, options, **overrides)
        logger.info(f"AI prediction job added: {model_type} (Job ID: {job.id})")
        return job

    # ==================== Notifications & exports ====================

    async def send_notification(
        self,
        user_id: str,
        notification_type: str,
        data: Optional[dict] = None,
        options: Optional[JobOptions] = None,
        **overrides,
    ) -> Job:
        overrides.setdefault("priority", DEFAULT_PRIORITY)
        payload = NotificationRequest(user_id=user_id, data=data or {})
        job = await self.enqueue(QUEUE_NOTIFICATIONS, notification_type, payload, options, **overrides)
        logger.info(f"Notification job added: {notification_type} (Job ID: {job.id})")
        return job

    async def export_data(
        self,
        export_type: str,
        company_id: str,
        user_id: str,
        params: Optional[dict] = None,
    ) -> Job:
        payload = ExportRequest(
            export_type=export_type,
            company_id=company_id,
            user_id=user_id,
            params=params or {},
        )
        job = await self.enqueue(QUEUE_EXPORTS, "export", payload)
        logger.info(f"Data export job added: {export_type} (Job ID: {job.id})")
        return job

    # ==================== Scheduled ====================

    async def add_scheduled_job(self, name: str, data: Optional[dict], cron: str) -> Job:
        """Run ``name`` on the scheduled queue at every cron occurrence (UTC)."""
        job = await self.registry.get(QUEUE_SCHEDULED).add_repeatable(name, data or {}, cron)
        logger.info(f"Scheduled job added: {name} (Cron: {cron}, Job ID: {job.id})")
        return job

    async def remove_scheduled_job(self, name: str, cron: str) -> bool:
        return await self.registry.get(QUEUE_SCHEDULED).remove_repeatable(name, cron)
