"""Tests for the producer helpers and payload schemas."""

import asyncio

import pytest
from pydantic import ValidationError

from depict_jobs.payloads import (
    DataProcessingRequest,
    ReportRequest,
    schema_for,
    validate_payload,
)
from depict_jobs.producers import JobProducer
from depict_jobs.queue.models import JobState


@pytest.fixture
def producer(registry):
    return JobProducer(registry)


class TestMailProducers:

    def test_verification_email_has_top_priority(self, producer):
        job = asyncio.run(producer.send_verification_email("ada@example.com", "tok123", "Ada"))
        assert job.queue == "email"
        assert job.category == "verification"
        assert job.priority == 1
        assert job.payload["subject"] == "Verify your Carbon Depict account"
        assert job.max_attempts == 3

    def test_welcome_email_priority(self, producer):
        job = asyncio.run(producer.send_welcome_email("ada@example.com", "Ada", "Acme"))
        assert job.priority == 3
        assert job.payload["company_name"] == "Acme"

    def test_password_reset_email(self, producer):
        job = asyncio.run(producer.send_password_reset_email("ada@example.com", "tok", "Ada"))
        assert job.category == "password_reset"
        assert job.priority == 1
        assert job.payload["subject"] == "Reset your Carbon Depict password"

    def test_generic_mail_defaults_to_mid_priority(self, producer):
        job = asyncio.run(producer.add_email_job("newsletter", {"to": "ada@example.com"}))
        assert job.priority == 5

    def test_urgent_mail_runs_before_welcome(self, producer, registry):
        async def scenario():
            await producer.send_welcome_email("a@example.com", "A", "Acme")
            reset = await producer.send_password_reset_email("b@example.com", "tok", "B")
            return reset, await registry.get("email").dequeue_next()

        reset, first = asyncio.run(scenario())
        assert first.id == reset.id


class TestWorkProducers:

    def test_generate_report(self, producer):
        job = asyncio.run(producer.generate_report("csrd", "c1", "u1", {"year": 2024}))
        assert job.queue == "reports"
        assert job.category == "generate"
        assert job.timeout_ms == 300_000
        assert job.payload["params"] == {"year": 2024}
        assert "requested_at" in job.payload

    def test_emissions_aggregate(self, producer):
        job = asyncio.run(producer.calculate_emissions_aggregate("c1", {"from": "2024-01-01", "to": "2024-12-31"}))
        assert job.queue == "data_processing"
        assert job.category == "emissions_aggregate"
        assert job.payload["data"] == {"date_range": {"from": "2024-01-01", "to": "2024-12-31"}}

    def test_esg_scores(self, producer):
        job = asyncio.run(producer.calculate_esg_scores("c1", 2024))
        assert job.category == "esg_scores"
        assert job.payload["data"] == {"year": 2024}

    def test_ai_prediction_with_override(self, producer):
        job = asyncio.run(producer.generate_ai_prediction("forecast", "c1", {"horizon": 12}, priority=2))
        assert job.queue == "ai_predictions"
        assert job.priority == 2
        assert job.timeout_ms == 900_000

    def test_notification(self, producer):
        job = asyncio.run(producer.send_notification("u1", "report_ready", {"report_id": "r1"}))
        assert job.queue == "notifications"
        assert job.category == "report_ready"
        assert job.priority == 5

    def test_export(self, producer):
        job = asyncio.run(producer.export_data("csv", "c1", "u1"))
        assert job.queue == "exports"
        assert job.category == "export"

    def test_generic_enqueue_with_delay(self, producer):
        job = asyncio.run(producer.enqueue("scheduled", "tick", {}, delay_ms=1000))
        assert job.state == JobState.DELAYED

    def test_scheduled_job_round_trip(self, producer, registry):
        async def scenario():
            job = await producer.add_scheduled_job("daily_rollup", {"scope": "all"}, "0 2 * * *")
            removed = await producer.remove_scheduled_job("daily_rollup", "0 2 * * *")
            return job, removed, await registry.get("scheduled").get_stats()

        job, removed, stats = asyncio.run(scenario())
        assert job.id.startswith("repeat:daily_rollup:0 2 * * *:")
        assert job.repeat.cron == "0 2 * * *"
        assert removed is True
        assert stats["total"] == 0


class TestPayloadValidation:

    def test_unknown_fields_are_rejected(self, registry):
        with pytest.raises(ValidationError):
            asyncio.run(registry.get("reports").enqueue(
                "generate",
                {"report_type": "x", "company_id": "c", "user_id": "u", "extra": 1},
            ))

    def test_missing_fields_are_rejected(self, producer):
        with pytest.raises(ValidationError):
            asyncio.run(producer.enqueue("email", "verification", {"to": "a@b.de"}))

    def test_unregistered_category_accepts_any_object(self):
        assert validate_payload("scheduled", "tick", {"anything": [1, 2]}) == {"anything": [1, 2]}

    def test_non_mapping_payload(self):
        with pytest.raises(TypeError):
            validate_payload("scheduled", "tick", ["not", "a", "dict"])

    def test_wildcard_schema(self):
        assert schema_for("data_processing", "whatever") is DataProcessingRequest
        assert schema_for("reports", "generate") is ReportRequest
        assert schema_for("reports", "other") is None

    def test_models_are_normalised_to_json(self):
        payload = validate_payload(
            "reports",
            "generate",
            ReportRequest(report_type="ghg", company_id="c1", user_id="u1"),
        )
        assert isinstance(payload["requested_at"], str)
