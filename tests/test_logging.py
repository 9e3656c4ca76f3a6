"""Tests for JSON logging and PII redaction."""

import json
import logging
import sys

from depict_jobs.lib import JSONFormatter, PIIRedactor, job_logger


def make_record(msg, **extra):
    record = logging.LogRecord("depict_jobs.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestPIIRedactor:

    def test_email_is_redacted(self):
        assert PIIRedactor.redact("send to ada@example.com now") == "send to [EMAIL_REDACTED] now"

    def test_tokens_keep_their_key(self):
        redacted = PIIRedactor.redact("https://app/verify-email?token=abc123&x=1")
        assert "abc123" not in redacted
        assert "token=[SECRET_REDACTED]" in redacted

    def test_json_style_secret(self):
        assert "hunter2" not in PIIRedactor.redact('{"password": "hunter2"}')

    def test_iban_and_card(self):
        text = "IBAN DE89 3704 0044 0532 0130 00, card 4111 1111 1111 1111"
        redacted = PIIRedactor.redact(text)
        assert "[IBAN_REDACTED]" in redacted
        assert "[CREDIT_CARD_REDACTED]" in redacted

    def test_phone(self):
        assert "[PHONE_REDACTED]" in PIIRedactor.redact("call +49 170 1234567")

    def test_nested_values(self):
        value = {"to": "ada@example.com", "items": ["bob@example.org", 3]}
        assert PIIRedactor.redact_value(value) == {"to": "[EMAIL_REDACTED]", "items": ["[EMAIL_REDACTED]", 3]}

    def test_contains_pii(self):
        assert PIIRedactor.contains_pii("ada@example.com")
        assert not PIIRedactor.contains_pii("job 42 completed")
        assert not PIIRedactor.contains_pii(None)


class TestJSONFormatter:

    def test_standard_fields_are_lifted(self):
        output = JSONFormatter().format(make_record("Job 1 completed", job_id="1", queue="email", attempts=2))
        data = json.loads(output)
        assert data["message"] == "Job 1 completed"
        assert data["job_id"] == "1"
        assert data["queue"] == "email"
        assert data["attempts"] == 2
        assert data["level"] == "INFO"

    def test_message_and_extras_are_redacted(self):
        record = make_record("mail for ada@example.com", recipient="ada@example.com")
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "mail for [EMAIL_REDACTED]"
        assert data["recipient"] == "[EMAIL_REDACTED]"

    def test_redaction_can_be_disabled(self):
        data = json.loads(JSONFormatter(redact_pii=False).format(make_record("ada@example.com")))
        assert data["message"] == "ada@example.com"

    def test_exception_info(self):
        try:
            raise ValueError("bad token=xyz")
        except ValueError:
            record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert "xyz" not in data["exception"]["message"]


def test_job_logger_carries_context(caplog):
    log = job_logger("42", "reports", "generate")
    with caplog.at_level(logging.INFO, logger="depict_jobs.jobs.reports"):
        log.info("Job 42 started", extra={"attempts": 1})
    [record] = caplog.records
    assert record.job_id == "42"
    assert record.queue == "reports"
    assert record.category == "generate"
    assert record.attempts == 1
