"""Queue names and their default job options."""

from .models import BackoffPolicy, QueueOptions

QUEUE_EMAIL = "email"
QUEUE_REPORTS = "reports"
QUEUE_DATA_PROCESSING = "data_processing"
QUEUE_AI_PREDICTIONS = "ai_predictions"
QUEUE_NOTIFICATIONS = "notifications"
QUEUE_EXPORTS = "exports"
QUEUE_SCHEDULED = "scheduled"

QUEUE_DEFINITIONS: dict[str, QueueOptions] = {
    QUEUE_EMAIL: QueueOptions(
        attempts=3,
        backoff=BackoffPolicy(type="exponential", delay=2000),
        keep_completed=100,
        keep_failed=500,
    ),
    QUEUE_REPORTS: QueueOptions(
        attempts=2,
        timeout_ms=300_000,  # 5 minutes
        keep_completed=50,
        keep_failed=200,
    ),
    # Emissions calculations, aggregations
    QUEUE_DATA_PROCESSING: QueueOptions(
        attempts=3,
        timeout_ms=600_000,
        keep_completed=100,
        keep_failed=300,
    ),
    QUEUE_AI_PREDICTIONS: QueueOptions(
        attempts=2,
        timeout_ms=900_000,
        keep_completed=50,
        keep_failed=100,
    ),
    QUEUE_NOTIFICATIONS: QueueOptions(
        attempts=3,
        keep_completed=200,
        keep_failed=500,
    ),
    QUEUE_EXPORTS: QueueOptions(
        attempts=2,
        timeout_ms=600_000,
        keep_completed=30,
        keep_failed=100,
    ),
    # Cron-like recurring tasks
    QUEUE_SCHEDULED: QueueOptions(
        attempts=3,
        keep_completed=100,
        keep_failed=200,
    ),
}
