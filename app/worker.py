"""Celery worker configuration.

This module sets up Celery for background intent processing:
- Ledger credits (creditWallet / creditCoins intents)
- Notification dispatch (notify intents)
"""

from celery import Celery

from app.config import settings

# Create Celery app
celery_app = Celery(
    "homeserv_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Asia/Kolkata",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        "drain-ledger-intents": {
            "task": "app.tasks.drain_ledger_intents",
            "schedule": float(settings.intent_drain_interval_seconds),
        },
        "drain-notification-intents": {
            "task": "app.tasks.drain_notification_intents",
            "schedule": float(settings.intent_drain_interval_seconds),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
