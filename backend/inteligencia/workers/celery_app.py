"""
Celery Application Configuration
Periodic maintenance for usage logs, analytics rollups and provider budgets
"""

from celery import Celery
from celery.schedules import crontab
from kombu import Queue, Exchange

from inteligencia.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "inteligencia",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "inteligencia.workers.tasks.maintenance_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Queue configuration
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("maintenance", Exchange("maintenance"), routing_key="maintenance"),
    ),

    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    task_routes={
        "inteligencia.workers.tasks.maintenance_tasks.*": {"queue": "maintenance"},
    },

    # Beat scheduler for periodic tasks
    beat_schedule={
        "cleanup-old-usage-logs": {
            "task": "inteligencia.workers.tasks.maintenance_tasks.cleanup_old_usage_logs",
            "schedule": crontab(hour=3, minute=0),  # Daily
        },
        "reset-monthly-provider-usage": {
            "task": "inteligencia.workers.tasks.maintenance_tasks.reset_monthly_provider_usage",
            "schedule": crontab(day_of_month=1, hour=0, minute=5),
        },
        "rollup-pending-usage-logs": {
            "task": "inteligencia.workers.tasks.maintenance_tasks.rollup_pending_usage_logs",
            "schedule": 3600.0,  # Every hour
        },
    },
)
