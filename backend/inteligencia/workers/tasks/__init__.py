"""
Celery Tasks
"""

from .maintenance_tasks import (
    cleanup_old_usage_logs,
    reset_monthly_provider_usage,
    rollup_pending_usage_logs,
)

__all__ = [
    "cleanup_old_usage_logs",
    "reset_monthly_provider_usage",
    "rollup_pending_usage_logs",
]
