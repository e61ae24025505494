"""
Maintenance Tasks
Usage log retention, monthly budget reset and analytics catch-up
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from celery.utils.log import get_task_logger

from inteligencia.config import get_settings
from inteligencia.errors import InteligenciaError
from inteligencia.services import AnalyticsService, CredentialStore
from inteligencia.utils.database import close_db, get_db_context
from inteligencia.workers.celery_app import celery_app

logger = get_task_logger(__name__)


def run_async(coro):
    """Run async function in sync context"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _in_session(work):
    """
    Run work(session) in one unit of work. The engine is bound to this
    task's event loop, so it is disposed before the loop closes.
    """
    try:
        async with get_db_context() as db:
            return await work(db)
    finally:
        await close_db()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@celery_app.task(
    name="inteligencia.workers.tasks.maintenance_tasks.cleanup_old_usage_logs",
)
def cleanup_old_usage_logs(max_age_days: Optional[int] = None) -> Dict:
    """
    Hard-delete usage logs past retention.
    Generation nodes and analytics rollups are kept.
    """
    if max_age_days is None:
        max_age_days = get_settings().USAGE_LOG_RETENTION_DAYS

    try:
        removed = run_async(_in_session(
            lambda db: AnalyticsService(db).cleanup_old_logs(max_age_days)
        ))
    except InteligenciaError as e:
        logger.error(f"Usage log cleanup failed: {e.message}")
        return {"success": False, "error": e.public_message}

    logger.info(f"Removed {removed} usage logs older than {max_age_days} days")
    return {"success": True, "removed": removed, "timestamp": _now()}


@celery_app.task(
    name="inteligencia.workers.tasks.maintenance_tasks.reset_monthly_provider_usage",
)
def reset_monthly_provider_usage() -> Dict:
    """Zero current_usage on every provider at the start of the month"""
    try:
        reset = run_async(_in_session(lambda db: CredentialStore(db).reset_monthly_usage()))
    except InteligenciaError as e:
        logger.error(f"Monthly usage reset failed: {e.message}")
        return {"success": False, "error": e.public_message}

    return {"success": True, "providers_reset": reset, "timestamp": _now()}


@celery_app.task(
    name="inteligencia.workers.tasks.maintenance_tasks.rollup_pending_usage_logs",
)
def rollup_pending_usage_logs(limit: int = 1000) -> Dict:
    """Fold usage logs that missed their inline rollup into analytics"""
    try:
        applied = run_async(_in_session(lambda db: AnalyticsService(db).rollup_pending(limit)))
    except InteligenciaError as e:
        logger.error(f"Analytics catch-up failed: {e.message}")
        return {"success": False, "error": e.public_message}

    if applied:
        logger.info(f"Rolled up {applied} pending usage logs")
    return {"success": True, "rolled_up": applied, "timestamp": _now()}
