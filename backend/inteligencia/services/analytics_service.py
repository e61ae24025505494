"""
Usage & Analytics Service
Append-only usage logs folded into (date, vertical, provider, model) rollups

Rollups are applied exactly once per usage log id: a ledger row is claimed
with INSERT ... ON CONFLICT DO NOTHING, and only the claiming call
increments the bucket, via INSERT ... ON CONFLICT DO UPDATE.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, case, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import PersistenceError, ValidationError
from ..models import AnalyticsRollupEntry, GenerationAnalytics, UsageLog, utcnow

logger = logging.getLogger(__name__)

ALL_VERTICALS = "all"

TIMEFRAMES = {
    "day": timedelta(days=1),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


class AnalyticsService:
    """
    Service for usage logging and analytics rollups.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self, table):
        """Dialect-specific INSERT supporting ON CONFLICT"""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise PersistenceError(f"Upsert not supported on dialect {dialect}")

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    async def log_usage(
        self,
        provider: str,
        model: str,
        task_type: str,
        success: bool,
        vertical: Optional[str] = None,
        tokens_input: int = 0,
        tokens_output: int = 0,
        cost: float = 0.0,
        duration_ms: int = 0,
        content_length: int = 0,
        error_message: Optional[str] = None,
        generation_node_id: Optional[UUID] = None,
        requested_at: Optional[datetime] = None,
    ) -> UsageLog:
        """Append one immutable usage log"""
        log = UsageLog(
            provider=provider,
            model=model,
            task_type=task_type,
            vertical=vertical,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            cost=cost,
            duration_ms=duration_ms,
            content_length=content_length,
            success=success,
            error_message=error_message,
            generation_node_id=generation_node_id,
            requested_at=requested_at or utcnow(),
        )
        self.db.add(log)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to write usage log: {type(e).__name__}") from e
        return log

    async def rollup(self, log: UsageLog) -> bool:
        """
        Fold one usage log into its analytics bucket.

        Returns False when this log id was already rolled up.
        """
        try:
            claim = await self.db.execute(
                self._insert(AnalyticsRollupEntry.__table__)
                .values(usage_log_id=log.id, rolled_up_at=utcnow())
                .on_conflict_do_nothing(index_elements=["usage_log_id"])
            )
            if claim.rowcount == 0:
                logger.debug(f"Usage log {log.id} already rolled up")
                return False

            table = GenerationAnalytics.__table__
            now = utcnow()
            succeeded = 1 if log.success else 0
            stmt = self._insert(table).values(
                id=uuid4(),
                date=(log.requested_at or now).date(),
                vertical=log.vertical or ALL_VERTICALS,
                provider=log.provider,
                model=log.model,
                total_generations=1,
                successful_generations=succeeded,
                failed_generations=1 - succeeded,
                total_tokens_input=log.tokens_input or 0,
                total_tokens_output=log.tokens_output or 0,
                total_cost=float(log.cost or 0),
                average_duration=float(log.duration_ms or 0),
                total_content_length=log.content_length or 0,
                average_content_length=float(log.content_length or 0),
                created_at=now,
                updated_at=now,
            )
            # SET expressions read the pre-update row
            previous = table.c.total_generations
            stmt = stmt.on_conflict_do_update(
                index_elements=["date", "vertical", "provider", "model"],
                set_={
                    "total_generations": previous + 1,
                    "successful_generations": table.c.successful_generations + succeeded,
                    "failed_generations": table.c.failed_generations + (1 - succeeded),
                    "total_tokens_input": table.c.total_tokens_input + (log.tokens_input or 0),
                    "total_tokens_output": table.c.total_tokens_output + (log.tokens_output or 0),
                    "total_cost": table.c.total_cost + float(log.cost or 0),
                    "average_duration": (
                        table.c.average_duration * previous + float(log.duration_ms or 0)
                    ) / (previous + 1),
                    "total_content_length": table.c.total_content_length + (log.content_length or 0),
                    "average_content_length": (
                        table.c.total_content_length + (log.content_length or 0)
                    ) / (previous + 1.0),
                    "updated_at": now,
                },
            )
            await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update analytics: {type(e).__name__}") from e
        return True

    async def record(self, **fields: Any) -> UsageLog:
        """Log usage and roll it up in the current unit of work"""
        log = await self.log_usage(**fields)
        await self.rollup(log)
        return log

    async def rollup_pending(self, limit: int = 1000) -> int:
        """Roll up logs that never made it into analytics"""
        result = await self.db.execute(
            select(UsageLog)
            .outerjoin(AnalyticsRollupEntry, AnalyticsRollupEntry.usage_log_id == UsageLog.id)
            .where(AnalyticsRollupEntry.usage_log_id.is_(None))
            .order_by(UsageLog.requested_at)
            .limit(limit)
        )
        applied = 0
        for log in result.scalars().all():
            if await self.rollup(log):
                applied += 1
        return applied

    # =========================================================================
    # READ PATH
    # =========================================================================

    async def get_analytics(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        vertical: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> List[GenerationAnalytics]:
        conditions = []
        if start_date:
            conditions.append(GenerationAnalytics.date >= start_date)
        if end_date:
            conditions.append(GenerationAnalytics.date <= end_date)
        if vertical:
            conditions.append(GenerationAnalytics.vertical == vertical)
        if provider:
            conditions.append(GenerationAnalytics.provider == provider)

        query = select(GenerationAnalytics).order_by(
            GenerationAnalytics.date.desc(), GenerationAnalytics.provider
        )
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def usage_stats(self, timeframe: str = "month") -> Dict[str, Any]:
        """
        Aggregate rollups over a trailing window.

        successRate is successful / total * 100 rounded to two decimals,
        and 0 when the window holds no generations.
        """
        if timeframe not in TIMEFRAMES:
            raise ValidationError(f"Invalid timeframe: {timeframe}. Must be one of {list(TIMEFRAMES)}")

        start = (utcnow() - TIMEFRAMES[timeframe]).date()
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(GenerationAnalytics.total_generations), 0),
                func.coalesce(func.sum(GenerationAnalytics.successful_generations), 0),
                func.coalesce(func.sum(GenerationAnalytics.total_cost), 0),
                func.coalesce(
                    func.sum(GenerationAnalytics.average_duration * GenerationAnalytics.total_generations), 0
                ),
            ).where(GenerationAnalytics.date >= start)
        )
        total, successful, cost, weighted_duration = result.one()
        total = int(total or 0)
        successful = int(successful or 0)

        success_rate = (successful / total * 100) if total > 0 else 0
        average_duration = (float(weighted_duration) / total) if total > 0 else 0

        return {
            "timeframe": timeframe,
            "totalGenerations": total,
            "successfulGenerations": successful,
            "totalCost": round(float(cost or 0), 6),
            "averageDuration": round(average_duration),
            "successRate": round(success_rate, 2),
        }

    async def provider_breakdown(self, days: int = 30) -> List[Dict[str, Any]]:
        """Per-provider totals straight from the usage logs"""
        cutoff = utcnow() - timedelta(days=days)
        result = await self.db.execute(
            select(
                UsageLog.provider,
                func.count(UsageLog.id),
                func.sum(case((UsageLog.success.is_(True), 1), else_=0)),
                func.coalesce(func.sum(UsageLog.tokens_input + UsageLog.tokens_output), 0),
                func.coalesce(func.sum(UsageLog.cost), 0),
                func.coalesce(func.avg(UsageLog.duration_ms), 0),
            )
            .where(UsageLog.requested_at >= cutoff)
            .group_by(UsageLog.provider)
        )

        breakdown = []
        for provider, calls, successes, tokens, cost, avg_duration in result.all():
            calls = int(calls or 0)
            successes = int(successes or 0)
            breakdown.append({
                "provider": provider,
                "calls": calls,
                "successfulCalls": successes,
                "totalTokens": int(tokens or 0),
                "totalCost": round(float(cost or 0), 6),
                "averageDuration": round(float(avg_duration or 0)),
                "successRate": round(successes / calls * 100, 2) if calls else 0,
            })
        breakdown.sort(key=lambda row: row["totalCost"], reverse=True)
        return breakdown

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def cleanup_old_logs(self, max_age_days: int = 30) -> int:
        """
        Hard-delete usage logs older than the cutoff; returns rows removed.
        Generation nodes and analytics rollups are never touched.
        """
        if max_age_days < 0:
            raise ValidationError("max_age_days must be non-negative")

        cutoff = utcnow() - timedelta(days=max_age_days)
        try:
            result = await self.db.execute(
                delete(UsageLog).where(UsageLog.requested_at < cutoff)
            )
            # Ledger rows claimed before the cutoff can only belong to deleted logs
            await self.db.execute(
                delete(AnalyticsRollupEntry).where(AnalyticsRollupEntry.rolled_up_at < cutoff)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to clean up usage logs: {type(e).__name__}") from e

        removed = result.rowcount or 0
        logger.info(f"Removed {removed} usage logs older than {max_age_days} days")
        return removed
