"""
Usage & Analytics Routes
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.config import get_settings
from inteligencia.schemas.analytics import AnalyticsRollupResponse, CleanupRequest, UsageStatsResponse
from inteligencia.services import AnalyticsService
from inteligencia.utils import get_db

router = APIRouter()


@router.get("/stats", response_model=UsageStatsResponse)
async def get_usage_stats(
    timeframe: str = Query("month"),
    db: AsyncSession = Depends(get_db),
):
    """Totals over the trailing day, week or month"""
    return await AnalyticsService(db).usage_stats(timeframe)


@router.get("/rollups", response_model=List[AnalyticsRollupResponse])
async def get_rollups(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    vertical: Optional[str] = None,
    provider: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await AnalyticsService(db).get_analytics(start_date, end_date, vertical, provider)


@router.get("/providers")
async def get_provider_breakdown(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    """Per-provider call counts, tokens and cost"""
    return await AnalyticsService(db).provider_breakdown(days)


@router.post("/cleanup")
async def cleanup_usage_logs(
    body: CleanupRequest = CleanupRequest(),
    db: AsyncSession = Depends(get_db),
):
    """Delete usage logs past retention; nodes and rollups are kept"""
    max_age_days = body.max_age_days
    if max_age_days is None:
        max_age_days = get_settings().USAGE_LOG_RETENTION_DAYS
    removed = await AnalyticsService(db).cleanup_old_logs(max_age_days)
    await db.commit()
    return {"removed": removed, "maxAgeDays": max_age_days}
