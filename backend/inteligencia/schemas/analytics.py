"""
Usage & Analytics Schemas
"""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class UsageStatsResponse(BaseModel):
    timeframe: str
    totalGenerations: int
    successfulGenerations: int
    totalCost: float
    averageDuration: float
    successRate: float


class AnalyticsRollupResponse(BaseModel):
    """One (date, vertical, provider, model) bucket"""
    id: UUID
    date: date
    vertical: str
    provider: str
    model: str
    total_generations: int
    successful_generations: int
    failed_generations: int
    total_tokens_input: int
    total_tokens_output: int
    total_cost: float
    average_duration: float
    average_content_length: float

    class Config:
        from_attributes = True


class CleanupRequest(BaseModel):
    max_age_days: Optional[int] = Field(None, ge=0, alias="maxAgeDays")

    class Config:
        populate_by_name = True
