"""
Usage logging, exactly-once rollups and retention
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from inteligencia.errors import ValidationError
from inteligencia.models import AnalyticsRollupEntry, GenerationAnalytics, UsageLog, utcnow
from inteligencia.services import AnalyticsService, TreeStore


async def count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_usage_stats_empty_window(db):
    stats = await AnalyticsService(db).usage_stats("week")
    assert stats["totalGenerations"] == 0
    assert stats["successRate"] == 0
    assert stats["averageDuration"] == 0


async def test_invalid_timeframe(db):
    with pytest.raises(ValidationError):
        await AnalyticsService(db).usage_stats("decade")


async def test_record_rolls_up_into_one_bucket(db):
    service = AnalyticsService(db)
    await service.record(
        provider="openai", model="gpt-4o", task_type="writing", success=True,
        tokens_input=100, tokens_output=200, cost=0.01, duration_ms=1000, content_length=400,
    )
    await service.record(
        provider="openai", model="gpt-4o", task_type="writing", success=False,
        duration_ms=3000, error_message="openai: Rate limit exceeded",
    )

    buckets = await service.get_analytics()
    assert len(buckets) == 1
    bucket = buckets[0]
    await db.refresh(bucket)
    assert bucket.vertical == "all"
    assert bucket.total_generations == 2
    assert bucket.successful_generations == 1
    assert bucket.failed_generations == 1
    assert bucket.total_tokens_input == 100
    assert bucket.total_cost == pytest.approx(0.01)
    assert bucket.average_duration == pytest.approx(2000)
    assert bucket.average_content_length == pytest.approx(200)

    stats = await service.usage_stats("day")
    assert stats["totalGenerations"] == 2
    assert stats["successRate"] == 50.0
    assert stats["averageDuration"] == 2000


async def test_buckets_split_by_vertical_and_model(db):
    service = AnalyticsService(db)
    await service.record(provider="openai", model="gpt-4o", task_type="writing", success=True, vertical="tech")
    await service.record(provider="openai", model="gpt-4o", task_type="writing", success=True, vertical="healthcare")
    await service.record(provider="openai", model="gpt-4o-mini", task_type="writing", success=True, vertical="tech")

    assert len(await service.get_analytics()) == 3
    assert len(await service.get_analytics(vertical="tech")) == 2


async def test_rollup_is_exactly_once_per_log(db):
    service = AnalyticsService(db)
    log = await service.log_usage(provider="anthropic", model="claude", task_type="writing", success=True)

    assert await service.rollup(log) is True
    assert await service.rollup(log) is False

    bucket = (await service.get_analytics())[0]
    await db.refresh(bucket)
    assert bucket.total_generations == 1
    assert await count(db, AnalyticsRollupEntry) == 1


async def test_rollup_pending_catches_up(db):
    service = AnalyticsService(db)
    await service.log_usage(provider="google", model="gemini", task_type="research", success=True)
    await service.log_usage(provider="google", model="gemini", task_type="research", success=True)
    await service.record(provider="google", model="gemini", task_type="research", success=True)

    assert await service.rollup_pending() == 2
    assert await service.rollup_pending() == 0

    bucket = (await service.get_analytics())[0]
    await db.refresh(bucket)
    assert bucket.total_generations == 3


async def test_provider_breakdown(db):
    service = AnalyticsService(db)
    await service.record(provider="openai", model="gpt-4o", task_type="writing", success=True, cost=0.5)
    await service.record(provider="anthropic", model="claude", task_type="writing", success=False)

    breakdown = await service.provider_breakdown()
    assert [row["provider"] for row in breakdown] == ["openai", "anthropic"]
    assert breakdown[0]["successRate"] == 100.0
    assert breakdown[1]["successRate"] == 0.0


async def test_cleanup_removes_only_old_logs(db):
    service = AnalyticsService(db)
    node = await TreeStore(db).create_node(type="idea")
    old = await service.record(
        provider="openai", model="gpt-4o", task_type="writing", success=True, generation_node_id=node.id,
    )
    await service.record(provider="openai", model="gpt-4o", task_type="writing", success=True)
    old.requested_at = utcnow() - timedelta(days=120)
    await db.flush()

    removed = await service.cleanup_old_logs(90)

    assert removed == 1
    assert await count(db, UsageLog) == 1
    assert await count(db, GenerationAnalytics) == 1
    assert await TreeStore(db).find_node(node.id) is not None


async def test_cleanup_rejects_negative_age(db):
    with pytest.raises(ValidationError):
        await AnalyticsService(db).cleanup_old_logs(-1)
