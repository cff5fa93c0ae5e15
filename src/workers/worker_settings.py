"""
ARQ Worker Settings — Registers all background jobs.

Usage:
    arq workers.worker_settings.WorkerSettings

Every function takes the serialized ``JobPayload`` as keyword
arguments, so producers enqueue e.g.::

    await redis.enqueue_job("run_job", job_type="generate_insights",
                            location_id="12", date_key="2026-03-14")
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from core.config import settings
from core.database import session_scope
from core.notifications.slack import notify_critical_insights
from core.store import SqlAlchemyStore
from workers.insights.correlation_rules import CorrelationThresholds
from workers.jobs.contract import INSIGHT_STAGES, JobPayload, JobType, today_key
from workers.jobs.runner import JobResult, process_job

logger = logging.getLogger(__name__)


async def run_job(ctx: dict, **payload) -> dict:
    """ARQ job: validate the payload and run it inside one transaction."""
    job = JobPayload.model_validate({"attempt": ctx.get("job_try", 1), **payload})

    async with session_scope() as session:
        store = SqlAlchemyStore(session)
        result: JobResult = await process_job(
            store,
            job,
            consumer_id=settings.default_consumer_id,
            thresholds=ctx["thresholds"],
        )
        location = await store.get_location(job.location_id)

    if job.job_type in INSIGHT_STAGES:
        name = location.name if location else job.location_id
        await notify_critical_insights(name, job.date_key, result.insights)

    return {
        "status": result.status.value,
        "items_processed": result.items_processed,
        "errors": result.errors,
    }


async def enqueue_daily_insights(ctx: dict) -> int:
    """ARQ cron: one ``generate_insights`` job per active location for today."""
    date_key = today_key()
    async with session_scope() as session:
        locations = await SqlAlchemyStore(session).list_active_locations()

    for location in locations:
        await ctx["redis"].enqueue_job(
            "run_job",
            job_type=JobType.GENERATE_INSIGHTS.value,
            location_id=location.id,
            date_key=date_key,
            _job_id=f"generate_insights:{location.id}:{date_key}",
        )
    logger.info("Enqueued daily insights for %d locations (%s)", len(locations), date_key)
    return len(locations)


async def startup(ctx: dict) -> None:
    """Called on worker startup."""
    ctx["thresholds"] = CorrelationThresholds.from_settings(settings)


async def shutdown(ctx: dict) -> None:
    """Called on worker shutdown."""
    ctx.pop("thresholds", None)


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        run_job,
        enqueue_daily_insights,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_tries = 3

    cron_jobs = [
        cron(enqueue_daily_insights, hour={settings.insights_cron_hour}, minute={0}),
    ]
