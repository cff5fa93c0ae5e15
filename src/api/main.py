"""
FastAPI application entry point.

Operator API over the insight store: ranked feed, feedback, priority
briefing, manual job trigger and health check.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from api.routes.insights import router as insights_router
from core.config import settings
from workers.briefing.cache import BriefingCache


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: one briefing cache per process."""
    app.state.briefing_cache = BriefingCache(
        ttl_seconds=settings.briefing_cache_ttl_seconds,
        max_entries=settings.briefing_cache_max_entries,
    )
    yield
    app.state.briefing_cache.invalidate()


app = FastAPI(
    title="Competitive Signal Insight Engine",
    description="Snapshot diffing, insight generation and relevance scoring for local competitors",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routes ────────────────────────────────────────────────────────────
app.include_router(insights_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "competitive-signal-insights"}
