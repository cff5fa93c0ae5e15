"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.store import IntelligenceStore, SqlAlchemyStore
from workers.briefing.cache import BriefingCache


async def get_store(session: AsyncSession = Depends(get_db)) -> AsyncGenerator[IntelligenceStore, None]:
    """Store bound to the request's session; override in tests."""
    yield SqlAlchemyStore(session)


def get_briefing_cache(request: Request) -> BriefingCache:
    return request.app.state.briefing_cache
