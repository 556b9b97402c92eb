"""
Idempotent persistence of decoded intervals, keyed by (start_time, end_time).
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.logging_config import get_logger
from app.schemas.series import SeriesSchema

logger = get_logger("interval_store")


async def interval_exists(session: AsyncSession, schema: SeriesSchema, start_time: datetime, end_time: datetime) -> bool:
    model = schema.model
    result = await session.execute(
        select(model.id).where(model.start_time == start_time, model.end_time == end_time).limit(1)
    )
    return result.first() is not None


async def upsert_intervals(session: AsyncSession, schema: SeriesSchema, intervals: Iterable[Dict[str, Any]]) -> int:
    """
    Inserts every interval whose natural key is not stored yet, one row at a time.
    Returns the number of new rows. The caller owns the commit.
    """
    inserted = 0
    skipped = 0
    for values in intervals:
        if await interval_exists(session, schema, values["start_time"], values["end_time"]):
            skipped += 1
            continue
        session.add(schema.model(**values))
        # Flush so a duplicate later in the same batch sees this row
        await session.flush()
        inserted += 1

    logger.debug("upsert_complete", series=schema.id, inserted=inserted, skipped=skipped)
    return inserted


async def latest_end_time(session: AsyncSession, schema: SeriesSchema) -> Optional[datetime]:
    """Max stored end_time, the authoritative resume point of a series."""
    result = await session.execute(select(func.max(schema.model.end_time)))
    return result.scalar_one_or_none()


async def count_intervals(session: AsyncSession, schema: SeriesSchema) -> int:
    result = await session.execute(select(func.count()).select_from(schema.model))
    return result.scalar_one()
