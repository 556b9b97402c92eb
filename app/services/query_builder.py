"""
Generic filtered, sorted, paginated reads over any series table.
Every user-supplied value is bound; only allow-listed column names reach the SQL text.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import cast, func, literal
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.logging_config import get_logger
from app.schemas.history import HistoryQueryParams, parse_date_range, resolve_page
from app.schemas.series import ContainmentFilter, SeriesSchema

logger = get_logger("query_builder")


@dataclass
class IntervalPage:
    intervals: List[Any] = field(default_factory=list)
    summary: Optional[Dict[str, Any]] = None

    @property
    def found(self) -> bool:
        return bool(self.intervals)


def _containment_clause(schema: SeriesSchema, spec: ContainmentFilter, value: str, dialect: str):
    column = getattr(schema.model, spec.column)
    if dialect == "postgresql":
        return cast(column, JSONB).contains([{spec.key: value}])
    # SQLite and friends: look for a matching element with json_each
    elements = func.json_each(column).table_valued("value")
    return (
        select(literal(1))
        .select_from(elements)
        .where(func.json_extract(elements.c.value, f"$.{spec.key}") == value)
        .exists()
    )


def build_query(schema: SeriesSchema, params: HistoryQueryParams, dialect: str = "postgresql"):
    model = schema.model
    limit, offset = resolve_page(params.page, params.limit)

    query = select(model)

    window = parse_date_range(params.date_range)
    if window:
        start, end = window
        query = query.where(model.start_time >= start, model.end_time <= end)

    for param, column in schema.threshold_filters.items():
        value = getattr(params, param, None)
        if value is not None:
            query = query.where(getattr(model, column) > value)

    spec = schema.containment_filter
    if spec is not None:
        value = getattr(params, spec.param, None)
        if value:
            query = query.where(_containment_clause(schema, spec, value, dialect))

    sort_column = getattr(model, schema.resolve_sort_column(params.sort_by))
    if (params.order or "").lower() == "asc":
        query = query.order_by(sort_column.asc(), model.id.asc())
    else:
        query = query.order_by(sort_column.desc(), model.id.desc())

    return query.limit(limit).offset(offset)


def summarize_page(schema: SeriesSchema, rows: List[Any]) -> Dict[str, Any]:
    """
    Summary brackets the returned page only: its earliest and latest interval,
    whatever order the page was sorted in.
    """
    chronological = sorted(rows, key=lambda row: (row.start_time, row.end_time))
    return schema.summarize(schema, chronological[0], chronological[-1])


async def query_intervals(session: AsyncSession, schema: SeriesSchema, params: HistoryQueryParams) -> IntervalPage:
    dialect = session.bind.dialect.name
    query = build_query(schema, params, dialect)
    logger.debug("history_query", series=schema.id, sql=str(query))

    result = await session.execute(query)
    rows = list(result.scalars().all())

    if not rows:
        return IntervalPage()

    return IntervalPage(intervals=rows, summary=summarize_page(schema, rows))
