"""
Query parameters accepted by the history endpoints, one model per series.
"""
from datetime import datetime, time, timezone
from typing import Optional, Tuple

from pydantic import BaseModel, Field

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 400
# Keeps the offset inside a signed 64-bit bind
MAX_PAGE = 10**12
NO_DATA_MESSAGE = "no data found in the database for the given params"


class HistoryQueryParams(BaseModel):
    date_range: Optional[str] = Field(None, description="Date range in format YYYY-MM-DD,YYYY-MM-DD")
    sort_by: Optional[str] = Field(None, description="Field to sort by. `timestamp` maps to `start_time`, which is also the default")
    order: Optional[str] = Field(None, description="Sort order (asc/desc). Default is `desc`")
    page: Optional[int] = Field(None, description="Page number. Default is `0`")
    limit: Optional[int] = Field(None, description=f"Items per page. Default is `{DEFAULT_PAGE_SIZE}`, capped at `{MAX_PAGE_SIZE}`")


class DepthHistoryQueryParams(HistoryQueryParams):
    liquidity_gt: Optional[int] = Field(None, description="Only intervals with liquidity units above this value")


class SwapHistoryQueryParams(HistoryQueryParams):
    volume_gt: Optional[int] = Field(None, description="Only intervals with total volume above this value")
    fees_gt: Optional[int] = Field(None, description="Only intervals with total fees above this value")


class EarningsHistoryQueryParams(HistoryQueryParams):
    earnings_gt: Optional[int] = Field(None, description="Only intervals with earnings above this value")
    block_rewards_gt: Optional[int] = Field(None, description="Only intervals with block rewards above this value")
    node_count_gt: Optional[float] = Field(None, description="Only intervals with an average node count above this value")
    pool: Optional[str] = Field(None, description="Only intervals whose pools array contains this pool name")


class RunepoolUnitsHistoryQueryParams(HistoryQueryParams):
    units_gt: Optional[int] = Field(None, description="Only intervals with units above this value")


def parse_date_range(date_range: Optional[str]) -> Optional[Tuple[datetime, datetime]]:
    """
    Turns "YYYY-MM-DD,YYYY-MM-DD" into a UTC window spanning both whole days.
    Anything that does not parse yields None and the filter is skipped.
    """
    if not date_range:
        return None
    parts = date_range.split(",")
    if len(parts) != 2:
        return None
    try:
        start_day = datetime.strptime(parts[0].strip(), "%Y-%m-%d").date()
        end_day = datetime.strptime(parts[1].strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
    start = datetime.combine(start_day, time(0, 0, 0), tzinfo=timezone.utc)
    end = datetime.combine(end_day, time(23, 59, 59), tzinfo=timezone.utc)
    return start, end


def resolve_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Returns (limit, offset)."""
    size = min(limit or DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    if size < 0:
        size = DEFAULT_PAGE_SIZE
    return size, min(max(page or 0, 0), MAX_PAGE) * size
