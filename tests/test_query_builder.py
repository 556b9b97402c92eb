import pytest

from app.core import database
from app.schemas.history import MAX_PAGE, parse_date_range, resolve_page
from app.schemas.series import DEPTH, EARNINGS, SWAP, RUNEPOOL_UNITS
from app.services.interval_store import upsert_intervals
from app.services.query_builder import build_query, query_intervals

from payloads import BASE_TIME, decoded_rows, hours_after, hourly_intervals, history_body, pool_entry
from app.ingestion.decoder import decode_batch


async def store(schema, rows):
    async with database.AsyncSessionLocal() as session:
        await upsert_intervals(session, schema, rows)
        await session.commit()


async def run(schema, **params):
    async with database.AsyncSessionLocal() as session:
        return await query_intervals(session, schema, schema.params_model(**params))


def test_page_resolution():
    assert resolve_page(None, None) == (30, 0)
    assert resolve_page(2, 10) == (10, 20)
    assert resolve_page(1, 5000) == (400, 400)
    assert resolve_page(-3, 10) == (10, 0)
    assert resolve_page(10**30, 400) == (400, MAX_PAGE * 400)


def test_date_range_parsing():
    start, end = parse_date_range("2024-01-01,2024-01-02")
    assert start.isoformat() == "2024-01-01T00:00:00+00:00"
    assert end.isoformat() == "2024-01-02T23:59:59+00:00"
    assert parse_date_range("2024-01-01") is None
    assert parse_date_range("2024-13-01,2024-01-02") is None
    assert parse_date_range(None) is None


def test_user_values_are_bound_not_inlined():
    params = SWAP.params_model(sort_by="volume; DROP TABLE swap_intervals", volume_gt=10, order="asc")
    sql = str(build_query(SWAP, params))
    assert "DROP TABLE" not in sql
    assert "ORDER BY swap_intervals.start_time ASC" in sql


@pytest.mark.asyncio
async def test_empty_table_has_no_data():
    page = await run(DEPTH)
    assert not page.found
    assert page.summary is None


@pytest.mark.asyncio
async def test_most_recent_page_scenario():
    await store(DEPTH, decoded_rows(DEPTH, 50))

    page = await run(DEPTH, limit=10, page=0, order="desc")

    starts = [row.start_time for row in page.intervals]
    assert starts == [hours_after(BASE_TIME, h) for h in range(49, 39, -1)]
    assert page.summary["startTime"] == hours_after(BASE_TIME, 40)
    assert page.summary["endTime"] == hours_after(BASE_TIME, 50)
    assert page.summary["startAssetDepth"] == 140
    assert page.summary["endAssetDepth"] == 149


@pytest.mark.asyncio
async def test_default_order_is_descending():
    await store(RUNEPOOL_UNITS, decoded_rows(RUNEPOOL_UNITS, 5))
    page = await run(RUNEPOOL_UNITS)
    assert [row.units for row in page.intervals] == [104, 103, 102, 101, 100]


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [1, 3, 7, 23, 30])
async def test_pages_partition_the_filtered_set(limit):
    await store(RUNEPOOL_UNITS, decoded_rows(RUNEPOOL_UNITS, 23))
    total = 23

    seen = []
    for page_number in range(total // limit + 2):
        page = await run(RUNEPOOL_UNITS, limit=limit, page=page_number, order="asc")
        expected = min(limit, max(0, total - page_number * limit))
        assert len(page.intervals) == expected
        seen.extend(row.start_time for row in page.intervals)

    assert len(seen) == total
    assert len(set(seen)) == total


@pytest.mark.asyncio
async def test_threshold_filters_compose():
    await store(SWAP, decoded_rows(SWAP, 10))

    page = await run(SWAP, volume_gt=104, fees_gt=106, limit=400)

    assert page.intervals
    assert all(row.total_volume > 104 and row.total_fees > 106 for row in page.intervals)
    assert len(page.intervals) == 3


@pytest.mark.asyncio
async def test_date_range_filter():
    # 72 hourly intervals over 2024-01-01 .. 2024-01-03
    await store(RUNEPOOL_UNITS, decoded_rows(RUNEPOOL_UNITS, 72))

    page = await run(RUNEPOOL_UNITS, date_range="2024-01-02,2024-01-02", limit=400)

    start, end = parse_date_range("2024-01-02,2024-01-02")
    assert all(row.start_time >= start and row.end_time <= end for row in page.intervals)
    # The 23:00 interval ends at midnight, past 23:59:59
    assert len(page.intervals) == 23


@pytest.mark.asyncio
async def test_invalid_date_range_is_ignored():
    await store(RUNEPOOL_UNITS, decoded_rows(RUNEPOOL_UNITS, 5))
    page = await run(RUNEPOOL_UNITS, date_range="last week")
    assert len(page.intervals) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("order", ["asc", "desc"])
async def test_timestamp_alias_matches_start_time(order):
    await store(DEPTH, decoded_rows(DEPTH, 12))

    by_alias = await run(DEPTH, sort_by="timestamp", order=order)
    by_column = await run(DEPTH, sort_by="start_time", order=order)

    assert [r.start_time for r in by_alias.intervals] == [r.start_time for r in by_column.intervals]


@pytest.mark.asyncio
async def test_unknown_sort_field_falls_back():
    await store(DEPTH, decoded_rows(DEPTH, 4))
    page = await run(DEPTH, sort_by="not_a_column", order="asc")
    assert [r.start_time for r in page.intervals] == [hours_after(BASE_TIME, h) for h in range(4)]


@pytest.mark.asyncio
async def test_sort_by_metric():
    rows = decoded_rows(SWAP, 4)
    rows[0]["total_volume"] = 999
    await store(SWAP, rows)

    page = await run(SWAP, sort_by="volume")
    assert page.intervals[0].total_volume == 999


@pytest.mark.asyncio
async def test_earnings_pool_containment():
    intervals = hourly_intervals(EARNINGS, 4)
    intervals[1]["pools"] = [pool_entry("BTC.BTC"), pool_entry("ETH.ETH")]
    intervals[3]["pools"] = [pool_entry("ETH.ETH")]
    await store(EARNINGS, decode_batch(EARNINGS, history_body(intervals)))

    page = await run(EARNINGS, pool="ETH.ETH", order="asc")
    assert [r.start_time for r in page.intervals] == [hours_after(BASE_TIME, 1), hours_after(BASE_TIME, 3)]

    assert not (await run(EARNINGS, pool="DOGE.DOGE")).found


@pytest.mark.asyncio
async def test_earnings_summary_uses_last_row():
    await store(EARNINGS, decoded_rows(EARNINGS, 3))
    page = await run(EARNINGS, node_count_gt=50.0)

    assert page.summary["earnings"] == 102
    assert page.summary["startTime"] == BASE_TIME
    assert page.summary["endTime"] == hours_after(BASE_TIME, 3)
    assert page.summary["pools"][0]["pool"] == "BTC.BTC"
