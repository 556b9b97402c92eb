"""Builders for upstream-shaped history payloads."""
import json
from datetime import datetime, timedelta, timezone

from app.ingestion.decoder import decode_batch

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
HOUR = 3600


def ts(moment: datetime) -> int:
    return int(moment.timestamp())


def pool_entry(name: str, earnings: str = "100") -> dict:
    return {
        "assetLiquidityFees": "10",
        "earnings": earnings,
        "pool": name,
        "rewards": "5",
        "runeLiquidityFees": "3",
        "saverEarning": "0",
        "totalLiquidityFeesRune": "13",
    }


def wire_interval(schema, start: int, value: int = 100, **overrides) -> dict:
    """One upstream interval for any series, every number encoded as a string."""
    interval = {}
    for f in schema.fields:
        if f.kind == "int":
            interval[f.wire_name] = str(value)
        elif f.kind == "float":
            interval[f.wire_name] = f"{value}.5"
        elif f.kind == "pools":
            interval[f.wire_name] = [pool_entry("BTC.BTC")]
    interval["startTime"] = str(start)
    interval["endTime"] = str(start + HOUR)
    interval.update(overrides)
    return interval


def hourly_intervals(schema, count: int, start: datetime = BASE_TIME, **overrides) -> list:
    return [
        wire_interval(schema, ts(start) + i * HOUR, value=100 + i, **overrides)
        for i in range(count)
    ]


def history_body(intervals: list, meta: dict | None = None) -> str:
    return json.dumps({"intervals": intervals, "meta": meta or {}})


def decoded_rows(schema, count: int, start: datetime = BASE_TIME, **overrides) -> list:
    return decode_batch(schema, history_body(hourly_intervals(schema, count, start, **overrides)))


def hours_after(start: datetime, hours: int) -> datetime:
    return start + timedelta(hours=hours)
