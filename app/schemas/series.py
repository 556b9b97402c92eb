"""
Registry of the four tracked history series.
Each series is described as data (upstream path, wire fields, table, filters, summary)
so that a single synchronizer and a single query builder serve all of them.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, create_model

from app.db.models import DepthInterval, EarningsInterval, RunepoolUnitsInterval, SwapInterval
from app.ingestion.codec import WireFloat, WireInt, WireTimestamp
from app.schemas.history import (
    DepthHistoryQueryParams,
    EarningsHistoryQueryParams,
    HistoryQueryParams,
    RunepoolUnitsHistoryQueryParams,
    SwapHistoryQueryParams,
)


class Interval(str, Enum):
    FIVE_MIN = "5min"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


@dataclass(frozen=True)
class FieldSpec:
    wire_name: str
    column: str
    kind: str  # int, float, timestamp, str, pools


@dataclass(frozen=True)
class ContainmentFilter:
    param: str
    column: str
    key: str


WIRE_TYPES = {
    "int": WireInt,
    "float": WireFloat,
    "timestamp": WireTimestamp,
    "str": str,
}


def _wire_type(kind: str):
    if kind == "pools":
        return List[PoolEarnings]
    return WIRE_TYPES[kind]


def _build_wire_model(name: str, fields: Tuple[FieldSpec, ...]) -> Type[BaseModel]:
    definitions = {f.column: (_wire_type(f.kind), Field(alias=f.wire_name)) for f in fields}
    return create_model(name, __config__=ConfigDict(extra="ignore", populate_by_name=True), **definitions)


POOL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("assetLiquidityFees", "asset_liquidity_fees", "int"),
    FieldSpec("earnings", "earnings", "int"),
    FieldSpec("pool", "pool", "str"),
    FieldSpec("rewards", "rewards", "int"),
    FieldSpec("runeLiquidityFees", "rune_liquidity_fees", "int"),
    FieldSpec("saverEarning", "saver_earning", "int"),
    FieldSpec("totalLiquidityFeesRune", "total_liquidity_fees_rune", "int"),
)

PoolEarnings = _build_wire_model("PoolEarnings", POOL_FIELDS)


@dataclass(frozen=True)
class SeriesSchema:
    id: str
    upstream_path: str
    model: type
    fields: Tuple[FieldSpec, ...]
    params_model: Type[HistoryQueryParams]
    summarize: Callable[["SeriesSchema", Any, Any], Dict[str, Any]]
    routes: Tuple[str, ...]
    threshold_filters: Mapping[str, str] = field(default_factory=dict)
    containment_filter: Optional[ContainmentFilter] = None
    sort_aliases: Mapping[str, str] = field(default_factory=dict)
    default_sort: str = "start_time"

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @cached_property
    def wire_model(self) -> Type[BaseModel]:
        name = "".join(part.capitalize() for part in self.id.split("_")) + "WireInterval"
        return _build_wire_model(name, self.fields)

    @cached_property
    def wire_names(self) -> frozenset:
        return frozenset(f.wire_name for f in self.fields)

    @cached_property
    def sortable_columns(self) -> frozenset:
        return frozenset(f.column for f in self.fields if f.kind != "pools")

    def resolve_sort_column(self, sort_by: Optional[str]) -> str:
        """Maps a requested sort key onto a physical column, falling back to the default."""
        if not sort_by:
            return self.default_sort
        if sort_by == "timestamp":
            return "start_time"
        if sort_by in self.sort_aliases:
            return self.sort_aliases[sort_by]
        if sort_by in self.sortable_columns:
            return sort_by
        return self.default_sort

    def upstream_url_path(self, depth_pool: str) -> str:
        return self.upstream_path.format(pool=depth_pool)


# --- Summaries ---

def _ratio(numerator: float, denominator: float) -> float:
    if not denominator or math.isnan(numerator) or math.isnan(denominator):
        return math.nan
    return numerator / denominator


def _price_shift_loss(start_price: float, end_price: float) -> float:
    ratio = _ratio(end_price, start_price)
    if math.isnan(ratio) or ratio < 0:
        return math.nan
    return 2 * math.sqrt(ratio) / (1 + ratio)


def _depth_summary(schema: SeriesSchema, first, last) -> Dict[str, Any]:
    return {
        "startTime": first.start_time,
        "endTime": last.end_time,
        "startAssetDepth": first.asset_depth,
        "endAssetDepth": last.asset_depth,
        "startRuneDepth": first.rune_depth,
        "endRuneDepth": last.rune_depth,
        "startLPUnits": first.liquidity_units,
        "endLPUnits": last.liquidity_units,
        "startMemberCount": first.members_count,
        "endMemberCount": last.members_count,
        "startSynthUnits": first.synth_units,
        "endSynthUnits": last.synth_units,
        "luviIncrease": _ratio(last.luvi, first.luvi),
        "priceShiftLoss": _price_shift_loss(first.asset_price, last.asset_price),
    }


def _last_row_summary(schema: SeriesSchema, first, last) -> Dict[str, Any]:
    summary = {f.wire_name: getattr(last, f.column) for f in schema.fields}
    summary["startTime"] = first.start_time
    summary["endTime"] = last.end_time
    return summary


def _runepool_summary(schema: SeriesSchema, first, last) -> Dict[str, Any]:
    return {
        "startTime": first.start_time,
        "endTime": last.end_time,
        "startCount": first.count,
        "endCount": last.count,
        "startUnits": first.units,
        "endUnits": last.units,
    }


# --- Field layouts ---

WINDOW_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("startTime", "start_time", "timestamp"),
    FieldSpec("endTime", "end_time", "timestamp"),
)

DEPTH_FIELDS = WINDOW_FIELDS + (
    FieldSpec("assetDepth", "asset_depth", "int"),
    FieldSpec("assetPrice", "asset_price", "float"),
    FieldSpec("assetPriceUSD", "asset_price_usd", "float"),
    FieldSpec("liquidityUnits", "liquidity_units", "int"),
    FieldSpec("luvi", "luvi", "float"),
    FieldSpec("membersCount", "members_count", "int"),
    FieldSpec("runeDepth", "rune_depth", "int"),
    FieldSpec("synthSupply", "synth_supply", "int"),
    FieldSpec("synthUnits", "synth_units", "int"),
    FieldSpec("units", "units", "int"),
)


def _swap_fields() -> Tuple[FieldSpec, ...]:
    fields = [
        FieldSpec("averageSlip", "average_slip", "float"),
        FieldSpec("runePriceUSD", "rune_price_usd", "float"),
    ]
    for wire_prefix, column_prefix in (
        ("fromTrade", "from_trade"),
        ("synthMint", "synth_mint"),
        ("synthRedeem", "synth_redeem"),
        ("toAsset", "to_asset"),
        ("toRune", "to_rune"),
        ("toTrade", "to_trade"),
    ):
        fields += [
            FieldSpec(f"{wire_prefix}AverageSlip", f"{column_prefix}_average_slip", "float"),
            FieldSpec(f"{wire_prefix}Count", f"{column_prefix}_count", "int"),
            FieldSpec(f"{wire_prefix}Fees", f"{column_prefix}_fees", "int"),
            FieldSpec(f"{wire_prefix}Volume", f"{column_prefix}_volume", "int"),
            FieldSpec(f"{wire_prefix}VolumeUSD", f"{column_prefix}_volume_usd", "int"),
        ]
    fields += [
        FieldSpec("totalCount", "total_count", "int"),
        FieldSpec("totalFees", "total_fees", "int"),
        FieldSpec("totalVolume", "total_volume", "int"),
        FieldSpec("totalVolumeUSD", "total_volume_usd", "int"),
    ]
    return WINDOW_FIELDS + tuple(fields)


EARNINGS_FIELDS = WINDOW_FIELDS + (
    FieldSpec("avgNodeCount", "avg_node_count", "float"),
    FieldSpec("blockRewards", "block_rewards", "int"),
    FieldSpec("bondingEarnings", "bonding_earnings", "int"),
    FieldSpec("earnings", "earnings", "int"),
    FieldSpec("liquidityEarnings", "liquidity_earnings", "int"),
    FieldSpec("liquidityFees", "liquidity_fees", "int"),
    FieldSpec("pools", "pools", "pools"),
    FieldSpec("runePriceUSD", "rune_price_usd", "float"),
)

RUNEPOOL_FIELDS = WINDOW_FIELDS + (
    FieldSpec("count", "count", "int"),
    FieldSpec("units", "units", "int"),
)


DEPTH = SeriesSchema(
    id="depth",
    upstream_path="history/depths/{pool}",
    model=DepthInterval,
    fields=DEPTH_FIELDS,
    params_model=DepthHistoryQueryParams,
    summarize=_depth_summary,
    routes=("/depth_history",),
    threshold_filters={"liquidity_gt": "liquidity_units"},
)

SWAP = SeriesSchema(
    id="swap",
    upstream_path="history/swaps",
    model=SwapInterval,
    fields=_swap_fields(),
    params_model=SwapHistoryQueryParams,
    summarize=_last_row_summary,
    routes=("/swap_history",),
    threshold_filters={"volume_gt": "total_volume", "fees_gt": "total_fees"},
    sort_aliases={"volume": "total_volume", "fees": "total_fees", "count": "total_count"},
)

EARNINGS = SeriesSchema(
    id="earnings",
    upstream_path="history/earnings",
    model=EarningsInterval,
    fields=EARNINGS_FIELDS,
    params_model=EarningsHistoryQueryParams,
    summarize=_last_row_summary,
    routes=("/earnings_history", "/earning_history"),
    threshold_filters={
        "earnings_gt": "earnings",
        "block_rewards_gt": "block_rewards",
        "node_count_gt": "avg_node_count",
    },
    containment_filter=ContainmentFilter(param="pool", column="pools", key="pool"),
)

RUNEPOOL_UNITS = SeriesSchema(
    id="runepool_units",
    upstream_path="history/runepool",
    model=RunepoolUnitsInterval,
    fields=RUNEPOOL_FIELDS,
    params_model=RunepoolUnitsHistoryQueryParams,
    summarize=_runepool_summary,
    routes=("/runepool_units_history",),
    threshold_filters={"units_gt": "units"},
)

# Order matters for the hourly coordinator, which walks the series sequentially
SERIES: Dict[str, SeriesSchema] = {s.id: s for s in (DEPTH, EARNINGS, SWAP, RUNEPOOL_UNITS)}


def schema_for(series_id: str) -> SeriesSchema:
    try:
        return SERIES[series_id]
    except KeyError:
        raise LookupError(f"Unknown series: {series_id}") from None
