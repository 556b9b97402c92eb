from pydantic import BaseModel
from typing import Optional, Any, List, Dict
from datetime import datetime

from app.ingestion.codec import to_wire
from app.schemas.history import NO_DATA_MESSAGE
from app.schemas.series import POOL_FIELDS, SeriesSchema


class HistoryResponse(BaseModel):
    intervals: List[Dict[str, Any]]
    meta: Dict[str, Any]


class NoDataResponse(BaseModel):
    success: bool = True
    data: str = NO_DATA_MESSAGE


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class CheckpointResponse(BaseModel):
    series: str
    status: str
    records_processed: Optional[int] = None
    watermark: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_log: Optional[str] = None


def encode_pools(pools: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [
        {f.wire_name: to_wire(pool.get(f.column)) for f in POOL_FIELDS}
        for pool in pools or []
    ]


def encode_interval(schema: SeriesSchema, row: Any) -> Dict[str, Any]:
    encoded = {}
    for f in schema.fields:
        value = getattr(row, f.column)
        encoded[f.wire_name] = encode_pools(value) if f.kind == "pools" else to_wire(value)
    return encoded


def encode_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: encode_pools(value) if key == "pools" else to_wire(value)
        for key, value in summary.items()
    }
