"""
Turns a raw upstream history body into column dicts ready for the upsert store.
A single bad field rejects the whole batch.
"""
import json
from typing import Any, Dict, List

from pydantic import ValidationError

from app.core.exceptions import DecodeError
from app.core.logging_config import get_logger
from app.schemas.series import SeriesSchema
from app.services.drift_detection import detect_drift

logger = get_logger("decoder")


def decode_batch(schema: SeriesSchema, body: str) -> List[Dict[str, Any]]:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Malformed JSON from {schema.id} history: {e}", body) from e

    if not isinstance(payload, dict) or not isinstance(payload.get("intervals"), list):
        raise DecodeError(f"{schema.id} history response has no intervals array", body)

    raw_intervals = payload["intervals"]
    if raw_intervals and isinstance(raw_intervals[0], dict):
        detect_drift(raw_intervals[0], schema.wire_names, schema.id)

    decoded = []
    for position, raw in enumerate(raw_intervals):
        try:
            interval = schema.wire_model.model_validate(raw)
        except ValidationError as e:
            raise DecodeError(f"Interval {position} of {schema.id} history failed to decode: {e}", body) from e
        values = interval.model_dump()
        if values["start_time"] >= values["end_time"]:
            raise DecodeError(f"Interval {position} of {schema.id} history has start_time >= end_time", body)
        decoded.append(values)

    return decoded
