"""
Wire format shared by the upstream provider and our read API.
Numbers travel as strings (possibly comma-grouped or "NaN"), timestamps as Unix-second strings.
"""
import math
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import BeforeValidator

NAN_LITERAL = "NaN"


def parse_wire_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"expected a numeric string, got {type(value).__name__}")
    text = value.strip()
    if text == NAN_LITERAL:
        return math.nan
    try:
        return float(text)
    except ValueError:
        return float(text.replace(",", ""))


def parse_wire_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    if not isinstance(value, str):
        raise ValueError(f"expected a numeric string, got {type(value).__name__}")
    text = value.strip().replace(",", "")
    try:
        return int(text)
    except ValueError:
        # Some integer fields come through as "123.0"
        number = float(text)
        if not math.isfinite(number) or not number.is_integer():
            raise ValueError(f"{value!r} is not an integer")
        return int(number)


def parse_wire_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"expected Unix seconds, got {value!r}")
    seconds = int(str(value).strip())
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"{value!r} is out of range for a timestamp") from e


def to_wire(value: Any) -> Any:
    """Encodes a decoded value back into the upstream string representation."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return str(int(value.timestamp()))
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return NAN_LITERAL if math.isnan(value) else repr(value)
    if isinstance(value, int):
        return str(value)
    return value


WireInt = Annotated[int, BeforeValidator(parse_wire_int)]
WireFloat = Annotated[float, BeforeValidator(parse_wire_float)]
WireTimestamp = Annotated[datetime, BeforeValidator(parse_wire_timestamp)]
