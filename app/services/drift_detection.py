from typing import Dict, Any, Iterable
from app.core.logging_config import get_logger

logger = get_logger("drift_detection")

def detect_drift(payload: Dict[str, Any], expected_keys: Iterable[str], series: str) -> bool:
    """
    Compares the keys of one upstream interval with the wire fields we know about.
    Logs a warning and returns True if the layout changed.
    """
    incoming_keys = set(payload.keys())
    expected = set(expected_keys)

    unexpected = incoming_keys - expected
    missing = expected - incoming_keys

    if unexpected:
        logger.warning("potential_schema_drift", series=series, message="Unexpected keys in upstream interval", keys=sorted(unexpected))
    if missing:
        logger.warning("potential_schema_drift", series=series, message="Expected keys missing from upstream interval", keys=sorted(missing))

    return bool(unexpected or missing)
