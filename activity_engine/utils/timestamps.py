"""
Shared timestamp helpers for stream events
Normalizes epoch seconds, epoch milliseconds and ISO strings to aware UTC datetimes
"""
import math
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_timestamp(ts_raw) -> Optional[datetime]:
    """Parse stream timestamp (ISO string, datetime, or Unix seconds/ms)"""
    if ts_raw is None or isinstance(ts_raw, bool):
        return None
    if isinstance(ts_raw, datetime):
        if ts_raw.tzinfo is None:
            return ts_raw.replace(tzinfo=timezone.utc)
        return ts_raw
    if isinstance(ts_raw, str):
        ts_raw = ts_raw.strip()
        if not ts_raw:
            return None
        # Numeric string - treat as Unix timestamp
        try:
            return _from_epoch(float(ts_raw))
        except ValueError:
            pass
        # Handle ISO8601: "2024-11-06T01:44:08.930114Z"
        try:
            parsed = datetime.fromisoformat(ts_raw.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    if isinstance(ts_raw, (int, float)):
        return _from_epoch(float(ts_raw))
    return None


@lru_cache(maxsize=2048)
def parse_timestamp_cached(ts_raw_str: str) -> Optional[datetime]:
    """Cached version for high-frequency parsing (normalizer)
    Cache stringified timestamps for consistent hashing"""
    return parse_timestamp(ts_raw_str)


def _from_epoch(value: float) -> Optional[datetime]:
    if not math.isfinite(value) or value < 0:
        return None
    if value > 1e10:  # Milliseconds
        value = value / 1000
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
