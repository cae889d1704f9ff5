import time
from datetime import datetime, timezone
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def ms_to_iso(ms: Optional[int]) -> Optional[str]:
    """Format epoch milliseconds as an ISO 8601 UTC string (None passes through)."""
    if ms is None:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="seconds").replace("+00:00", "Z")


def iso_to_ms(value: str) -> int:
    """
    Parse an ISO 8601 timestamp into epoch milliseconds.
    Accepts a trailing "Z". Naive timestamps are treated as UTC.
    Raises ValueError for anything unparseable.
    """
    raw = value.strip()
    if raw.endswith("Z") or raw.endswith("z"):
        raw = raw[:-1] + "+00:00"
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)
