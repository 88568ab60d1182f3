"""UTC timestamp helpers shared by the on-disk formats."""

import re
from datetime import datetime, timezone

# fromisoformat() only takes up to microseconds; older state files carry nanoseconds
_FRACTION_PATTERN = re.compile(r'\.(\d{6})\d+')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.isoformat()


def parse_ts(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp. Accepts a trailing 'Z' and naive values (taken as UTC)."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    value = _FRACTION_PATTERN.sub(r'.\1', value)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
