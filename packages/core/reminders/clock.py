from __future__ import annotations

import datetime as dt
from typing import Optional


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime) -> dt.datetime:
    # Naive datetimes are treated as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def to_iso(value: Optional[dt.datetime]) -> Optional[str]:
    # Fixed width so stored timestamps compare correctly as strings.
    if value is None:
        return None
    return as_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str) -> dt.datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(dt.datetime.fromisoformat(text))
