"""Timestamp helpers for rendering console rows in the operator's timezone."""

from __future__ import annotations

import datetime as dt
from typing import Optional
from zoneinfo import ZoneInfo


DEFAULT_TZ = "Asia/Kolkata"

IST = ZoneInfo(DEFAULT_TZ)


def _zone(tz: Optional[str]) -> ZoneInfo:
    if not tz or tz == DEFAULT_TZ:
        return IST
    return ZoneInfo(tz)


def parse_timestamp(value: Optional[str]) -> Optional[dt.datetime]:
    """Parse an ISO-8601 timestamp from the database; naive values are UTC."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def to_ist(value: Optional[str], tz: Optional[str] = None) -> str:
    """Render as ``dd/mm/yyyy HH:MM:SS`` in the console timezone ('' for empty input)."""
    if not value:
        return ""
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value)
    return parsed.astimezone(_zone(tz)).strftime("%d/%m/%Y %H:%M:%S")


def to_local_date(value: Optional[str], tz: Optional[str] = None) -> str:
    parsed = parse_timestamp(value)
    if parsed is None:
        return ""
    return parsed.astimezone(_zone(tz)).strftime("%d/%m/%Y")


def today_ist(now: Optional[dt.datetime] = None, tz: Optional[str] = None) -> str:
    """Today's date in the console timezone as YYYY-MM-DD."""
    current = now or dt.datetime.now(dt.timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=dt.timezone.utc)
    return current.astimezone(_zone(tz)).date().isoformat()


def seconds_since(value: Optional[str], now: Optional[dt.datetime] = None) -> Optional[float]:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    current = now or dt.datetime.now(dt.timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=dt.timezone.utc)
    return (current - parsed).total_seconds()
