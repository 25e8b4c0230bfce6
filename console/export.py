from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from .errors import NotFoundError, ValidationError
from .models import HistoryRow, parse_date_filter
from .queries import QueryExecutor
from .timefmt import to_ist


CSV_HEADER = ["Username", "Login (IST)", "Logout (IST)", "Device", "User-Agent"]

EXPORT_MODES = ("all", "date", "range")


@dataclass(frozen=True)
class ExportResult:
    filename: str
    content: str
    count: int


def _logout_cell(row: HistoryRow, tz: Optional[str]) -> str:
    if row.logout_time:
        return to_ist(row.logout_time, tz)
    if row.last_ping:
        return f"{to_ist(row.last_ping, tz)} (detected offline)"
    return ""


def csv_from_rows(rows: Iterable[HistoryRow], tz: Optional[str] = None) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    # Header row unquoted; every data cell quoted.
    buf.write(",".join(CSV_HEADER) + "\n")
    for r in rows:
        writer.writerow(
            [
                r.user_name,
                to_ist(r.login_time, tz),
                _logout_cell(r, tz),
                r.device_model or "",
                r.user_agent or "",
            ]
        )
    return buf.getvalue()


def export_filename(mode: str, user: Optional[str], date: str = "", start: str = "", end: str = "") -> str:
    prefix = f"history-{user}" if user else "history"
    if mode == "all":
        return f"{prefix}-all.csv"
    if mode == "date":
        return f"{prefix}-{date}.csv"
    return f"{prefix}-{start}-to-{end}.csv"


def _date_arg(value: Any):
    try:
        return parse_date_filter(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def build_export(
    queries: QueryExecutor,
    mode: str,
    *,
    user: Optional[str] = None,
    date: Any = None,
    start: Any = None,
    end: Any = None,
    tz: Optional[str] = None,
) -> ExportResult:
    """Query login history for an export mode and render it as CSV."""
    user = (user or "").strip() or None
    if mode not in EXPORT_MODES:
        raise ValidationError(f"Unknown export mode '{mode}'")

    rows: List[HistoryRow]
    if mode == "all":
        rows = queries.fetch_history_range(user=user)
        empty_message = "No records found" + (" for selected user" if user else "")
        filename = export_filename(mode, user)
    elif mode == "date":
        day = _date_arg(date)
        if not day:
            raise ValidationError("Please select a date")
        rows = queries.fetch_history_range(day, day, user=user)
        empty_message = "No records found for selected date" + (" and user" if user else "")
        filename = export_filename(mode, user, date=day.isoformat())
    else:
        first = _date_arg(start)
        last = _date_arg(end)
        if not first or not last:
            raise ValidationError("Please select both start and end dates")
        if first > last:
            raise ValidationError("Start date must be before or equal to end date")
        rows = queries.fetch_history_range(first, last, user=user)
        empty_message = "No records found for selected date range" + (" and user" if user else "")
        filename = export_filename(mode, user, start=first.isoformat(), end=last.isoformat())

    if not rows:
        raise NotFoundError(empty_message)
    return ExportResult(filename=filename, content=csv_from_rows(rows, tz), count=len(rows))
