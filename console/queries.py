from __future__ import annotations

import datetime as dt
from typing import Any, Callable, List, Optional, Tuple

from .config import dlog
from .errors import FetchError, ServiceError
from .models import DisplayUser, FilterContext, HistoryRow, VideoRow
from .supabase_client import Filter, SupabaseClient


HISTORY_TABLE = "login_history"
VIDEOS_TABLE = "videos"

# Login history never lists the console's own admin sessions.
EXCLUDED_HISTORY_USER = "admin"


def day_bounds(start: dt.date, end: Optional[dt.date] = None) -> Tuple[str, str]:
    """UTC bounds covering whole calendar days, in the ISO form the table is filtered with."""
    last = end or start
    return (
        f"{start.isoformat()}T00:00:00.000Z",
        f"{last.isoformat()}T23:59:59.000Z",
    )


class QueryExecutor:
    """Read side of the console: users, login history and video rows."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    def _fetch(self, label: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except FetchError:
            raise
        except ServiceError as e:
            dlog(f"{label}_error", str(e))
            raise FetchError(str(e), status_code=e.status_code) from e

    def list_display_users(self) -> List[DisplayUser]:
        data = self._fetch("display_users", lambda: self._client.rpc("get_display_users"))
        if data is None:
            return []
        if not isinstance(data, list):
            raise FetchError("get_display_users did not return a list")
        return [DisplayUser.from_row(row) for row in data if isinstance(row, dict)]

    def _history(self, filters: List[Filter]) -> List[HistoryRow]:
        base: List[Filter] = [("neq", "user_name", EXCLUDED_HISTORY_USER)]
        rows = self._fetch(
            "history",
            lambda: self._client.select(HISTORY_TABLE, filters=base + filters, order=("login_time", "desc")),
        )
        return [HistoryRow.from_row(row) for row in rows]

    def fetch_history(self, ctx: FilterContext) -> List[HistoryRow]:
        filters: List[Filter] = []
        if ctx.user_filter:
            filters.append(("eq", "user_name", ctx.user_filter))
        if ctx.date_filter:
            start, end = day_bounds(ctx.date_filter)
            filters.append(("gte", "login_time", start))
            filters.append(("lte", "login_time", end))
        return self._history(filters)

    def fetch_history_range(
        self,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        user: Optional[str] = None,
    ) -> List[HistoryRow]:
        filters: List[Filter] = []
        if user:
            filters.append(("eq", "user_name", user))
        if start:
            lower, upper = day_bounds(start, end)
            filters.append(("gte", "login_time", lower))
            filters.append(("lte", "login_time", upper))
        return self._history(filters)

    def fetch_videos(self, user: Optional[str] = None) -> List[VideoRow]:
        filters: List[Filter] = []
        if user:
            filters.append(("eq", "display_user", user))
        rows = self._fetch(
            "videos",
            lambda: self._client.select(VIDEOS_TABLE, filters=filters, order=("uploaded_at", "desc")),
        )
        return [VideoRow.from_row(row) for row in rows]

    def video_paths_for(self, user: str) -> List[str]:
        rows = self._fetch(
            "video_paths",
            lambda: self._client.select(
                VIDEOS_TABLE,
                columns="storage_path",
                filters=[("eq", "display_user", user)],
            ),
        )
        return [row["storage_path"] for row in rows if row.get("storage_path")]
