from __future__ import annotations

import datetime as dt
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import HistoryRow, VideoRow
from .timefmt import seconds_since, to_ist, to_local_date


STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_OK = "ok"
STATUS_ERROR = "error"


@dataclass
class ViewSlice:
    """One display region: the rows on screen plus the state of the fetches feeding it.

    ``applied_seq`` is the refresh cycle whose outcome is currently shown; a
    result from an older cycle is discarded.
    """

    name: str
    empty_text: str
    error_text: str
    loading_text: str
    rows: List[Any] = field(default_factory=list)
    status: str = STATUS_IDLE
    error: Optional[str] = None
    has_content: bool = False
    applied_seq: int = 0
    loading_seq: int = 0
    updated_at: Optional[float] = None

    def _settle(self, outcome: str) -> None:
        self.status = STATUS_LOADING if self.loading_seq > self.applied_seq else outcome

    def begin(self, seq: int) -> bool:
        if seq <= self.applied_seq:
            return False
        self.loading_seq = max(self.loading_seq, seq)
        self.status = STATUS_LOADING
        return True

    def apply_rows(self, seq: int, rows: Sequence[Any]) -> bool:
        if seq < self.applied_seq:
            return False
        self.rows = list(rows)
        self.has_content = True
        self.error = None
        self.applied_seq = seq
        self.updated_at = time.time()
        self._settle(STATUS_OK)
        return True

    def apply_error(self, seq: int, message: str) -> bool:
        """Flag a failed fetch; rows already on screen stay as they are."""
        if seq < self.applied_seq:
            return False
        self.error = message
        self.applied_seq = seq
        self._settle(STATUS_ERROR)
        return True

    def placeholder(self) -> Optional[str]:
        if self.rows:
            return None
        if self.has_content:
            return self.empty_text
        if self.status == STATUS_ERROR:
            return self.error_text
        return self.loading_text


def logout_display(
    row: HistoryRow,
    *,
    now: Optional[dt.datetime] = None,
    offline_after_seconds: int = 70,
    tz: Optional[str] = None,
) -> str:
    if row.logout_time:
        return to_ist(row.logout_time, tz)
    if row.last_ping:
        age = seconds_since(row.last_ping, now)
        if age is not None and age > offline_after_seconds:
            return f"{to_ist(row.last_ping, tz)} (detected offline)"
    return "Active"


def render_history_row(
    row: HistoryRow,
    *,
    now: Optional[dt.datetime] = None,
    offline_after_seconds: int = 70,
    tz: Optional[str] = None,
) -> Dict[str, str]:
    return {
        "user": row.user_name,
        "login": to_ist(row.login_time, tz),
        "logout": logout_display(row, now=now, offline_after_seconds=offline_after_seconds, tz=tz),
        "device": row.device_model or "",
        "user_agent": row.user_agent or "",
    }


def render_video_row(row: VideoRow, *, tz: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": row.id,
        "filename": row.filename,
        "user": row.display_user or "",
        "uploaded": to_local_date(row.uploaded_at, tz),
        "storage_path": row.storage_path,
    }


class ConsoleView:
    """Server-held state of the two display regions polled by the dashboard."""

    def __init__(self, *, offline_after_seconds: int = 70, tz: Optional[str] = None) -> None:
        self.offline_after_seconds = offline_after_seconds
        self.tz = tz
        self.history = ViewSlice(
            name="history",
            empty_text="No records found",
            error_text="Error loading history",
            loading_text="Loading history...",
        )
        self.videos = ViewSlice(
            name="videos",
            empty_text="No videos uploaded yet",
            error_text="Error loading videos",
            loading_text="Loading videos...",
        )
        self.version = 0

    def slice(self, name: str) -> ViewSlice:
        if name == "history":
            return self.history
        if name == "videos":
            return self.videos
        raise KeyError(name)

    def begin(self, name: str, seq: int) -> bool:
        changed = self.slice(name).begin(seq)
        if changed:
            self.version += 1
        return changed

    def apply_rows(self, name: str, seq: int, rows: Sequence[Any]) -> bool:
        changed = self.slice(name).apply_rows(seq, rows)
        if changed:
            self.version += 1
        return changed

    def apply_error(self, name: str, seq: int, message: str) -> bool:
        changed = self.slice(name).apply_error(seq, message)
        if changed:
            self.version += 1
        return changed

    def _slice_snapshot(self, view: ViewSlice, rendered: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "status": view.status,
            "error": view.error if view.status == STATUS_ERROR else None,
            "placeholder": view.placeholder(),
            "rows": rendered,
            "count": len(view.rows),
            "updated_at": view.updated_at,
            "seq": view.applied_seq,
        }

    def history_snapshot(self, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        rendered = [
            render_history_row(r, now=now, offline_after_seconds=self.offline_after_seconds, tz=self.tz)
            for r in self.history.rows
        ]
        return self._slice_snapshot(self.history, rendered)

    def videos_snapshot(self) -> Dict[str, Any]:
        rendered = [render_video_row(r, tz=self.tz) for r in self.videos.rows]
        return self._slice_snapshot(self.videos, rendered)

    def snapshot(self, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        return {
            "version": self.version,
            "history": self.history_snapshot(now),
            "videos": self.videos_snapshot(),
        }
