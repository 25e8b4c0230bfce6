from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_date_filter(value: Any) -> Optional[dt.date]:
    """Accept a YYYY-MM-DD string (as sent by a date input) or a date; empty means no filter."""
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


@dataclass(frozen=True)
class FilterContext:
    """Operator selections applied to a refresh.

    ``date_filter``/``user_filter`` constrain the login history; ``video_user``
    is the separate selection for the video list.
    """

    date_filter: Optional[dt.date] = None
    user_filter: Optional[str] = None
    video_user: Optional[str] = None

    @classmethod
    def from_fields(cls, date: Any = None, user: Any = None, video_user: Any = None) -> "FilterContext":
        return cls(
            date_filter=parse_date_filter(date),
            user_filter=_clean(user),
            video_user=_clean(video_user),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date_filter.isoformat() if self.date_filter else "",
            "user": self.user_filter or "",
            "video_user": self.video_user or "",
        }


@dataclass(frozen=True)
class DisplayUser:
    username: str
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DisplayUser":
        return cls(username=str(row.get("username") or ""), created_at=row.get("created_at"))


@dataclass(frozen=True)
class VideoRow:
    id: Any
    filename: str
    storage_path: str
    display_user: Optional[str] = None
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "VideoRow":
        return cls(
            id=row.get("id"),
            filename=str(row.get("filename") or ""),
            storage_path=str(row.get("storage_path") or ""),
            display_user=row.get("display_user"),
            uploaded_by=row.get("uploaded_by"),
            uploaded_at=row.get("uploaded_at"),
        )


@dataclass(frozen=True)
class HistoryRow:
    user_name: str
    login_time: Optional[str] = None
    logout_time: Optional[str] = None
    last_ping: Optional[str] = None
    device_model: Optional[str] = None
    user_agent: Optional[str] = None
    id: Any = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HistoryRow":
        return cls(
            id=row.get("id"),
            user_name=str(row.get("user_name") or ""),
            login_time=row.get("login_time"),
            logout_time=row.get("logout_time"),
            last_ping=row.get("last_ping"),
            device_model=row.get("device_model"),
            user_agent=row.get("user_agent"),
        )
