from __future__ import annotations

import os
import json
import sys
from dataclasses import dataclass
from typing import Optional


# Debug flag: default off. Enable via CLI arg "--console-debug" or env CONSOLE_DEBUG=1.
DEBUG = "--console-debug" in sys.argv or os.environ.get("CONSOLE_DEBUG") == "1"


def dlog(label: str, data):
    if not DEBUG:
        return
    try:
        printable = data if isinstance(data, str) else json.dumps(data, indent=2, ensure_ascii=False, default=str)
    except Exception:
        printable = str(data)
    print(f"[console-debug] {label}: {printable}")


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        dlog("config_invalid_int", {"name": name, "value": value, "default": default})
        return default


@dataclass(frozen=True)
class ConsoleSettings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    videos_bucket: str
    broadcast_topic: str
    channel_mode: str
    debounce_ms: int
    max_wait_ms: int
    visible_delay_ms: int
    offline_after_seconds: int
    timezone: str
    filters_file: Optional[str] = None
    metrics_file: Optional[str] = None
    event_log_file: Optional[str] = None

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_console_settings() -> ConsoleSettings:
    """Read console settings from env (and .env, once loaded by the app)."""
    supabase_url = (os.environ.get("SUPABASE_URL") or "").strip().rstrip("/") or None
    supabase_key = os.environ.get("SUPABASE_KEY") or os.environ.get("SUPABASE_ANON_KEY")

    channel_mode = (os.environ.get("CONSOLE_CHANNEL") or "").strip().lower()
    if channel_mode not in {"local", "realtime"}:
        channel_mode = "realtime" if supabase_url else "local"

    settings = ConsoleSettings(
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        videos_bucket=os.environ.get("VIDEOS_BUCKET", "ads-videos").strip() or "ads-videos",
        broadcast_topic=os.environ.get("BROADCAST_TOPIC", "login_updates").strip() or "login_updates",
        channel_mode=channel_mode,
        debounce_ms=max(0, _int_env("REFRESH_DEBOUNCE_MS", 600)),
        max_wait_ms=max(0, _int_env("REFRESH_MAX_WAIT_MS", 3000)),
        visible_delay_ms=max(0, _int_env("VISIBLE_REFRESH_DELAY_MS", 300)),
        offline_after_seconds=max(1, _int_env("OFFLINE_AFTER_SECONDS", 70)),
        timezone=os.environ.get("CONSOLE_TIMEZONE", "Asia/Kolkata").strip() or "Asia/Kolkata",
        filters_file=os.environ.get("FILTERS_FILE") or None,
        metrics_file=os.environ.get("METRICS_FILE") or os.environ.get("CONSOLE_METRICS_FILE") or None,
        event_log_file=os.environ.get("ADMIN_EVENT_LOG") or None,
    )
    dlog(
        "console_settings",
        {
            "supabase_url": settings.supabase_url,
            "has_supabase_key": bool(settings.supabase_key),
            "channel_mode": settings.channel_mode,
            "topic": settings.broadcast_topic,
            "debounce_ms": settings.debounce_ms,
            "visible_delay_ms": settings.visible_delay_ms,
        },
    )
    return settings
