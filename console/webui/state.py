from __future__ import annotations

import os
import json
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Optional

from console.channel import LocalBroadcastHub, NotificationChannel
from console.config import ConsoleSettings, dlog
from console.coordinator import RefreshCoordinator
from console.filters import FilterStore
from console.management import DisplayManager
from console.metrics import MetricsTracker
from console.queries import QueryExecutor
from console.webui.auth import OperatorAuthConfig


@dataclass
class ActivityEvent:
    ts: float
    title: str
    detail: Optional[str] = None
    actor: Optional[str] = None
    level: str = "info"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityEvent":
        return cls(
            ts=float(data.get("ts") or time.time()),
            title=data.get("title") or "Event",
            detail=data.get("detail"),
            actor=data.get("actor"),
            level=data.get("level") or "info",
        )


class ActivityLog:
    """Recent operator actions (user/video changes, exports, failures).

    Kept as a bounded ring in memory and, when a path is set, appended to an
    NDJSON file that is replayed on startup.
    """

    def __init__(self, max_events: int = 200, path: Optional[str] = None) -> None:
        self.path = path
        self.events: Deque[ActivityEvent] = deque(maxlen=max_events)
        self._replay(self._read_lines())

    def add(self, title: str, detail: Optional[str] = None, *, actor: Optional[str] = None, level: str = "info") -> ActivityEvent:
        event = ActivityEvent(ts=time.time(), title=title, detail=detail, actor=actor, level=level)
        self.events.append(event)
        self._append(event)
        return event

    def error(self, title: str, detail: Optional[str] = None, *, actor: Optional[str] = None) -> ActivityEvent:
        return self.add(title, detail, actor=actor, level="error")

    def snapshot(self) -> List[Dict[str, Any]]:
        return [asdict(e) for e in reversed(self.events)]

    def export_lines(self) -> str:
        """Return events as NDJSON, oldest first."""
        lines = [json.dumps(asdict(e)) for e in self.events]
        return "\n".join(lines) + ("\n" if lines else "")

    def _read_lines(self) -> Iterable[str]:
        if not self.path or not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r") as f:
                return f.readlines()
        except OSError as e:
            dlog("activity_log_read_error", str(e))
            return []

    def _replay(self, lines: Iterable[str]) -> None:
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                self.events.append(ActivityEvent.from_dict(json.loads(line)))
            except (ValueError, TypeError, AttributeError):
                dlog("activity_log_skip_line", line[:120])

    def _append(self, event: ActivityEvent) -> None:
        if not self.path:
            return
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a") as f:
                f.write(json.dumps(asdict(event)) + "\n")
        except OSError as e:
            dlog("activity_log_write_error", str(e))


@dataclass
class ConsoleRuntimeState:
    settings: ConsoleSettings
    auth: OperatorAuthConfig
    queries: QueryExecutor
    manager: DisplayManager
    filters: FilterStore
    channel: NotificationChannel
    coordinator: RefreshCoordinator
    metrics: MetricsTracker
    events: ActivityLog = field(default_factory=ActivityLog)
    start_time: float = field(default_factory=time.time)

    @property
    def local_hub(self) -> Optional[LocalBroadcastHub]:
        return self.channel if isinstance(self.channel, LocalBroadcastHub) else None
