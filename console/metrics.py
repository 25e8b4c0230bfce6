from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import dlog


def _now() -> float:
    return time.time()


@dataclass
class OperationMetrics:
    count: int = 0
    error_count: int = 0
    rows_total: int = 0
    last_rows: int = 0
    last_seen: float = field(default_factory=_now)
    last_error: Optional[str] = None
    durations_ms: list[float] = field(default_factory=list)
    durations_sum_ms: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "count": self.count,
            "error_count": self.error_count,
            "rows_total": self.rows_total,
            "last_rows": self.last_rows,
            "last_seen": self.last_seen,
            "last_error": self.last_error,
            "latency_ms": self._latency_snapshot(),
        }

    def _latency_snapshot(self) -> Dict:
        if not self.durations_ms:
            return {"avg": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0, "count": 0}
        sorted_vals = sorted(self.durations_ms)
        n = len(sorted_vals)

        def pct(p: float) -> float:
            if n == 1:
                return sorted_vals[0]
            idx = min(n - 1, int(round(p * (n - 1))))
            return sorted_vals[idx]

        avg = self.durations_sum_ms / n if n else 0.0
        return {"avg": avg, "p50": pct(0.50), "p95": pct(0.95), "p99": pct(0.99), "count": n}


METRICS_SCHEMA_VERSION = 1
MAX_LATENCY_SAMPLES = 200


class MetricsTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time = _now()
        self._operations: Dict[str, OperationMetrics] = {}
        self._persist_path: Optional[str] = None

    @property
    def start_time(self) -> float:
        return self._start_time

    def configure_persistence(self, path: str) -> None:
        """Enable persistence to a JSON file; loads existing counters if compatible."""
        self._persist_path = path
        self._load_from_file()

    def reset(self) -> None:
        with self._lock:
            self._operations = {}
            self._start_time = _now()
            self._persist_locked()

    def record(
        self,
        operation: str,
        *,
        rows: int = 0,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ) -> None:
        with self._lock:
            metrics = self._operations.setdefault(operation, OperationMetrics())
            metrics.count += 1
            if error is not None:
                metrics.error_count += 1
                metrics.last_error = error
            else:
                metrics.rows_total += int(rows)
                metrics.last_rows = int(rows)
            metrics.last_seen = _now()
            if duration_ms is not None:
                metrics.durations_ms.append(float(duration_ms))
                metrics.durations_sum_ms += float(duration_ms)
                if len(metrics.durations_ms) > MAX_LATENCY_SAMPLES:
                    removed = metrics.durations_ms.pop(0)
                    metrics.durations_sum_ms -= removed
            self._persist_locked()

    def snapshot(self) -> Dict:
        with self._lock:
            data = {name: m.to_dict() for name, m in self._operations.items()}
            start = self._start_time
        return {"start_time": start, "operations": deepcopy(data)}

    def summary(self) -> Dict:
        snap = self.snapshot()
        operations = snap["operations"]
        return {
            "start_time": snap["start_time"],
            "uptime_seconds": int(_now() - snap["start_time"]),
            "total_operations": sum(v.get("count", 0) for v in operations.values()),
            "total_errors": sum(v.get("error_count", 0) for v in operations.values()),
            "operations": operations,
        }

    # ---------- Persistence helpers ----------
    def _persist_locked(self) -> None:
        if not self._persist_path:
            return
        payload = {
            "version": METRICS_SCHEMA_VERSION,
            "start_time": self._start_time,
            "operations": {name: m.to_dict() for name, m in self._operations.items()},
        }
        try:
            os.makedirs(os.path.dirname(self._persist_path) or ".", exist_ok=True)
            with tempfile.NamedTemporaryFile("w", delete=False, dir=os.path.dirname(self._persist_path) or ".") as tmp:
                json.dump(payload, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())
                temp_name = tmp.name
            os.replace(temp_name, self._persist_path)
        except Exception as e:
            dlog("metrics_persist_error", str(e))

    def _load_from_file(self) -> None:
        if not self._persist_path or not os.path.exists(self._persist_path):
            return
        try:
            with open(self._persist_path, "r") as f:
                data = json.load(f)
        except Exception as e:
            dlog("metrics_load_error", f"Could not read metrics file: {e}")
            return

        if data.get("version") != METRICS_SCHEMA_VERSION:
            dlog("metrics_load_skipped", f"Incompatible metrics version: {data.get('version')}")
            return

        with self._lock:
            self._start_time = float(data.get("start_time") or _now())
            self._operations = {}
            for name, raw in (data.get("operations") or {}).items():
                om = OperationMetrics()
                om.count = int(raw.get("count") or 0)
                om.error_count = int(raw.get("error_count") or 0)
                om.rows_total = int(raw.get("rows_total") or 0)
                om.last_rows = int(raw.get("last_rows") or 0)
                om.last_seen = float(raw.get("last_seen") or _now())
                om.last_error = raw.get("last_error")
                self._operations[name] = om


metrics = MetricsTracker()
