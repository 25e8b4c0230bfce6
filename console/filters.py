from __future__ import annotations

import json
import os
import tempfile
import threading
import time
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .config import dlog
from .models import FilterContext, parse_date_filter


FILTERS_SCHEMA_VERSION = 1

FIELDS = ("date", "user", "video_user", "export_user")


def _default_selection() -> Dict[str, str]:
    return {name: "" for name in FIELDS}


@dataclass
class FilterStore:
    """The dashboard's current dropdown/date selections.

    Refreshes read from here at execution time, so a refresh always reflects
    the latest selection rather than the one current when it was scheduled.
    """

    path: Optional[str] = None
    data: Dict[str, str] = field(default_factory=_default_selection)
    updated_at: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def load(self) -> None:
        """Load selections from file if present and schema-compatible."""
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
        except Exception as e:
            dlog("filters_load_error", f"Could not read filters: {e}")
            return

        if raw.get("version") != FILTERS_SCHEMA_VERSION:
            dlog("filters_load_skip", f"Incompatible filters version: {raw.get('version')}")
            return
        data = raw.get("data")
        if not isinstance(data, dict):
            dlog("filters_load_skip", "Filters data not a dict")
            return

        with self._lock:
            self.data = _default_selection()
            for name in FIELDS:
                value = data.get(name)
                self.data[name] = str(value).strip() if value else ""
            try:
                parse_date_filter(self.data["date"])
            except ValueError:
                dlog("filters_load_skip", f"Dropping invalid date: {self.data['date']}")
                self.data["date"] = ""
            self.updated_at = time.time()

    def save(self) -> None:
        if not self.path:
            return
        with self._lock:
            payload = {"version": FILTERS_SCHEMA_VERSION, "data": dict(self.data)}
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with tempfile.NamedTemporaryFile("w", delete=False, dir=os.path.dirname(self.path) or ".") as tmp:
                json.dump(payload, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())
                temp_name = tmp.name
            os.replace(temp_name, self.path)
        except Exception as e:
            dlog("filters_save_error", str(e))

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"data": deepcopy(self.data), "updated_at": self.updated_at}

    def update(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Update the given selections only; '' clears one. Raises ValueError on a bad date."""
        if "date" in payload:
            parse_date_filter(payload.get("date"))
        with self._lock:
            for name in FIELDS:
                if name in payload:
                    value = payload.get(name)
                    self.data[name] = str(value).strip() if value else ""
            self.updated_at = time.time()
        self.save()
        return self.snapshot()

    def clear_history_filters(self) -> Dict[str, Any]:
        return self.update({"date": "", "user": ""})

    def context(self) -> FilterContext:
        with self._lock:
            data = dict(self.data)
        return FilterContext.from_fields(data.get("date"), data.get("user"), data.get("video_user"))
