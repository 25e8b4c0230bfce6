import datetime as dt
import json

import pytest

from console.filters import FilterStore
from console.models import FilterContext, HistoryRow, VideoRow
from console.timefmt import parse_timestamp, seconds_since, to_ist, to_local_date, today_ist
from console.views import ConsoleView, ViewSlice, logout_display


NOW = dt.datetime(2026, 10, 17, 6, 0, 0, tzinfo=dt.timezone.utc)


def test_to_ist_formats_in_india_time():
    assert to_ist("2026-10-17T04:30:00Z") == "17/10/2026 10:00:00"
    assert to_ist("2026-10-17T04:30:00") == "17/10/2026 10:00:00"
    assert to_ist("2026-10-17T04:30:00+00:00", "UTC") == "17/10/2026 04:30:00"
    assert to_ist(None) == ""
    assert to_ist("yesterday") == "yesterday"
    assert to_local_date("2026-10-16T20:00:00Z") == "17/10/2026"


def test_today_rolls_over_at_ist_midnight():
    assert today_ist(dt.datetime(2026, 10, 16, 18, 29, tzinfo=dt.timezone.utc)) == "2026-10-16"
    assert today_ist(dt.datetime(2026, 10, 16, 18, 31, tzinfo=dt.timezone.utc)) == "2026-10-17"


def test_seconds_since():
    assert seconds_since("2026-10-17T05:59:00Z", NOW) == 60
    assert seconds_since("", NOW) is None
    assert parse_timestamp("garbage") is None


def test_logout_display_states():
    closed = HistoryRow(user_name="k1", logout_time="2026-10-17T05:00:00Z", last_ping="2026-10-17T04:59:00Z")
    assert logout_display(closed, now=NOW) == "17/10/2026 10:30:00"

    stale = HistoryRow(user_name="k1", last_ping="2026-10-17T05:58:00Z")
    assert logout_display(stale, now=NOW) == "17/10/2026 11:28:00 (detected offline)"

    fresh = HistoryRow(user_name="k1", last_ping="2026-10-17T05:59:30Z")
    assert logout_display(fresh, now=NOW) == "Active"

    never_pinged = HistoryRow(user_name="k1", login_time="2026-10-17T05:00:00Z")
    assert logout_display(never_pinged, now=NOW) == "Active"


def test_offline_threshold_is_configurable():
    row = HistoryRow(user_name="k1", last_ping="2026-10-17T05:59:00Z")
    assert logout_display(row, now=NOW, offline_after_seconds=70) == "Active"
    assert logout_display(row, now=NOW, offline_after_seconds=30).endswith("(detected offline)")


def test_slice_placeholders():
    s = ViewSlice(name="history", empty_text="No records found", error_text="Error", loading_text="Loading")
    assert s.placeholder() == "Loading"

    s.begin(1)
    s.apply_error(1, "boom")
    assert s.status == "error"
    assert s.placeholder() == "Error"

    s.begin(2)
    s.apply_rows(2, [])
    assert s.status == "ok"
    assert s.placeholder() == "No records found"

    # once content has been shown, a later failure does not swap in the error text
    s.begin(3)
    s.apply_error(3, "boom again")
    assert s.placeholder() == "No records found"


def test_slice_discards_older_cycles():
    s = ViewSlice(name="videos", empty_text="", error_text="", loading_text="")
    s.begin(1)
    s.begin(2)
    assert s.apply_rows(2, ["new"]) is True
    assert s.apply_rows(1, ["old"]) is False
    assert s.apply_error(1, "late failure") is False
    assert s.rows == ["new"]
    assert s.status == "ok"
    assert s.begin(2) is False


def test_slice_stays_loading_while_newer_cycle_runs():
    s = ViewSlice(name="history", empty_text="", error_text="", loading_text="")
    s.begin(1)
    s.begin(2)
    s.apply_rows(1, ["first"])
    assert s.status == "loading"
    s.apply_rows(2, ["second"])
    assert s.status == "ok"


def test_console_view_snapshot_renders_rows():
    view = ConsoleView(offline_after_seconds=70)
    view.begin("history", 1)
    view.apply_rows(
        "history",
        1,
        [
            HistoryRow(
                user_name="kiosk-1",
                login_time="2026-10-17T04:30:00Z",
                last_ping="2026-10-17T05:00:00Z",
                device_model="Tab A8",
                user_agent="Mozilla/5.0",
            )
        ],
    )
    view.apply_rows(
        "videos",
        1,
        [VideoRow(id=7, filename="ad.mp4", storage_path="kiosk-1/1-ad.mp4", display_user="kiosk-1", uploaded_at="2026-10-16T20:00:00Z")],
    )

    snap = view.snapshot(NOW)
    assert snap["version"] == 3
    assert snap["history"]["rows"] == [
        {
            "user": "kiosk-1",
            "login": "17/10/2026 10:00:00",
            "logout": "17/10/2026 10:30:00 (detected offline)",
            "device": "Tab A8",
            "user_agent": "Mozilla/5.0",
        }
    ]
    assert snap["history"]["placeholder"] is None
    assert snap["videos"]["rows"][0]["uploaded"] == "17/10/2026"
    assert snap["videos"]["rows"][0]["storage_path"] == "kiosk-1/1-ad.mp4"

    with pytest.raises(KeyError):
        view.slice("users")


def test_filter_store_persists_and_builds_context(tmp_path):
    path = tmp_path / "filters.json"
    store = FilterStore(path=str(path))
    store.update({"date": "2026-10-17", "user": " kiosk-1 ", "video_user": "kiosk-2"})

    saved = json.loads(path.read_text())
    assert saved["version"] == 1
    assert saved["data"]["user"] == "kiosk-1"

    reloaded = FilterStore(path=str(path))
    reloaded.load()
    assert reloaded.context() == FilterContext(
        date_filter=dt.date(2026, 10, 17), user_filter="kiosk-1", video_user="kiosk-2"
    )

    reloaded.clear_history_filters()
    ctx = reloaded.context()
    assert ctx.date_filter is None
    assert ctx.user_filter is None
    assert ctx.video_user == "kiosk-2"


def test_filter_store_rejects_bad_dates(tmp_path):
    store = FilterStore()
    with pytest.raises(ValueError):
        store.update({"date": "17/10/2026"})
    assert store.snapshot()["data"]["date"] == ""

    path = tmp_path / "filters.json"
    path.write_text(json.dumps({"version": 1, "data": {"date": "nope", "user": "k1"}}))
    loaded = FilterStore(path=str(path))
    loaded.load()
    assert loaded.snapshot()["data"] == {"date": "", "user": "k1", "video_user": "", "export_user": ""}

    path.write_text(json.dumps({"version": 99, "data": {"user": "k1"}}))
    skipped = FilterStore(path=str(path))
    skipped.load()
    assert skipped.snapshot()["data"]["user"] == ""
