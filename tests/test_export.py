import datetime as dt

import pytest

from console.errors import NotFoundError, ValidationError
from console.export import build_export, csv_from_rows, export_filename
from console.models import HistoryRow


ROWS = [
    HistoryRow(
        user_name="kiosk-1",
        login_time="2026-10-17T04:30:00Z",
        logout_time="2026-10-17T05:00:00Z",
        device_model="Tab A8",
        user_agent='Mozilla/5.0 (Linux; "Android")',
    ),
    HistoryRow(user_name="kiosk-2", login_time="2026-10-17T03:00:00Z", last_ping="2026-10-17T03:10:00Z"),
    HistoryRow(user_name="kiosk-3", login_time="2026-10-17T02:00:00Z"),
]


class FakeQueries:
    def __init__(self, rows):
        self.rows = rows
        self.calls = []

    def fetch_history_range(self, start=None, end=None, user=None):
        self.calls.append((start, end, user))
        return self.rows


def test_csv_layout():
    content = csv_from_rows(ROWS)
    lines = content.split("\n")
    assert lines[0] == "Username,Login (IST),Logout (IST),Device,User-Agent"
    assert lines[1] == (
        '"kiosk-1","17/10/2026 10:00:00","17/10/2026 10:30:00","Tab A8","Mozilla/5.0 (Linux; ""Android"")"'
    )
    assert lines[2] == '"kiosk-2","17/10/2026 08:30:00","17/10/2026 08:40:00 (detected offline)","",""'
    assert lines[3] == '"kiosk-3","17/10/2026 07:30:00","","",""'
    assert lines[4] == ""


def test_export_filenames():
    assert export_filename("all", None) == "history-all.csv"
    assert export_filename("all", "kiosk-1") == "history-kiosk-1-all.csv"
    assert export_filename("date", None, date="2026-10-17") == "history-2026-10-17.csv"
    assert export_filename("range", "kiosk-1", start="2026-10-01", end="2026-10-17") == (
        "history-kiosk-1-2026-10-01-to-2026-10-17.csv"
    )


def test_export_all_for_user():
    queries = FakeQueries(ROWS)
    result = build_export(queries, "all", user=" kiosk-1 ")
    assert queries.calls == [(None, None, "kiosk-1")]
    assert result.filename == "history-kiosk-1-all.csv"
    assert result.count == 3


def test_export_single_date():
    queries = FakeQueries(ROWS[:1])
    result = build_export(queries, "date", date="2026-10-17")
    assert queries.calls == [(dt.date(2026, 10, 17), dt.date(2026, 10, 17), None)]
    assert result.filename == "history-2026-10-17.csv"
    assert result.content.startswith("Username,")


def test_export_range():
    queries = FakeQueries(ROWS)
    result = build_export(queries, "range", start="2026-10-01", end="2026-10-17", user="kiosk-2")
    assert queries.calls == [(dt.date(2026, 10, 1), dt.date(2026, 10, 17), "kiosk-2")]
    assert result.filename == "history-kiosk-2-2026-10-01-to-2026-10-17.csv"


@pytest.mark.parametrize(
    "mode,kwargs,message",
    [
        ("date", {}, "Please select a date"),
        ("range", {"start": "2026-10-01"}, "Please select both start and end dates"),
        ("range", {"start": "2026-10-17", "end": "2026-10-01"}, "Start date must be before or equal to end date"),
        ("weekly", {}, "Unknown export mode 'weekly'"),
    ],
)
def test_export_validation(mode, kwargs, message):
    queries = FakeQueries(ROWS)
    with pytest.raises(ValidationError) as exc:
        build_export(queries, mode, **kwargs)
    assert str(exc.value) == message
    assert queries.calls == []


def test_export_bad_date_is_a_validation_error():
    with pytest.raises(ValidationError):
        build_export(FakeQueries(ROWS), "date", date="17-10-2026")


@pytest.mark.parametrize(
    "mode,kwargs,message",
    [
        ("all", {}, "No records found"),
        ("all", {"user": "kiosk-9"}, "No records found for selected user"),
        ("date", {"date": "2026-10-17"}, "No records found for selected date"),
        ("date", {"date": "2026-10-17", "user": "kiosk-9"}, "No records found for selected date and user"),
        ("range", {"start": "2026-10-01", "end": "2026-10-02"}, "No records found for selected date range"),
    ],
)
def test_export_empty_results(mode, kwargs, message):
    with pytest.raises(NotFoundError) as exc:
        build_export(FakeQueries([]), mode, **kwargs)
    assert str(exc.value) == message
