from datetime import datetime, timezone

from chair_monitor.domain.models import TelemetryEntry
from chair_monitor.services.export import CSV_COLUMNS, csv_row, iter_csv

TS = datetime(2026, 10, 19, 12, 0, 0, 123000, tzinfo=timezone.utc)


def _entry(posture="Good", distance=10, sitting_time=5):
    return TelemetryEntry(posture=posture, distance=distance, sitting_time=sitting_time, timestamp=TS)


def test_header_then_one_row_per_entry():
    entries = [_entry(distance=i) for i in range(3)]

    lines = list(iter_csv(entries))

    assert lines[0] == "timestamp,posture,distance,sitting_time\n"
    assert len(lines) == len(entries) + 1
    assert [line.split(",")[2] for line in lines[1:]] == ["0", "1", "2"]


def test_empty_history_is_header_only():
    assert list(iter_csv([])) == [",".join(CSV_COLUMNS) + "\n"]


def test_row_layout():
    assert csv_row(_entry("Bad", 42, 16.5)) == "2026-10-19T12:00:00.123Z,Bad,42,16.5\n"


def test_delimiters_are_stripped_from_posture():
    row = csv_row(_entry("Bad, very\nbad\r"))

    assert row.count(",") == 3
    assert row.count("\n") == 1
    assert row.split(",")[1] == "Bad verybad"


def test_integral_floats_render_without_fraction():
    assert csv_row(_entry(distance=42.0, sitting_time=0.0)).endswith(",42,0\n")


def test_export_is_lazy():
    gen = iter_csv(_entry() for _ in range(2))
    assert next(gen).startswith("timestamp")
