from __future__ import annotations
from typing import Iterable, Iterator, Optional, Union

from ..core.timeutil import format_timestamp
from ..domain.models import TelemetryEntry

CSV_COLUMNS = ("timestamp", "posture", "distance", "sitting_time")

_STRIP = str.maketrans("", "", ",\r\n")


def _num(v: Optional[Union[int, float]]) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def csv_row(e: TelemetryEntry) -> str:
    return ",".join((
        format_timestamp(e.timestamp) if e.timestamp else "",
        e.posture.translate(_STRIP),
        _num(e.distance),
        _num(e.sitting_time),
    )) + "\n"


def iter_csv(entries: Iterable[TelemetryEntry]) -> Iterator[str]:
    """Header line, then one line per entry. Pass a snapshot, not the live list."""
    yield ",".join(CSV_COLUMNS) + "\n"
    for e in entries:
        yield csv_row(e)
