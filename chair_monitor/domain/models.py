from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from ..core.timeutil import format_timestamp, parse_timestamp

Number = Union[int, float]


@dataclass(frozen=True)
class TelemetryEntry:
    posture: str
    distance: Number
    sitting_time: Number
    timestamp: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "posture": self.posture,
            "distance": self.distance,
            "sitting_time": self.sitting_time,
            "timestamp": format_timestamp(self.timestamp) if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TelemetryEntry:
        """Rebuild a persisted entry. Raises ValueError on a malformed record."""
        if not isinstance(d, dict):
            raise ValueError(f"entry must be an object, got {type(d).__name__}")
        try:
            posture = d["posture"]
            distance = d["distance"]
            sitting_time = d["sitting_time"]
            ts = d["timestamp"]
        except KeyError as e:
            raise ValueError(f"entry is missing field {e}") from None
        for name, val in (("distance", distance), ("sitting_time", sitting_time)):
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                raise ValueError(f"entry field {name} is not numeric: {val!r}")
        if ts is None:
            raise ValueError("entry has no timestamp")
        return cls(
            posture=str(posture),
            distance=distance,
            sitting_time=sitting_time,
            timestamp=parse_timestamp(str(ts)),
        )


# Served by the latest cache before anything has been ingested
EMPTY_ENTRY = TelemetryEntry(posture="Unknown", distance=0, sitting_time=0, timestamp=None)


@dataclass
class AlertState:
    pending: bool = False
    raised_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
