"""Normalization of raw device payloads into telemetry entries.

Malformed fields never reject a reading. Each one degrades to a default and is
reported back as a coercion note so the caller can log it.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from .models import Number, TelemetryEntry

logger = logging.getLogger(__name__)

UNKNOWN_POSTURE = "Unknown"


@dataclass(frozen=True)
class Coercion:
    field: str
    raw: Any
    applied: Any

    def __str__(self) -> str:
        return f"{self.field}: {self.raw!r} -> {self.applied!r}"


@dataclass
class ValidationResult:
    entry: TelemetryEntry
    coercions: list[Coercion] = field(default_factory=list)


def _finite(v: Number) -> Optional[Number]:
    try:
        return v if math.isfinite(float(v)) else None
    except OverflowError:
        # int beyond float range, Number() would give Infinity
        return None


def _coerce_number(raw: Any) -> Optional[Number]:
    """Number() style conversion. Returns None when the value has no finite reading."""
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, (int, float)):
        return _finite(raw)
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return 0
        if "_" in s:
            return None
        try:
            return _finite(int(s))
        except ValueError:
            pass
        try:
            return _finite(float(s))
        except ValueError:
            return None
    return None


def _coerce_posture(raw: Any) -> Optional[str]:
    """Textual posture label. Returns None when only the default fits."""
    if isinstance(raw, str):
        return raw or None
    if raw is None or raw is False:
        return None
    if raw is True:
        return "true"
    if isinstance(raw, (int, float)):
        if raw == 0 or (isinstance(raw, float) and math.isnan(raw)):
            return None
        if isinstance(raw, float) and raw.is_integer():
            return str(int(raw))
        return str(raw)
    try:
        return json.dumps(raw, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(raw)


def _note(info: ValidationInfo, raw: Any, applied: Any) -> None:
    if info.context is not None:
        info.context["coercions"].append(Coercion(info.field_name, raw, applied))


class ReadingIn(BaseModel):
    """Lenient schema for a device reading.

    Before-validators map every malformed value to its default instead of
    raising, so validation of a mapping always succeeds.
    """

    model_config = ConfigDict(extra="ignore")

    posture: str = UNKNOWN_POSTURE
    distance: Union[int, float] = 0
    sitting_time: Union[int, float] = 0

    @field_validator("posture", mode="before")
    @classmethod
    def validate_posture(cls, v: Any, info: ValidationInfo) -> str:
        text = _coerce_posture(v)
        if text is None:
            if v is not None:
                _note(info, v, UNKNOWN_POSTURE)
            return UNKNOWN_POSTURE
        if not isinstance(v, str):
            _note(info, v, text)
        return text

    @field_validator("distance", "sitting_time", mode="before")
    @classmethod
    def validate_number(cls, v: Any, info: ValidationInfo) -> Number:
        val = _coerce_number(v)
        if val is None:
            _note(info, v, 0)
            return 0
        return val


def validate_reading(payload: Any, now: datetime) -> ValidationResult:
    """Build a ``TelemetryEntry`` stamped with ``now``.

    ``payload`` is whatever the request body decoded to. Anything that is not
    a mapping is treated as an empty payload. A client ``timestamp`` is ignored.
    """
    coercions: list[Coercion] = []

    if not isinstance(payload, dict):
        coercions.append(Coercion("body", payload, {}))
        payload = {}

    if "timestamp" in payload:
        logger.debug("Ignoring client timestamp %r", payload["timestamp"])

    reading = ReadingIn.model_validate(payload, context={"coercions": coercions})

    entry = TelemetryEntry(
        posture=reading.posture,
        distance=reading.distance,
        sitting_time=reading.sitting_time,
        timestamp=now,
    )
    return ValidationResult(entry=entry, coercions=coercions)
