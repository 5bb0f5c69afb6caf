from __future__ import annotations
from pydantic import BaseModel
from typing import Optional, Union


class EntryOut(BaseModel):
    posture: str
    distance: Union[int, float]
    sitting_time: Union[int, float]
    timestamp: Optional[str]  # ISO 8601, "Z" suffix


class UpdateResponse(BaseModel):
    status: str = "ok"
    received: EntryOut


class AlertRaised(BaseModel):
    status: str = "ok"
    received: bool = True


class AlertStatus(BaseModel):
    show: bool


class AlertAcknowledged(BaseModel):
    status: str = "ok"
    show: bool = False
    was_pending: bool


class ErrorResponse(BaseModel):
    status: str = "error"
    error: str


class StatusResponse(BaseModel):
    app: str
    backend: str
    entries: int
    latest_timestamp: Optional[str]
    alert_pending: bool
    persist_failures: int
    last_persist_error: Optional[str]
    coercions: int
