from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..core.config import Settings
from ..domain.alert import AlertSignal
from ..domain.models import TelemetryEntry
from ..services.export import iter_csv
from ..services.history import HistoryStore
from .schemas import (
    AlertAcknowledged,
    AlertRaised,
    AlertStatus,
    EntryOut,
    ErrorResponse,
    StatusResponse,
    UpdateResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_INGEST_ERRORS = {
    400: {"model": ErrorResponse, "description": "Body is not valid JSON"},
    413: {"model": ErrorResponse, "description": "Body exceeds max_body_bytes"},
    503: {"model": ErrorResponse, "description": "History write timed out"},
}


# --- Dependency getters ---
# Placeholders; create_app() binds them to one app's instances via app.dependency_overrides.
def get_store() -> HistoryStore:  # overridden in main
    raise RuntimeError("History store dependency not configured")

def get_alert() -> AlertSignal:  # overridden in main
    raise RuntimeError("Alert signal dependency not configured")

def get_settings() -> Settings:  # overridden in main
    raise RuntimeError("Settings dependency not configured")


def _entry_out(e: TelemetryEntry) -> EntryOut:
    return EntryOut(**e.to_dict())


async def _read_json_body(request: Request, max_bytes: int) -> object:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Request body exceeds {max_bytes} bytes")

    body = b""
    async for chunk in request.stream():
        body += chunk
        if len(body) > max_bytes:
            raise HTTPException(status_code=413, detail=f"Request body exceeds {max_bytes} bytes")

    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError, bad UTF-8 and over-long integer literals
        raise HTTPException(status_code=400, detail=f"Invalid JSON body: {e}")


@router.post("/update", response_model=UpdateResponse, responses=_INGEST_ERRORS)
async def update(
    request: Request,
    store: HistoryStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    payload = await _read_json_body(request, cfg.max_body_bytes)
    entry = await store.ingest(payload)
    out = _entry_out(entry)
    logger.info("update: %s", out.model_dump())
    return UpdateResponse(received=out)


@router.get("/data", response_model=EntryOut)
async def latest(store: HistoryStore = Depends(get_store)):
    return _entry_out(store.latest())


@router.get("/history", response_model=list[EntryOut])
async def history(store: HistoryStore = Depends(get_store)):
    return [_entry_out(e) for e in store.snapshot()]


@router.get("/download.csv")
async def download_csv(
    store: HistoryStore = Depends(get_store),
    cfg: Settings = Depends(get_settings),
):
    return StreamingResponse(
        iter_csv(store.snapshot()),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{cfg.csv_filename}"'},
    )


@router.post("/alert", response_model=AlertRaised)
async def raise_alert(alert: AlertSignal = Depends(get_alert)):
    # body is ignored; any payload (or none) raises the alert
    alert.raise_alert()
    return AlertRaised()


@router.get("/alert", response_model=AlertStatus)
async def check_alert(
    alert: AlertSignal = Depends(get_alert),
    cfg: Settings = Depends(get_settings),
):
    show = alert.check()
    if show and cfg.alert_ack_on_read:
        alert.acknowledge()
    return AlertStatus(show=show)


@router.post(
    "/alert/ack",
    response_model=AlertAcknowledged,
    summary="Acknowledge the alert",
    description="Clear a pending alert. Safe to repeat; `was_pending` tells whether one was set.",
)
async def acknowledge_alert(alert: AlertSignal = Depends(get_alert)):
    return AlertAcknowledged(was_pending=alert.acknowledge())


@router.delete(
    "/alert",
    response_model=AlertAcknowledged,
    summary="Clear the alert",
    description="REST form of `POST /alert/ack` for clients that model the alert as a resource.",
)
async def clear_alert(alert: AlertSignal = Depends(get_alert)):
    return AlertAcknowledged(was_pending=alert.acknowledge())


@router.get("/status", response_model=StatusResponse)
async def status(
    store: HistoryStore = Depends(get_store),
    alert: AlertSignal = Depends(get_alert),
    cfg: Settings = Depends(get_settings),
):
    latest_entry = store.latest()
    return StatusResponse(
        app=cfg.app_name,
        backend=store.backend.name,
        entries=len(store),
        latest_timestamp=_entry_out(latest_entry).timestamp,
        alert_pending=alert.check(),
        persist_failures=store.stats.failures,
        last_persist_error=store.stats.last_error,
        coercions=store.stats.coercions,
    )
