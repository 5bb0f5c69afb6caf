from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from chair_monitor.core.config import Settings
from chair_monitor.main import create_app


@pytest.fixture
def cfg(tmp_path) -> Settings:
    return Settings(
        data_file=str(tmp_path / "data.json"),
        sqlite_path=str(tmp_path / "history.db"),
        log_file="",
    )


@pytest.fixture
def client(cfg) -> Iterator[TestClient]:
    with TestClient(create_app(cfg)) as c:
        yield c


class StepClock:
    """Deterministic clock: each call returns the next scripted instant."""

    def __init__(self, *offsets_s: float) -> None:
        base = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
        self._times = [base + timedelta(seconds=s) for s in offsets_s]

    def __call__(self) -> datetime:
        return self._times.pop(0)
