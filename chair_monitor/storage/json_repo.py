from __future__ import annotations
import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Sequence

from ..domain.models import TelemetryEntry
from ..errors import CorruptHistoryError
from .files import move_aside

logger = logging.getLogger(__name__)


class JSONFileRepository:
    """History persisted as one JSON array, rewritten in full on every append."""

    name = "json"

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        # Writes run in worker threads; a write that outlived its timeout may
        # still be running when the next one starts.
        self._write_lock = threading.Lock()
        self._written_len = -1

    @property
    def path(self) -> Path:
        return self._path

    def describe(self) -> str:
        return str(self._path.resolve())

    async def load(self) -> list[TelemetryEntry]:
        if not self._path.exists():
            await self.persist([])
            return []
        try:
            return await asyncio.to_thread(self._read)
        except CorruptHistoryError as e:
            # keep the bytes; the next append starts a fresh array
            aside = await asyncio.to_thread(move_aside, self._path)
            raise CorruptHistoryError(f"{e} (kept as {aside})") from e

    def _read(self) -> list[TelemetryEntry]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptHistoryError(f"cannot read {self._path}: {e}") from e
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptHistoryError(f"{self._path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise CorruptHistoryError(f"{self._path} does not hold a JSON array")
        try:
            return [TelemetryEntry.from_dict(d) for d in data]
        except ValueError as e:
            raise CorruptHistoryError(f"{self._path} holds a malformed entry: {e}") from e

    async def persist(self, entries: Sequence[TelemetryEntry]) -> None:
        payload = [e.to_dict() for e in entries]
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: list[dict]) -> None:
        with self._write_lock:
            if len(payload) < self._written_len:
                logger.warning(
                    "Skipping stale history write (%d entries, %d already on disk)",
                    len(payload), self._written_len,
                )
                return
            directory = self._path.parent
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self._path.name + ".", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self._path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
            self._written_len = len(payload)
