from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from ..core.timeutil import now_utc
from ..domain.interfaces import HistoryBackend
from ..domain.models import EMPTY_ENTRY, TelemetryEntry
from ..domain.validator import validate_reading
from ..errors import CorruptHistoryError, PersistenceTimeout

logger = logging.getLogger(__name__)


@dataclass
class PersistStats:
    failures: int = 0
    last_error: Optional[str] = None
    coercions: int = 0


class HistoryStore:
    """Append-only telemetry history with a latest-entry cache.

    The in-memory sequence is the source of truth while the process runs.
    Every append is written through to the backend before it returns; a
    failed write is logged and counted, but the entry stays in memory.
    """

    def __init__(
        self,
        backend: HistoryBackend,
        write_timeout_s: float = 5.0,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._backend = backend
        self._write_timeout_s = write_timeout_s
        self._clock = clock

        self._entries: list[TelemetryEntry] = []
        self._latest: TelemetryEntry = EMPTY_ENTRY
        self._lock = asyncio.Lock()
        self.stats = PersistStats()

    @property
    def backend(self) -> HistoryBackend:
        return self._backend

    def __len__(self) -> int:
        return len(self._entries)

    async def load(self) -> None:
        try:
            entries = await self._backend.load()
        except CorruptHistoryError as e:
            logger.warning("History artifact unreadable, starting empty: %s", e)
            entries = []
        except Exception as e:
            logger.exception("History load failed, starting empty: %s", e)
            entries = []

        async with self._lock:
            self._entries = list(entries)
            self._latest = self._entries[-1] if self._entries else EMPTY_ENTRY
        logger.info(
            "History loaded: %d entries (backend=%s at %s)",
            len(entries), self._backend.name, self._backend.describe(),
        )

    def latest(self) -> TelemetryEntry:
        return self._latest

    def snapshot(self) -> tuple[TelemetryEntry, ...]:
        return tuple(self._entries)

    def read_all(self) -> list[TelemetryEntry]:
        return list(self._entries)

    def _next_timestamp(self) -> datetime:
        ts = self._clock()
        # persisted form has millisecond precision
        ts = ts.replace(microsecond=ts.microsecond // 1000 * 1000)
        if self._entries:
            prev = self._entries[-1].timestamp
            if prev is not None and ts < prev:
                # wall clock stepped back; keep history ordered
                ts = prev
        return ts

    async def ingest(self, payload: Any) -> TelemetryEntry:
        """Validate a raw payload and append it. Returns the stored entry."""
        async with self._lock:
            result = validate_reading(payload, now=self._next_timestamp())
            for c in result.coercions:
                logger.warning("Coerced malformed field %s", c)
            self.stats.coercions += len(result.coercions)
            await self._append_locked(result.entry)
            return result.entry

    async def append(self, entry: TelemetryEntry) -> None:
        async with self._lock:
            await self._append_locked(entry)

    async def _append_locked(self, entry: TelemetryEntry) -> None:
        self._entries.append(entry)
        self._latest = entry

        try:
            await asyncio.wait_for(
                self._backend.persist(self._entries), timeout=self._write_timeout_s
            )
        except asyncio.TimeoutError:
            self._record_failure(f"write timed out after {self._write_timeout_s}s")
            logger.error(
                "History write timed out after %.1fs; in-memory history (%d) ahead of disk",
                self._write_timeout_s, len(self._entries),
            )
            raise PersistenceTimeout("history write timed out") from None
        except Exception as e:
            self._record_failure(str(e))
            logger.exception(
                "History write failed; in-memory history (%d) ahead of disk: %s",
                len(self._entries), e,
            )

    def _record_failure(self, msg: str) -> None:
        self.stats.failures += 1
        self.stats.last_error = msg
