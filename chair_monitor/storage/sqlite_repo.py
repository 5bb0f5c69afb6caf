from __future__ import annotations
import logging
import sqlite3
from pathlib import Path
from typing import Sequence

import aiosqlite

from ..domain.models import TelemetryEntry
from ..core.timeutil import format_timestamp
from ..errors import CorruptHistoryError
from .files import move_aside

logger = logging.getLogger(__name__)


def _row(seq: int, e: TelemetryEntry) -> tuple:
    return (
        seq,
        format_timestamp(e.timestamp) if e.timestamp else "",
        e.posture,
        float(e.distance),
        float(e.sitting_time),
        1 if isinstance(e.distance, int) else 0,
        1 if isinstance(e.sitting_time, int) else 0,
    )


class SQLiteRepository:
    """History persisted one row per entry, ordered by its position ``seq``."""

    name = "sqlite"

    def __init__(self, path: str) -> None:
        self._path = path

    def describe(self) -> str:
        return str(Path(self._path).resolve())

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS history (
                    seq INTEGER PRIMARY KEY,
                    ts_utc TEXT NOT NULL,
                    posture TEXT NOT NULL,
                    distance REAL NOT NULL,
                    sitting_time REAL NOT NULL,
                    distance_is_int INTEGER NOT NULL DEFAULT 0,
                    sitting_time_is_int INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            await db.commit()

    async def load(self) -> list[TelemetryEntry]:
        try:
            return await self._load()
        except CorruptHistoryError as e:
            aside = move_aside(Path(self._path))
            await self.init()
            raise CorruptHistoryError(f"{e} (kept as {aside})") from e

    async def _load(self) -> list[TelemetryEntry]:
        try:
            await self.init()
            async with aiosqlite.connect(self._path) as db:
                cur = await db.execute(
                    """
                    SELECT ts_utc,posture,distance,sitting_time,distance_is_int,sitting_time_is_int
                    FROM history
                    ORDER BY seq ASC
                    """
                )
                rows = await cur.fetchall()
        except sqlite3.DatabaseError as e:
            raise CorruptHistoryError(f"cannot read {self._path}: {e}") from e

        out: list[TelemetryEntry] = []
        try:
            for ts, posture, dist, sit, dist_int, sit_int in rows:
                out.append(
                    TelemetryEntry.from_dict({
                        "timestamp": ts,
                        "posture": posture,
                        "distance": int(dist) if dist_int else float(dist),
                        "sitting_time": int(sit) if sit_int else float(sit),
                    })
                )
        except ValueError as e:
            raise CorruptHistoryError(f"{self._path} holds a malformed row: {e}") from e
        return out

    async def persist(self, entries: Sequence[TelemetryEntry]) -> None:
        """Insert every entry past the last stored ``seq``.

        Rows missed by an earlier failed write are filled in on the next call.
        An entry that cannot be stored is skipped; the others are still written
        and the skip is reported by raising after the commit.
        """
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT COALESCE(MAX(seq), -1) FROM history")
            (last_seq,) = await cur.fetchone()

            rows: list[tuple] = []
            skipped: list[str] = []
            for seq, e in enumerate(entries):
                if seq <= last_seq:
                    continue
                try:
                    rows.append(_row(seq, e))
                except (OverflowError, ValueError, TypeError) as err:
                    logger.error("History entry seq=%d cannot be stored: %s", seq, err)
                    skipped.append(f"seq={seq}: {err}")
            if rows:
                await db.executemany(
                    "INSERT OR IGNORE INTO history(seq,ts_utc,posture,distance,sitting_time,distance_is_int,sitting_time_is_int) "
                    "VALUES (?,?,?,?,?,?,?)",
                    rows,
                )
                await db.commit()

        if skipped:
            raise ValueError(f"skipped {len(skipped)} unstorable entries ({'; '.join(skipped)})")
