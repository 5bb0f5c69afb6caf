from __future__ import annotations
from typing import Protocol, Sequence, runtime_checkable
from .models import TelemetryEntry


@runtime_checkable
class HistoryBackend(Protocol):
    """Durable side of the history store.

    ``load`` returns the persisted sequence, or raises ``CorruptHistoryError``
    when the artifact exists but cannot be read. It never rewrites a corrupt
    artifact. ``persist`` is called with the full in-memory sequence after
    every append; backends may write only the tail.
    """

    name: str

    async def load(self) -> list[TelemetryEntry]:
        ...

    async def persist(self, entries: Sequence[TelemetryEntry]) -> None:
        ...

    def describe(self) -> str:
        ...
