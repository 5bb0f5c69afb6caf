from __future__ import annotations

from ..core.config import Settings
from ..domain.interfaces import HistoryBackend
from .json_repo import JSONFileRepository
from .sqlite_repo import SQLiteRepository


def build_backend(cfg: Settings) -> HistoryBackend:
    mode = cfg.storage_backend.lower()
    if mode == "sqlite":
        return SQLiteRepository(cfg.sqlite_path)
    if mode == "json":
        return JSONFileRepository(cfg.data_file)
    raise ValueError(f"Unknown storage_backend: {cfg.storage_backend!r} (expected 'json' or 'sqlite')")
