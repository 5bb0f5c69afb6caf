from __future__ import annotations
import logging
import os
from pathlib import Path

from ..core.timeutil import now_utc

logger = logging.getLogger(__name__)


def move_aside(path: Path) -> Path:
    """Rename an unreadable artifact to ``<name>.corrupt-<UTC stamp>`` and return the new path.

    The bytes are kept so the next write starts a fresh artifact without
    destroying the old one.
    """
    stamp = now_utc().strftime("%Y%m%dT%H%M%SZ")
    target = path.with_name(f"{path.name}.corrupt-{stamp}")
    n = 1
    while target.exists():
        target = path.with_name(f"{path.name}.corrupt-{stamp}-{n}")
        n += 1
    os.replace(path, target)
    logger.warning("Moved unreadable history artifact %s to %s", path, target)
    return target
