from __future__ import annotations
import logging
from datetime import datetime
from typing import Optional

from .models import AlertState
from ..core.timeutil import now_utc

logger = logging.getLogger(__name__)


class AlertSignal:
    """Idle/Pending flag for the sitting-duration alert.

    Raised by a dedicated call, never derived from telemetry. ``check`` is a
    pure read; only ``acknowledge`` moves the flag back to Idle.
    """

    def __init__(self) -> None:
        self.state = AlertState()

    def raise_alert(self, at: Optional[datetime] = None) -> None:
        if not self.state.pending:
            logger.info("Alert raised")
        self.state.pending = True
        self.state.raised_at = at or now_utc()

    def check(self) -> bool:
        return self.state.pending

    def acknowledge(self, at: Optional[datetime] = None) -> bool:
        """Clear the alert. Returns whether one was pending."""
        was_pending = self.state.pending
        self.state.pending = False
        if was_pending:
            self.state.acknowledged_at = at or now_utc()
            logger.info("Alert acknowledged")
        return was_pending
