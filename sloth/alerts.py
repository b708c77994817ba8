"""Multiwindow multi-burn-rate alert definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import timedelta


class AlertSeverity(str, enum.Enum):
    """Severity of an SLO alert."""

    PAGE = "page"
    TICKET = "ticket"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MWMBAlert:
    """One multiwindow multi-burn-rate alert."""

    short_window: timedelta
    long_window: timedelta
    id: str = ""
    burn_rate_factor: float = 0.0
    error_budget: float = 0.0
    severity: AlertSeverity = AlertSeverity.PAGE


@dataclass(frozen=True)
class MWMBAlertGroup:
    """The four alerts (page and ticket, quick and slow) of an SLO."""

    page_quick: MWMBAlert
    page_slow: MWMBAlert
    ticket_quick: MWMBAlert
    ticket_slow: MWMBAlert

    def windows(self) -> list[timedelta]:
        """All distinct windows used by the alerts, sorted ascending."""
        found = {
            window
            for alert in (self.page_quick, self.page_slow, self.ticket_quick, self.ticket_slow)
            for window in (alert.short_window, alert.long_window)
        }
        return sorted(found)