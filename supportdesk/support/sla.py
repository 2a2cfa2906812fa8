"""SLA deadline and status derivation.

The snapshot is never persisted. Every read path (single ticket, lists, the
public code lookup and the dashboard buckets) calls :func:`compute_sla` so the
classification cannot drift between call sites.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

CRITICAL_THRESHOLD_PERCENT = 10.0
WARNING_THRESHOLD_PERCENT = 25.0


class SLAStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    BREACHED = "breached"


@dataclass(frozen=True, slots=True)
class SLASnapshot:
    deadline: datetime
    status: SLAStatus
    remaining_minutes: int
    percentage_remaining: float

    @property
    def is_breached(self) -> bool:
        return self.status is SLAStatus.BREACHED


def classify(remaining_minutes: int, percentage_remaining: float) -> SLAStatus:
    """Map remaining time to a status; the first matching rule wins."""

    if remaining_minutes < 0:
        return SLAStatus.BREACHED
    if percentage_remaining < CRITICAL_THRESHOLD_PERCENT:
        return SLAStatus.CRITICAL
    if percentage_remaining < WARNING_THRESHOLD_PERCENT:
        return SLAStatus.WARNING
    return SLAStatus.OK


def compute_sla(
    opened_at: datetime | None,
    sla_hours: float | None,
    completed_at: datetime | None,
    now: datetime,
) -> SLASnapshot | None:
    """Return the SLA snapshot for a ticket, or ``None`` when it is SLA-exempt.

    Finished tickets are measured against ``completed_at`` so they keep showing
    whether the budget was met at closure time.
    """

    if opened_at is None or sla_hours is None or sla_hours <= 0:
        return None

    deadline = opened_at + timedelta(hours=sla_hours)
    reference = completed_at if completed_at is not None else now
    remaining_minutes = math.floor((deadline - reference) / timedelta(minutes=1))
    total_minutes = sla_hours * 60
    percentage_remaining = remaining_minutes / total_minutes * 100

    return SLASnapshot(
        deadline=deadline,
        status=classify(remaining_minutes, percentage_remaining),
        remaining_minutes=remaining_minutes,
        percentage_remaining=percentage_remaining,
    )
