from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from .errors import InvalidTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REOPENED = "reopened"
    CANCELLED = "cancelled"


COMPLETED_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
# Tickets in these states no longer block deletion of their ticket type.
INACTIVE_STATUSES = frozenset({TicketStatus.CLOSED, TicketStatus.CANCELLED})


@dataclass(frozen=True, slots=True)
class TicketTransition:
    """Outcome of validating a status change, including its side effects."""

    source: TicketStatus
    target: TicketStatus
    sets_completion: bool
    clears_completion: bool

    @property
    def is_noop(self) -> bool:
        return self.source == self.target


class TicketStateMachine:
    """Explicit transition table for the ticket lifecycle."""

    _TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.OPEN: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED}
        ),
        TicketStatus.IN_PROGRESS: frozenset(
            {TicketStatus.OPEN, TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED}
        ),
        TicketStatus.REOPENED: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED}
        ),
        TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.REOPENED}),
        TicketStatus.CLOSED: frozenset({TicketStatus.REOPENED}),
        TicketStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def is_completed(cls, status: TicketStatus) -> bool:
        return status in COMPLETED_STATUSES

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def plan(cls, current: TicketStatus, new: TicketStatus) -> TicketTransition:
        """Validate ``current -> new`` and describe what applying it implies."""

        if not cls.can_transition(current, new):
            raise InvalidTransitionError(
                f"Invalid ticket status transition: {current.value} -> {new.value}"
            )
        if current == new:
            return TicketTransition(current, new, sets_completion=False, clears_completion=False)
        completes = new in COMPLETED_STATUSES
        return TicketTransition(
            source=current,
            target=new,
            sets_completion=completes,
            clears_completion=not completes,
        )

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        cls.plan(current, new)
