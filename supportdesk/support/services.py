from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.core.config import Settings

from .activity import ActivityLog
from .interventions import InterventionService
from .numbering import TicketNumberAllocator, random_code
from .public import PublicSupportGateway
from .ticket_types import TicketTypeService
from .tickets import TicketService
from .utils import utcnow


@dataclass(slots=True)
class SupportServices:
    """Every support service bound to one tenant's session factory."""

    tenant_id: int
    activities: ActivityLog
    ticket_types: TicketTypeService
    tickets: TicketService
    interventions: InterventionService
    public: PublicSupportGateway

    @classmethod
    def build(
        cls,
        tenant_id: int,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        clock: Callable[[], datetime] = utcnow,
        code_factory: Callable[[int], str] = random_code,
    ) -> "SupportServices":
        activities = ActivityLog(session_factory, clock=clock)
        ticket_types = TicketTypeService(session_factory, clock=clock)
        allocator = TicketNumberAllocator(
            prefix=settings.ticket_number_prefix,
            width=settings.ticket_number_width,
            code_length=settings.unique_code_length,
            max_code_attempts=settings.unique_code_attempts,
            code_factory=code_factory,
        )
        tickets = TicketService(
            session_factory,
            activity_log=activities,
            ticket_types=ticket_types,
            allocator=allocator,
            clock=clock,
            create_retries=settings.ticket_create_retries,
        )
        interventions = InterventionService(session_factory, activity_log=activities, clock=clock)
        public = PublicSupportGateway(
            session_factory,
            tickets=tickets,
            interventions=interventions,
            ticket_types=ticket_types,
            requester_name=settings.public_requester_name,
            fallback_requester_id=settings.public_requester_fallback_id,
        )
        return cls(
            tenant_id=tenant_id,
            activities=activities,
            ticket_types=ticket_types,
            tickets=tickets,
            interventions=interventions,
            public=public,
        )
