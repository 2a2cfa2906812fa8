"""Code-keyed access to tickets for unauthenticated requesters.

Holding a ticket's ``unique_code`` is the only credential on this channel. Every
mutation is attributed to the ticket's requester and goes through the same
transaction-level steps as the authenticated lifecycle operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.db.models import ClientTable, TicketTypeTable, UserTable

from .errors import ConflictError, DependencyFailureError, NotFoundError, ReferenceNotFoundError
from .interventions import InterventionFilters, InterventionService
from .models import Intervention, PublicTicketReceipt, TicketDraft, TicketPriority, TicketType, TicketView
from .state import TicketStateMachine, TicketStatus
from .ticket_types import TicketTypeService
from .tickets import TicketService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PublicTicketRequest:
    ticket_type_id: int
    title: str
    description: str
    priority: TicketPriority = TicketPriority.MEDIUM
    location: str | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None


class PublicSupportGateway:
    """Restricted ticket operations addressed by public access code."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        tickets: TicketService,
        interventions: InterventionService,
        ticket_types: TicketTypeService,
        requester_name: str = "Utilizador Geral",
        fallback_requester_id: int = 1,
    ) -> None:
        self._session_factory = session_factory
        self._tickets = tickets
        self._interventions = interventions
        self._ticket_types = ticket_types
        self._requester_name = requester_name
        self._fallback_requester_id = fallback_requester_id

    async def get_by_code(self, code: str) -> TicketView:
        async with self._session_factory() as session:
            return await self._tickets.load_view_by_code(session, code)

    async def get_interventions_by_code(self, code: str) -> list[Intervention]:
        view = await self.get_by_code(code)
        return await self._interventions.list_interventions(InterventionFilters(ticket_id=view.ticket.id))

    async def list_ticket_types(self) -> list[TicketType]:
        return await self._ticket_types.list_types(active_only=True)

    async def reopen_by_code(self, code: str, *, reason: str) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._tickets.load_by_code_for_update(session, code)
                if not TicketStateMachine.is_completed(TicketStatus(row.status)):
                    raise ConflictError("Only closed or resolved tickets can be reopened")
                await self._tickets.apply_reopen(session, row, reason=reason, actor_id=row.requester_id)
        return await self.get_by_code(code)

    async def close_by_code(self, code: str, *, reason: str | None = None) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._tickets.load_by_code_for_update(session, code)
                if TicketStateMachine.is_completed(TicketStatus(row.status)):
                    raise ConflictError("Ticket is already closed")
                await self._tickets.apply_close(
                    session,
                    row,
                    resolution=reason or "Closed by requester",
                    actor_id=row.requester_id,
                )
        return await self.get_by_code(code)

    async def rate_by_code(self, code: str, *, rating: int, comment: str | None = None) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._tickets.load_by_code_for_update(session, code)
                await self._tickets.apply_rating(
                    session, row, rating=rating, feedback=comment, actor_id=row.requester_id
                )
        return await self.get_by_code(code)

    async def create_public(
        self, request: PublicTicketRequest, *, client_id: int | None = None
    ) -> PublicTicketReceipt:
        async with self._session_factory() as session:
            ticket_type = await session.get(TicketTypeTable, request.ticket_type_id)
            if ticket_type is None or ticket_type.deleted_at is not None:
                raise ReferenceNotFoundError("Ticket type not found")
            if client_id is not None:
                client = await session.get(ClientTable, client_id)
                if client is None or client.deleted_at is not None:
                    raise ReferenceNotFoundError("Client not found")
            requester_id = await self._resolve_requester(session)

        draft = TicketDraft(
            ticket_type_id=request.ticket_type_id,
            title=request.title,
            description=request.description,
            priority=request.priority,
            requester_id=requester_id,
            client_id=client_id,
            equipment_serial_number=request.equipment_serial_number,
            equipment_description=request.equipment_description,
            location=request.location,
        )
        try:
            row = await self._tickets.create_ticket_record(
                draft, actor_id=requester_id, activity_description="Ticket created via public portal"
            )
        except NotFoundError as exc:
            # Catalogue rows can vanish between the lookup and the insert.
            logger.warning("Public ticket intake lost a reference: %s", exc.message)
            raise ReferenceNotFoundError("Ticket could not be created with the given details") from None
        logger.info("Public ticket intake created %s", row.ticket_number)
        return PublicTicketReceipt(id=row.id, ticket_number=row.ticket_number, unique_code=row.unique_code)

    async def _resolve_requester(self, session: AsyncSession) -> int:
        """Find the account anonymous intake is filed under."""

        named = await session.scalar(
            select(UserTable.id)
            .where(UserTable.full_name == self._requester_name, UserTable.deleted_at.is_(None))
            .order_by(UserTable.id.asc())
            .limit(1)
        )
        if named is not None:
            return named
        fallback = await session.get(UserTable, self._fallback_requester_id)
        if fallback is not None and fallback.deleted_at is None:
            return fallback.id
        logger.error(
            "No public requester account: neither %r nor user %s exists",
            self._requester_name,
            self._fallback_requester_id,
        )
        raise DependencyFailureError("Public ticket intake is not available")
