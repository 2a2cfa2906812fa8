from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.db.models import TicketTable, TicketTypeTable

from .errors import ConflictError, TicketTypeNotFoundError, ValidationFailure
from .models import TicketType, TicketTypeStatistics
from .state import COMPLETED_STATUSES, INACTIVE_STATUSES
from .utils import ensure_datetime, optional_float, utcnow

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"name", "description", "sla_hours", "icon", "color"})
_CLOSED_OR_DONE = sorted(s.value for s in COMPLETED_STATUSES | INACTIVE_STATUSES)


class TicketTypeService:
    """Administration of ticket categories and their SLA budgets."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def list_types(self, *, active_only: bool = True) -> list[TicketType]:
        ticket_count = (
            select(func.count(TicketTable.id))
            .where(TicketTable.ticket_type_id == TicketTypeTable.id, TicketTable.deleted_at.is_(None))
            .correlate(TicketTypeTable)
            .scalar_subquery()
        )
        statement = select(TicketTypeTable, ticket_count).order_by(TicketTypeTable.name.asc())
        if active_only:
            statement = statement.where(TicketTypeTable.deleted_at.is_(None))

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._row_to_type(row, ticket_count=int(count or 0)) for row, count in result.all()]

    async def get_type(self, type_id: int) -> TicketType:
        async with self._session_factory() as session:
            row = await self._load(session, type_id)
            counts = await session.execute(
                select(
                    func.count(TicketTable.id),
                    func.sum(
                        case((TicketTable.status.in_(_CLOSED_OR_DONE), 0), else_=1)
                    ),
                ).where(TicketTable.ticket_type_id == type_id, TicketTable.deleted_at.is_(None))
            )
            total, open_tickets = counts.one()
            return self._row_to_type(row, ticket_count=int(total or 0), open_tickets=int(open_tickets or 0))

    async def create_type(
        self,
        *,
        name: str,
        description: str | None = None,
        sla_hours: int | None = None,
        icon: str | None = None,
        color: str | None = None,
    ) -> TicketType:
        self._validate(name=name, sla_hours=sla_hours)
        now = self._clock()
        async with self._session_factory() as session:
            async with session.begin():
                row = TicketTypeTable(
                    name=name.strip(),
                    description=description,
                    sla_hours=sla_hours,
                    icon=icon,
                    color=color,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                await session.flush()
        logger.info("Ticket type created: %s (id=%s)", row.name, row.id)
        return self._row_to_type(row)

    async def update_type(self, type_id: int, changes: Mapping[str, Any]) -> TicketType:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Unsupported ticket type fields: {', '.join(sorted(unknown))}")
        if "name" in changes:
            self._validate(name=changes["name"], sla_hours=changes.get("sla_hours"))
        elif "sla_hours" in changes:
            self._validate(name="-", sla_hours=changes["sla_hours"])

        async with self._session_factory() as session:
            async with session.begin():
                row = await self._load(session, type_id)
                for key, value in changes.items():
                    setattr(row, key, value.strip() if key == "name" else value)
                row.updated_at = self._clock()
        return await self.get_type(type_id)

    async def delete_type(self, type_id: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._load(session, type_id)
                active = await session.scalar(
                    select(func.count(TicketTable.id)).where(
                        TicketTable.ticket_type_id == type_id,
                        TicketTable.deleted_at.is_(None),
                        TicketTable.status.not_in([s.value for s in INACTIVE_STATUSES]),
                    )
                )
                if active:
                    raise ConflictError(
                        f"Ticket type {type_id} still has {active} active ticket(s)"
                    )
                row.deleted_at = self._clock()
        logger.info("Ticket type %s soft-deleted", type_id)

    async def get_statistics(self) -> TicketTypeStatistics:
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    func.count(TicketTypeTable.id),
                    func.sum(case((TicketTypeTable.deleted_at.is_(None), 1), else_=0)),
                    func.sum(
                        case(
                            (
                                (TicketTypeTable.deleted_at.is_(None)) & (TicketTypeTable.sla_hours.is_not(None)),
                                1,
                            ),
                            else_=0,
                        )
                    ),
                    func.avg(case((TicketTypeTable.deleted_at.is_(None), TicketTypeTable.sla_hours))),
                )
            )
            total, active, with_sla, avg_sla = result.one()
        return TicketTypeStatistics(
            total_types=int(total or 0),
            active_types=int(active or 0),
            types_with_sla=int(with_sla or 0),
            avg_sla_hours=optional_float(avg_sla),
        )

    async def require_active(self, session: AsyncSession, type_id: int) -> TicketTypeTable:
        """Load a non-deleted type inside the caller's transaction."""

        return await self._load(session, type_id)

    @staticmethod
    async def _load(session: AsyncSession, type_id: int) -> TicketTypeTable:
        row = await session.get(TicketTypeTable, type_id)
        if row is None or row.deleted_at is not None:
            raise TicketTypeNotFoundError(f"Ticket type {type_id} not found")
        return row

    @staticmethod
    def _validate(*, name: str, sla_hours: int | None) -> None:
        if not name or not name.strip():
            raise ValidationFailure("Ticket type name is required")
        if sla_hours is not None and sla_hours <= 0:
            raise ValidationFailure("sla_hours must be a positive number of hours")

    @staticmethod
    def _row_to_type(
        row: TicketTypeTable, *, ticket_count: int = 0, open_tickets: int | None = None
    ) -> TicketType:
        return TicketType(
            id=row.id,
            name=row.name,
            description=row.description,
            sla_hours=row.sla_hours,
            icon=row.icon,
            color=row.color,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
            ticket_count=ticket_count,
            open_tickets=open_tickets,
        )
