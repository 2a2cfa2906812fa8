"""Append-only ticket timeline.

Writes go through :meth:`ActivityLog.append`, which always runs inside the
caller's transaction: a mutation and the entry describing it commit or roll
back together. Reads open their own session.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.db.models import TicketActivityTable, TicketTable, UserTable

from .errors import ActivityNotFoundError, TicketNotFoundError
from .models import Activity, ActivityStatistics, ActivityType
from .utils import ensure_datetime, utcnow

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 20

ACTIVITY_LABELS: Mapping[str, str] = {
    ActivityType.CREATED.value: "Ticket created",
    ActivityType.STATUS_CHANGED.value: "Status changed",
    ActivityType.PRIORITY_CHANGED.value: "Priority changed",
    ActivityType.ASSIGNED.value: "Ticket assigned",
    ActivityType.REASSIGNED.value: "Ticket reassigned",
    ActivityType.COMMENT_ADDED.value: "Comment added",
    ActivityType.ATTACHMENT_ADDED.value: "Attachment added",
    ActivityType.INTERVENTION_ADDED.value: "Intervention recorded",
    ActivityType.CUSTOMER_RESPONSE.value: "Customer response",
    ActivityType.TECHNICIAN_RESPONSE.value: "Technician response",
    ActivityType.CLOSED.value: "Ticket closed",
    ActivityType.REOPENED.value: "Ticket reopened",
    ActivityType.RATED.value: "Rating submitted",
    ActivityType.SLA_WARNING.value: "SLA warning",
    ActivityType.SLA_BREACH.value: "SLA breached",
}


def activity_label(activity_type: str) -> str:
    return ACTIVITY_LABELS.get(activity_type, activity_type)


class ActivityLog:
    """Timeline store for a single tenant."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def append(
        self,
        session: AsyncSession,
        *,
        ticket_id: int,
        activity_type: ActivityType,
        actor_id: int | None,
        description: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> TicketActivityTable:
        row = TicketActivityTable(
            ticket_id=ticket_id,
            activity_type=activity_type.value,
            user_id=actor_id,
            description=description,
            metadata_=dict(metadata or {}),
            created_at=self._clock(),
        )
        session.add(row)
        await session.flush()
        return row

    async def get_timeline(self, ticket_id: int) -> list[Activity]:
        async with self._session_factory() as session:
            await self._require_ticket(session, ticket_id)
            result = await session.execute(
                self._select_activities()
                .where(TicketActivityTable.ticket_id == ticket_id)
                .order_by(TicketActivityTable.created_at.desc(), TicketActivityTable.id.desc())
            )
            return [self.to_activity(row, name) for row, name in result.all()]

    async def get_comments(self, ticket_id: int, *, include_internal: bool = False) -> list[Activity]:
        async with self._session_factory() as session:
            await self._require_ticket(session, ticket_id)
            result = await session.execute(
                self._select_activities()
                .where(
                    TicketActivityTable.ticket_id == ticket_id,
                    TicketActivityTable.activity_type == ActivityType.COMMENT_ADDED.value,
                )
                .order_by(TicketActivityTable.created_at.asc(), TicketActivityTable.id.asc())
            )
            comments = [self.to_activity(row, name) for row, name in result.all()]

        if include_internal:
            return comments
        return [item for item in comments if not bool(item.metadata.get("isInternal"))]

    async def count_comments(self, session: AsyncSession, ticket_id: int) -> int:
        total = await session.scalar(
            select(func.count(TicketActivityTable.id)).where(
                TicketActivityTable.ticket_id == ticket_id,
                TicketActivityTable.activity_type == ActivityType.COMMENT_ADDED.value,
            )
        )
        return int(total or 0)

    async def get_statistics(self, *, user_id: int | None = None) -> ActivityStatistics:
        async with self._session_factory() as session:
            count_statement = select(
                TicketActivityTable.activity_type, func.count(TicketActivityTable.id)
            ).group_by(TicketActivityTable.activity_type)
            recent_statement = (
                self._select_activities()
                .order_by(TicketActivityTable.created_at.desc(), TicketActivityTable.id.desc())
                .limit(RECENT_ACTIVITY_LIMIT)
            )
            if user_id is not None:
                count_statement = count_statement.where(TicketActivityTable.user_id == user_id)
                recent_statement = recent_statement.where(TicketActivityTable.user_id == user_id)

            counts = await session.execute(count_statement)
            recent = await session.execute(recent_statement)

            by_type = {activity_type: int(total) for activity_type, total in counts.all()}
            return ActivityStatistics(
                by_type=dict(sorted(by_type.items(), key=lambda item: item[1], reverse=True)),
                recent=[self.to_activity(row, name) for row, name in recent.all()],
            )

    async def delete(self, activity_id: int) -> None:
        """Remove a timeline entry. Administrative use only."""

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(TicketActivityTable).where(TicketActivityTable.id == activity_id)
                )
                if result.rowcount == 0:
                    raise ActivityNotFoundError(f"Activity {activity_id} not found")
        logger.warning("Activity %s deleted from ticket timeline", activity_id)

    @staticmethod
    def _select_activities():
        return select(TicketActivityTable, UserTable.full_name).outerjoin(
            UserTable, UserTable.id == TicketActivityTable.user_id
        )

    @staticmethod
    async def _require_ticket(session: AsyncSession, ticket_id: int) -> None:
        found = await session.scalar(
            select(TicketTable.id).where(TicketTable.id == ticket_id, TicketTable.deleted_at.is_(None))
        )
        if found is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")

    @staticmethod
    def to_activity(row: TicketActivityTable, user_name: str | None) -> Activity:
        return Activity(
            id=row.id,
            ticket_id=row.ticket_id,
            activity_type=row.activity_type,
            user_id=row.user_id,
            user_name=user_name,
            description=row.description,
            metadata=dict(row.metadata_ or {}),
            created_at=ensure_datetime(row.created_at),
            label=activity_label(row.activity_type),
        )
