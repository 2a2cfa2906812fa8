"""Ticket lifecycle manager.

Every status change, whichever entry point requested it, is funnelled through
:meth:`TicketService.apply_update`. That routine consults the transition table,
keeps ``completed_at`` coupled to the status and writes one timeline entry per
semantic change inside the caller's transaction.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Mapping, Sequence

from opentelemetry import trace
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from supportdesk.db.models import (
    ClientTable,
    EquipmentTable,
    InterventionCostTable,
    InterventionTable,
    TicketActivityTable,
    TicketTable,
    TicketTypeTable,
    UserTable,
)

from .activity import ActivityLog
from .errors import ConflictError, ReferenceNotFoundError, TicketNotFoundError, ValidationFailure
from .models import (
    Activity,
    ActivityType,
    AssigneeSummary,
    ClientRef,
    CountBucket,
    DashboardStatistics,
    EquipmentRef,
    Ticket,
    TicketDraft,
    TicketPriority,
    TicketTypeRef,
    TicketView,
    URGENT_PRIORITIES,
    UserRef,
)
from .numbering import TicketNumberAllocator, normalize_code
from .pagination import Page, PageRequest, fetch_rows
from .sla import SLAStatus, compute_sla
from .state import COMPLETED_STATUSES, TicketStateMachine, TicketStatus
from .ticket_types import TicketTypeService
from .utils import coerce_enum, ensure_datetime, money, optional_datetime, optional_float, utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "priority",
        "status",
        "assigned_to_id",
        "location",
        "expected_at",
        "equipment_serial_number",
        "equipment_description",
    }
)
TOP_ASSIGNEES_LIMIT = 10

_Requester = aliased(UserTable, name="requester")
_Assignee = aliased(UserTable, name="assignee")


@dataclass(slots=True)
class TicketFilters:
    ticket_type_id: int | None = None
    client_id: int | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_id: int | None = None
    requester_id: int | None = None
    equipment_id: int | None = None
    search: str | None = None
    overdue_only: bool = False
    sla_status: SLAStatus | None = None


class TicketService:
    """Create, mutate and read tickets of one tenant."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        activity_log: ActivityLog,
        ticket_types: TicketTypeService,
        allocator: TicketNumberAllocator | None = None,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
        clock: Callable[[], datetime] = utcnow,
        create_retries: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._activity = activity_log
        self._ticket_types = ticket_types
        self._allocator = allocator or TicketNumberAllocator()
        self._state_machine = state_machine
        self._clock = clock
        self._create_retries = max(1, create_retries)

    # ------------------------------------------------------------------ reads

    async def get_ticket(self, ticket_id: int) -> TicketView:
        async with self._session_factory() as session:
            return await self.load_view(session, ticket_id)

    async def list_tickets(
        self,
        filters: TicketFilters | None = None,
        *,
        paging: PageRequest | None = None,
    ) -> list[TicketView] | Page[TicketView]:
        filters = filters or TicketFilters()
        now = self._clock()
        statement = self._apply_filters(self._select_views(), filters, now).order_by(
            TicketTable.opened_at.desc(), TicketTable.id.desc()
        )

        async with self._session_factory() as session:
            if filters.sla_status is None:
                rows, total = await fetch_rows(session, statement, paging)
                views = [self._row_to_view(row, now=now) for row in rows]
            else:
                wanted = coerce_enum(SLAStatus, filters.sla_status, "SLA status")
                rows, _ = await fetch_rows(session, statement, None)
                views = [
                    view
                    for view in (self._row_to_view(row, now=now) for row in rows)
                    if view.sla is not None and view.sla.status is wanted
                ]
                total = len(views)
                if paging is not None:
                    views = views[paging.offset : paging.offset + paging.page_size]

        if paging is None:
            return views
        return Page(data=views, total=total or 0, page=paging.page, page_size=paging.page_size)

    async def load_view(self, session: AsyncSession, ticket_id: int) -> TicketView:
        result = await session.execute(self._select_views().where(TicketTable.id == ticket_id))
        row = result.first()
        if row is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        view = self._row_to_view(row, now=self._clock())
        view.intervention_count, view.total_intervention_cost = await self._intervention_totals(
            session, ticket_id
        )
        view.comment_count = await self._activity.count_comments(session, ticket_id)
        return view

    async def load_view_by_code(self, session: AsyncSession, code: str) -> TicketView:
        result = await session.execute(
            self._select_views().where(TicketTable.unique_code == normalize_code(code))
        )
        row = result.first()
        if row is None:
            raise TicketNotFoundError("Ticket not found")
        view = self._row_to_view(row, now=self._clock())
        view.intervention_count, view.total_intervention_cost = await self._intervention_totals(
            session, view.ticket.id
        )
        return view

    # ----------------------------------------------------------------- writes

    async def create_ticket(self, draft: TicketDraft, *, actor_id: int | None) -> TicketView:
        row = await self.create_ticket_record(draft, actor_id=actor_id)
        return await self.get_ticket(row.id)

    async def create_ticket_record(
        self,
        draft: TicketDraft,
        *,
        actor_id: int | None,
        activity_description: str = "Ticket created",
    ) -> TicketTable:
        """Insert the ticket and its ``created`` entry, retrying number clashes."""

        self._validate_draft(draft)
        with tracer.start_as_current_span("support.tickets.create"):
            for attempt in range(1, self._create_retries + 1):
                try:
                    async with self._session_factory() as session:
                        async with session.begin():
                            row = await self._insert_ticket(
                                session, draft, actor_id=actor_id, description=activity_description
                            )
                except IntegrityError:
                    if attempt == self._create_retries:
                        raise ConflictError("Could not allocate a unique ticket number") from None
                    logger.warning("Ticket number clash, retrying (attempt %s)", attempt)
                    continue
                logger.info("Ticket created: %s (id=%s)", row.ticket_number, row.id)
                return row
        raise ConflictError("Could not allocate a unique ticket number")  # pragma: no cover

    async def update_ticket(
        self, ticket_id: int, changes: Mapping[str, Any], *, actor_id: int | None
    ) -> TicketView:
        with tracer.start_as_current_span("support.tickets.update") as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self.load_for_update(session, ticket_id)
                    await self.apply_update(session, row, changes, actor_id=actor_id)
        return await self.get_ticket(ticket_id)

    async def close_ticket(
        self,
        ticket_id: int,
        *,
        resolution: str,
        notes: str | None = None,
        actor_id: int | None,
    ) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self.load_for_update(session, ticket_id)
                await self.apply_close(session, row, resolution=resolution, notes=notes, actor_id=actor_id)
        logger.info("Ticket %s closed", ticket_id)
        return await self.get_ticket(ticket_id)

    async def reopen_ticket(self, ticket_id: int, *, reason: str, actor_id: int | None) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self.load_for_update(session, ticket_id)
                await self.apply_reopen(session, row, reason=reason, actor_id=actor_id)
        logger.info("Ticket %s reopened", ticket_id)
        return await self.get_ticket(ticket_id)

    async def add_comment(
        self,
        ticket_id: int,
        *,
        comment: str,
        actor_id: int | None,
        is_internal: bool = False,
        attachment_ids: Sequence[int] = (),
    ) -> Activity:
        if not comment or not comment.strip():
            raise ValidationFailure("Comment text is required")
        async with self._session_factory() as session:
            async with session.begin():
                await self.load_for_update(session, ticket_id)
                entry = await self._activity.append(
                    session,
                    ticket_id=ticket_id,
                    activity_type=ActivityType.COMMENT_ADDED,
                    actor_id=actor_id,
                    description=comment.strip(),
                    metadata={"isInternal": is_internal, "attachmentIds": list(attachment_ids)},
                )
                actor = await session.get(UserTable, actor_id) if actor_id is not None else None
        return ActivityLog.to_activity(entry, actor.full_name if actor else None)

    async def rate_ticket(
        self,
        ticket_id: int,
        *,
        rating: int,
        feedback: str | None = None,
        actor_id: int | None,
    ) -> TicketView:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self.load_for_update(session, ticket_id)
                await self.apply_rating(session, row, rating=rating, feedback=feedback, actor_id=actor_id)
        return await self.get_ticket(ticket_id)

    async def delete_ticket(self, ticket_id: int) -> None:
        with tracer.start_as_current_span("support.tickets.delete") as span:
            span.set_attribute("ticket.id", ticket_id)
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self.load_for_update(session, ticket_id)
                    active = await session.scalar(
                        select(func.count(InterventionTable.id)).where(
                            InterventionTable.ticket_id == ticket_id,
                            InterventionTable.deleted_at.is_(None),
                        )
                    )
                    if active:
                        raise ConflictError(
                            f"Ticket {ticket_id} has {active} intervention(s) and cannot be deleted"
                        )
                    # Soft-deleted interventions go with the ticket.
                    stale = select(InterventionTable.id).where(InterventionTable.ticket_id == ticket_id)
                    await session.execute(
                        delete(InterventionCostTable).where(InterventionCostTable.intervention_id.in_(stale))
                    )
                    await session.execute(delete(InterventionTable).where(InterventionTable.ticket_id == ticket_id))
                    await session.execute(
                        delete(TicketActivityTable).where(TicketActivityTable.ticket_id == ticket_id)
                    )
                    await session.delete(row)
        logger.info("Ticket %s deleted", ticket_id)

    # ------------------------------------------------- transaction-level steps

    async def load_for_update(self, session: AsyncSession, ticket_id: int) -> TicketTable:
        result = await session.execute(
            select(TicketTable)
            .where(TicketTable.id == ticket_id, TicketTable.deleted_at.is_(None))
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return row

    async def load_by_code_for_update(self, session: AsyncSession, code: str) -> TicketTable:
        result = await session.execute(
            select(TicketTable)
            .where(TicketTable.unique_code == normalize_code(code), TicketTable.deleted_at.is_(None))
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise TicketNotFoundError("Ticket not found")
        return row

    async def apply_update(
        self,
        session: AsyncSession,
        row: TicketTable,
        changes: Mapping[str, Any],
        *,
        actor_id: int | None,
    ) -> list[ActivityType]:
        """Apply a partial update and log one entry per semantic change.

        All validation happens before the row is touched.
        """

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Unsupported ticket fields: {', '.join(sorted(unknown))}")
        for required in ("title", "description", "status", "priority"):
            if required in changes and (changes[required] is None or str(changes[required]).strip() == ""):
                raise ValidationFailure(f"{required} cannot be empty")

        current_status = TicketStatus(row.status)
        transition = None
        if "status" in changes:
            target = coerce_enum(TicketStatus, changes["status"], "status")
            transition = self._state_machine.plan(current_status, target)
        priority = None
        if "priority" in changes:
            priority = coerce_enum(TicketPriority, changes["priority"], "priority")
        if changes.get("assigned_to_id") is not None:
            await self._require_user(session, changes["assigned_to_id"], role="Assignee")

        now = self._clock()
        logged: list[ActivityType] = []

        if transition is not None and not transition.is_noop:
            row.status = transition.target.value
            if transition.sets_completion:
                row.completed_at = now
            elif transition.clears_completion:
                row.completed_at = None
            await self._log_change(
                session, row, ActivityType.STATUS_CHANGED, actor_id,
                "Status changed", current_status.value, transition.target.value,
            )
            logged.append(ActivityType.STATUS_CHANGED)

        if priority is not None and priority.value != row.priority:
            previous = row.priority
            row.priority = priority.value
            await self._log_change(
                session, row, ActivityType.PRIORITY_CHANGED, actor_id,
                "Priority changed", previous, priority.value,
            )
            logged.append(ActivityType.PRIORITY_CHANGED)

        if "assigned_to_id" in changes and changes["assigned_to_id"] != row.assigned_to_id:
            previous_assignee = row.assigned_to_id
            row.assigned_to_id = changes["assigned_to_id"]
            activity_type = ActivityType.ASSIGNED if previous_assignee is None else ActivityType.REASSIGNED
            await self._log_change(
                session, row, activity_type, actor_id,
                "Ticket assigned" if previous_assignee is None else "Ticket reassigned",
                previous_assignee, row.assigned_to_id,
            )
            logged.append(activity_type)

        for key in ("title", "description", "location", "equipment_serial_number", "equipment_description"):
            if key in changes:
                value = changes[key]
                setattr(row, key, value.strip() if isinstance(value, str) and key == "title" else value)
        if "expected_at" in changes:
            row.expected_at = optional_datetime(changes["expected_at"])

        row.updated_at = now
        await session.flush()
        return logged

    async def apply_close(
        self,
        session: AsyncSession,
        row: TicketTable,
        *,
        resolution: str | None,
        notes: str | None = None,
        actor_id: int | None,
    ) -> None:
        if row.status == TicketStatus.CLOSED.value:
            raise ConflictError("Ticket is already closed")
        self._state_machine.plan(TicketStatus(row.status), TicketStatus.CLOSED)
        await self._activity.append(
            session,
            ticket_id=row.id,
            activity_type=ActivityType.CLOSED,
            actor_id=actor_id,
            description=resolution or "Ticket closed",
            metadata={"resolution": resolution, "notes": notes},
        )
        await self.apply_update(session, row, {"status": TicketStatus.CLOSED}, actor_id=actor_id)

    async def apply_reopen(
        self,
        session: AsyncSession,
        row: TicketTable,
        *,
        reason: str,
        actor_id: int | None,
    ) -> None:
        if not reason or not reason.strip():
            raise ValidationFailure("A reason is required to reopen a ticket")
        self._state_machine.plan(TicketStatus(row.status), TicketStatus.REOPENED)
        await self._activity.append(
            session,
            ticket_id=row.id,
            activity_type=ActivityType.REOPENED,
            actor_id=actor_id,
            description=reason.strip(),
            metadata={"reason": reason.strip()},
        )
        await self.apply_update(session, row, {"status": TicketStatus.REOPENED}, actor_id=actor_id)

    async def apply_rating(
        self,
        session: AsyncSession,
        row: TicketTable,
        *,
        rating: int,
        feedback: str | None,
        actor_id: int | None,
    ) -> None:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailure("Rating must be an integer between 1 and 5")
        if row.completed_at is None:
            raise ConflictError("Ticket can only be rated after it has been completed")

        previous = row.rating
        row.rating = rating
        row.rating_comment = feedback
        row.updated_at = self._clock()
        await self._activity.append(
            session,
            ticket_id=row.id,
            activity_type=ActivityType.RATED,
            actor_id=actor_id,
            description=feedback,
            metadata={"rating": rating, "previous": previous},
        )

    # --------------------------------------------------------------- dashboard

    async def get_dashboard_statistics(self) -> DashboardStatistics:
        now = self._clock()
        live = TicketTable.deleted_at.is_(None)
        async with self._session_factory() as session:
            status_rows = await session.execute(
                select(TicketTable.status, func.count(TicketTable.id)).where(live).group_by(TicketTable.status)
            )
            priority_rows = await session.execute(
                select(TicketTable.priority, func.count(TicketTable.id)).where(live).group_by(TicketTable.priority)
            )
            type_rows = await session.execute(
                select(TicketTypeTable.id, TicketTypeTable.name, func.count(TicketTable.id))
                .outerjoin(
                    TicketTable,
                    (TicketTable.ticket_type_id == TicketTypeTable.id) & TicketTable.deleted_at.is_(None),
                )
                .where(TicketTypeTable.deleted_at.is_(None))
                .group_by(TicketTypeTable.id, TicketTypeTable.name)
                .order_by(func.count(TicketTable.id).desc(), TicketTypeTable.name.asc())
            )
            overdue = await session.scalar(
                select(func.count(TicketTable.id)).where(
                    live,
                    TicketTable.expected_at.is_not(None),
                    TicketTable.expected_at < now,
                    TicketTable.status.not_in([s.value for s in COMPLETED_STATUSES]),
                )
            )
            avg_rating = await session.scalar(
                select(func.avg(TicketTable.rating)).where(live, TicketTable.rating.is_not(None))
            )
            timing_rows = await session.execute(
                select(
                    TicketTable.status,
                    TicketTable.assigned_to_id,
                    TicketTable.opened_at,
                    TicketTable.completed_at,
                    TicketTable.rating,
                    TicketTypeTable.sla_hours,
                )
                .outerjoin(TicketTypeTable, TicketTypeTable.id == TicketTable.ticket_type_id)
                .where(live)
            )
            timings = timing_rows.all()
            assignee_ids = {row.assigned_to_id for row in timings if row.assigned_to_id is not None}
            names: dict[int, str] = {}
            if assignee_ids:
                name_rows = await session.execute(
                    select(UserTable.id, UserTable.full_name).where(UserTable.id.in_(assignee_ids))
                )
                names = {user_id: full_name for user_id, full_name in name_rows.all()}

        by_status_counts = {status: int(count) for status, count in status_rows.all()}
        by_priority_counts = {priority: int(count) for priority, count in priority_rows.all()}
        total = sum(by_status_counts.values())

        resolution_hours: list[float] = []
        sla_buckets = {status.value: 0 for status in SLAStatus}
        sla_buckets["untracked"] = 0
        per_assignee: dict[int, dict[str, list]] = defaultdict(lambda: {"tickets": [], "hours": [], "ratings": []})
        for row in timings:
            opened_at = optional_datetime(row.opened_at)
            completed_at = optional_datetime(row.completed_at)
            hours = None
            if opened_at is not None and completed_at is not None:
                hours = (completed_at - opened_at).total_seconds() / 3600
                resolution_hours.append(hours)
            if completed_at is None and row.status != TicketStatus.CANCELLED.value:
                snapshot = compute_sla(opened_at, row.sla_hours, None, now)
                sla_buckets[snapshot.status.value if snapshot else "untracked"] += 1
            if row.assigned_to_id is not None:
                bucket = per_assignee[row.assigned_to_id]
                bucket["tickets"].append(row.status)
                if hours is not None:
                    bucket["hours"].append(hours)
                if row.rating is not None:
                    bucket["ratings"].append(row.rating)

        assignees = [
            AssigneeSummary(
                user_id=user_id,
                full_name=names.get(user_id),
                ticket_count=len(data["tickets"]),
                closed_count=sum(1 for status in data["tickets"] if status == TicketStatus.CLOSED.value),
                avg_resolution_hours=_mean(data["hours"]),
                avg_rating=_mean(data["ratings"]),
            )
            for user_id, data in per_assignee.items()
        ]
        assignees.sort(key=lambda item: (item.closed_count, item.ticket_count), reverse=True)

        overview = {
            "total": total,
            **{status.value: by_status_counts.get(status.value, 0) for status in TicketStatus},
            "urgent": sum(by_priority_counts.get(p.value, 0) for p in URGENT_PRIORITIES),
            "overdue": int(overdue or 0),
            "avg_resolution_hours": _mean(resolution_hours),
            "avg_rating": optional_float(avg_rating),
        }
        return DashboardStatistics(
            overview=overview,
            by_status=[
                CountBucket(key=status.value, label=None, count=by_status_counts.get(status.value, 0))
                for status in TicketStatus
            ],
            by_priority=[
                CountBucket(key=priority.value, label=None, count=by_priority_counts.get(priority.value, 0))
                for priority in TicketPriority.by_severity()
            ],
            by_type=[
                CountBucket(key=str(type_id), label=name, count=int(count))
                for type_id, name, count in type_rows.all()
            ],
            top_assignees=assignees[:TOP_ASSIGNEES_LIMIT],
            sla=sla_buckets,
        )

    # ----------------------------------------------------------------- helpers

    async def _insert_ticket(
        self,
        session: AsyncSession,
        draft: TicketDraft,
        *,
        actor_id: int | None,
        description: str,
    ) -> TicketTable:
        await self._ticket_types.require_active(session, draft.ticket_type_id)
        await self._require_user(session, draft.requester_id, role="Requester")
        if draft.assigned_to_id is not None:
            await self._require_user(session, draft.assigned_to_id, role="Assignee")
        if draft.client_id is not None:
            await self._require_reference(session, ClientTable, draft.client_id, "Client")
        if draft.equipment_id is not None:
            await self._require_reference(session, EquipmentTable, draft.equipment_id, "Equipment")

        now = self._clock()
        status = (
            coerce_enum(TicketStatus, draft.status, "status")
            if draft.status is not None
            else self._state_machine.initial_state()
        )
        row = TicketTable(
            ticket_number=await self._allocator.next_ticket_number(session),
            unique_code=await self._allocator.next_unique_code(session),
            ticket_type_id=draft.ticket_type_id,
            client_id=draft.client_id,
            equipment_id=draft.equipment_id,
            equipment_serial_number=draft.equipment_serial_number,
            equipment_description=draft.equipment_description,
            title=draft.title.strip(),
            description=draft.description,
            priority=TicketPriority(draft.priority).value,
            status=status.value,
            requester_id=draft.requester_id,
            assigned_to_id=draft.assigned_to_id,
            location=draft.location,
            opened_at=now,
            expected_at=optional_datetime(draft.expected_at),
            completed_at=now if self._state_machine.is_completed(status) else None,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        await session.flush()
        await self._activity.append(
            session,
            ticket_id=row.id,
            activity_type=ActivityType.CREATED,
            actor_id=actor_id,
            description=description,
            metadata={"ticketNumber": row.ticket_number, "priority": row.priority, "status": row.status},
        )
        return row

    async def _log_change(
        self,
        session: AsyncSession,
        row: TicketTable,
        activity_type: ActivityType,
        actor_id: int | None,
        description: str,
        previous: Any,
        current: Any,
    ) -> None:
        await self._activity.append(
            session,
            ticket_id=row.id,
            activity_type=activity_type,
            actor_id=actor_id,
            description=description,
            metadata={"from": previous, "to": current},
        )

    async def _intervention_totals(self, session: AsyncSession, ticket_id: int) -> tuple[int, Decimal]:
        live = (InterventionTable.ticket_id == ticket_id) & InterventionTable.deleted_at.is_(None)
        count = await session.scalar(select(func.count(InterventionTable.id)).where(live))
        prices = await session.scalars(
            select(InterventionCostTable.total_price)
            .join(InterventionTable, InterventionTable.id == InterventionCostTable.intervention_id)
            .where(live)
        )
        return int(count or 0), money(sum((money(value) for value in prices.all()), Decimal("0")))

    async def _require_user(self, session: AsyncSession, user_id: int, *, role: str) -> None:
        await self._require_reference(session, UserTable, user_id, role)

    @staticmethod
    async def _require_reference(session: AsyncSession, table: type, record_id: int, label: str) -> None:
        row = await session.get(table, record_id)
        if row is None or row.deleted_at is not None:
            raise ReferenceNotFoundError(f"{label} {record_id} not found")

    @staticmethod
    def _validate_draft(draft: TicketDraft) -> None:
        if not draft.title or not draft.title.strip():
            raise ValidationFailure("Ticket title is required")
        if not draft.description or not draft.description.strip():
            raise ValidationFailure("Ticket description is required")
        coerce_enum(TicketPriority, draft.priority, "priority")
        if draft.status is not None:
            coerce_enum(TicketStatus, draft.status, "status")

    @staticmethod
    def _select_views():
        return (
            select(TicketTable, TicketTypeTable, ClientTable, _Requester, _Assignee, EquipmentTable)
            .outerjoin(TicketTypeTable, TicketTypeTable.id == TicketTable.ticket_type_id)
            .outerjoin(ClientTable, ClientTable.id == TicketTable.client_id)
            .outerjoin(_Requester, _Requester.id == TicketTable.requester_id)
            .outerjoin(_Assignee, _Assignee.id == TicketTable.assigned_to_id)
            .outerjoin(EquipmentTable, EquipmentTable.id == TicketTable.equipment_id)
            .where(TicketTable.deleted_at.is_(None))
        )

    @staticmethod
    def _apply_filters(statement, filters: TicketFilters, now: datetime):
        if filters.ticket_type_id is not None:
            statement = statement.where(TicketTable.ticket_type_id == filters.ticket_type_id)
        if filters.client_id is not None:
            statement = statement.where(TicketTable.client_id == filters.client_id)
        if filters.status is not None:
            statement = statement.where(TicketTable.status == TicketStatus(filters.status).value)
        if filters.priority is not None:
            statement = statement.where(TicketTable.priority == TicketPriority(filters.priority).value)
        if filters.assigned_to_id is not None:
            statement = statement.where(TicketTable.assigned_to_id == filters.assigned_to_id)
        if filters.requester_id is not None:
            statement = statement.where(TicketTable.requester_id == filters.requester_id)
        if filters.equipment_id is not None:
            statement = statement.where(TicketTable.equipment_id == filters.equipment_id)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            statement = statement.where(
                or_(
                    TicketTable.ticket_number.ilike(pattern),
                    TicketTable.title.ilike(pattern),
                    TicketTable.description.ilike(pattern),
                )
            )
        if filters.overdue_only:
            statement = statement.where(
                TicketTable.expected_at.is_not(None),
                TicketTable.expected_at < now,
                TicketTable.status.not_in([s.value for s in COMPLETED_STATUSES]),
            )
        return statement

    @classmethod
    def _row_to_view(cls, row: Sequence[Any], *, now: datetime) -> TicketView:
        ticket_row, type_row, client_row, requester_row, assignee_row, equipment_row = row
        ticket = cls._row_to_ticket(ticket_row)
        sla_hours = type_row.sla_hours if type_row is not None else None
        return TicketView(
            ticket=ticket,
            ticket_type=(
                TicketTypeRef(
                    id=type_row.id,
                    name=type_row.name,
                    sla_hours=type_row.sla_hours,
                    icon=type_row.icon,
                    color=type_row.color,
                )
                if type_row is not None
                else None
            ),
            client=(
                ClientRef(
                    id=client_row.id,
                    name=client_row.name,
                    code=client_row.code,
                    email=client_row.email,
                    phone=client_row.phone,
                )
                if client_row is not None
                else None
            ),
            requester=_user_ref(requester_row),
            assigned_to=_user_ref(assignee_row),
            equipment=(
                EquipmentRef(id=equipment_row.id, name=equipment_row.name, serial_number=equipment_row.serial_number)
                if equipment_row is not None
                else None
            ),
            sla=compute_sla(ticket.opened_at, sla_hours, ticket.completed_at, now),
        )

    @staticmethod
    def _row_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            ticket_number=row.ticket_number,
            unique_code=row.unique_code,
            ticket_type_id=row.ticket_type_id,
            client_id=row.client_id,
            equipment_id=row.equipment_id,
            equipment_serial_number=row.equipment_serial_number,
            equipment_description=row.equipment_description,
            title=row.title,
            description=row.description,
            priority=TicketPriority(row.priority),
            status=TicketStatus(row.status),
            requester_id=row.requester_id,
            assigned_to_id=row.assigned_to_id,
            location=row.location,
            opened_at=ensure_datetime(row.opened_at),
            expected_at=optional_datetime(row.expected_at),
            completed_at=optional_datetime(row.completed_at),
            rating=row.rating,
            rating_comment=row.rating_comment,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )


def _user_ref(row: UserTable | None) -> UserRef | None:
    if row is None:
        return None
    return UserRef(id=row.id, full_name=row.full_name, email=row.email)


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)
