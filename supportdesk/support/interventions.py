from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping

from opentelemetry import trace
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.db.models import InterventionCostTable, InterventionTable, TicketTable, UserTable

from .activity import ActivityLog
from .errors import InterventionNotFoundError, ReferenceNotFoundError, TicketNotFoundError, ValidationFailure
from .models import (
    ActivityType,
    CostLineDraft,
    CostType,
    Intervention,
    InterventionCost,
    InterventionDraft,
    InterventionStatistics,
    InterventionStatus,
    InterventionType,
    InterventionTypeSummary,
    TechnicianSummary,
)
from .pagination import Page, PageRequest, fetch_rows
from .utils import CENT, coerce_enum, ensure_datetime, money, optional_datetime, optional_float, to_decimal, utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

UPDATABLE_FIELDS = frozenset(
    {"intervention_type", "description", "start_time", "end_time", "duration_minutes", "status", "notes"}
)
TOP_TECHNICIANS_LIMIT = 10
_QUANTITY_STEP = Decimal("0.0001")


@dataclass(slots=True)
class InterventionFilters:
    ticket_id: int | None = None
    technician_id: int | None = None
    equipment_id: int | None = None
    client_id: int | None = None
    intervention_type: InterventionType | None = None
    status: InterventionStatus | None = None
    start_from: datetime | None = None
    start_to: datetime | None = None
    search: str | None = None


def labor_line(labor_cost: Any, duration_minutes: int | None) -> CostLineDraft:
    """Build the labor line recorded alongside a new intervention.

    The quantity is the session length in hours (one unit when unknown) and the
    unit price is derived from it, so ``quantity * unit_price`` matches the
    supplied total.
    """

    total = money(labor_cost)
    if duration_minutes:
        quantity = (Decimal(duration_minutes) / Decimal(60)).quantize(_QUANTITY_STEP)
    else:
        quantity = Decimal(1)
    unit_price = (total / quantity).quantize(_QUANTITY_STEP) if quantity else total
    return CostLineDraft(
        description="Labor",
        cost_type=CostType.LABOR,
        quantity=quantity,
        unit_price=unit_price,
        total_price=total,
    )


def parts_line(parts_cost: Any) -> CostLineDraft:
    total = money(parts_cost)
    return CostLineDraft(
        description="Parts",
        cost_type=CostType.PART,
        quantity=Decimal(1),
        unit_price=total,
        total_price=total,
    )


def validate_cost_line(line: CostLineDraft) -> Decimal:
    """Check a cost line and return the total to store."""

    if not line.description or not line.description.strip():
        raise ValidationFailure("Cost description is required")
    coerce_enum(CostType, line.cost_type, "cost_type")
    quantity = to_decimal(line.quantity)
    unit_price = to_decimal(line.unit_price)
    if quantity <= 0:
        raise ValidationFailure("Cost quantity must be positive")
    if unit_price < 0:
        raise ValidationFailure("Cost unit price cannot be negative")
    expected = money(quantity * unit_price)
    if line.total_price is None:
        return expected
    total = money(line.total_price)
    if abs(total - expected) > CENT:
        raise ValidationFailure(
            f"Cost total {total} does not match quantity x unit price ({expected})"
        )
    return total


class InterventionService:
    """Technician work sessions and their itemized cost lines."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        activity_log: ActivityLog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._activity = activity_log
        self._clock = clock

    async def create_intervention(self, draft: InterventionDraft, *, actor_id: int | None) -> Intervention:
        intervention_type = coerce_enum(InterventionType, draft.intervention_type, "intervention type")
        status = coerce_enum(InterventionStatus, draft.status, "intervention status")
        now = self._clock()
        start_time = optional_datetime(draft.start_time) or now
        end_time = optional_datetime(draft.end_time)
        duration = self._resolve_duration(start_time, end_time, draft.duration_minutes)
        for label, amount in (("Labor cost", draft.labor_cost), ("Parts cost", draft.parts_cost)):
            if amount is not None and to_decimal(amount) < 0:
                raise ValidationFailure(f"{label} cannot be negative")
        lines: list[CostLineDraft] = []
        if draft.labor_cost is not None and to_decimal(draft.labor_cost) > 0:
            lines.append(labor_line(draft.labor_cost, duration))
        if draft.parts_cost is not None and to_decimal(draft.parts_cost) > 0:
            lines.append(parts_line(draft.parts_cost))
        for line in lines:
            validate_cost_line(line)

        with tracer.start_as_current_span("support.interventions.create") as span:
            span.set_attribute("ticket.id", draft.ticket_id)
            async with self._session_factory() as session:
                async with session.begin():
                    ticket = await session.get(TicketTable, draft.ticket_id)
                    if ticket is None or ticket.deleted_at is not None:
                        raise TicketNotFoundError(f"Ticket {draft.ticket_id} not found")
                    technician = await session.get(UserTable, draft.technician_id)
                    if technician is None or technician.deleted_at is not None:
                        raise ReferenceNotFoundError(f"Technician {draft.technician_id} not found")

                    row = InterventionTable(
                        ticket_id=draft.ticket_id,
                        technician_id=draft.technician_id,
                        intervention_type=intervention_type.value,
                        description=draft.description,
                        start_time=start_time,
                        end_time=end_time,
                        duration_minutes=duration,
                        status=status.value,
                        notes=draft.notes,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(row)
                    await session.flush()
                    for line in lines:
                        self._add_line(session, row.id, line, total=line.total_price, created_at=now)
                    await self._activity.append(
                        session,
                        ticket_id=draft.ticket_id,
                        activity_type=ActivityType.INTERVENTION_ADDED,
                        actor_id=actor_id,
                        description=f"{intervention_type.value.capitalize()} intervention recorded",
                        metadata={"intervention_id": row.id, "type": intervention_type.value},
                    )
        logger.info("Intervention %s created for ticket %s", row.id, draft.ticket_id)
        return await self.get_intervention(row.id)

    async def add_cost(self, intervention_id: int, line: CostLineDraft) -> InterventionCost:
        total = validate_cost_line(line)
        async with self._session_factory() as session:
            async with session.begin():
                await self._load(session, intervention_id)
                row = self._add_line(session, intervention_id, line, total=total, created_at=self._clock())
                await session.flush()
        return self._row_to_cost(row)

    async def get_intervention(self, intervention_id: int) -> Intervention:
        async with self._session_factory() as session:
            result = await session.execute(
                self._select_interventions().where(InterventionTable.id == intervention_id)
            )
            row = result.first()
            if row is None:
                raise InterventionNotFoundError(f"Intervention {intervention_id} not found")
            costs = await self._costs_for(session, [intervention_id])
        return self._row_to_intervention(row, costs.get(intervention_id, []))

    async def list_interventions(
        self,
        filters: InterventionFilters | None = None,
        *,
        paging: PageRequest | None = None,
    ) -> list[Intervention] | Page[Intervention]:
        statement = self._apply_filters(self._select_interventions(), filters or InterventionFilters())
        statement = statement.order_by(InterventionTable.start_time.desc(), InterventionTable.id.desc())
        async with self._session_factory() as session:
            rows, total = await fetch_rows(session, statement, paging)
            costs = await self._costs_for(session, [row[0].id for row in rows])
        items = [self._row_to_intervention(row, costs.get(row[0].id, [])) for row in rows]
        if paging is None:
            return items
        return Page(data=items, total=total or 0, page=paging.page, page_size=paging.page_size)

    async def update_intervention(self, intervention_id: int, changes: Mapping[str, Any]) -> Intervention:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailure(f"Unsupported intervention fields: {', '.join(sorted(unknown))}")
        values = dict(changes)
        if "intervention_type" in values:
            values["intervention_type"] = coerce_enum(
                InterventionType, values["intervention_type"], "intervention type"
            ).value
        if "status" in values:
            values["status"] = coerce_enum(InterventionStatus, values["status"], "intervention status").value
        if "start_time" in values and values["start_time"] is None:
            raise ValidationFailure("start_time cannot be empty")
        for key in ("start_time", "end_time"):
            if key in values:
                values[key] = optional_datetime(values[key])

        async with self._session_factory() as session:
            async with session.begin():
                row = await self._load(session, intervention_id)
                start_time = values.get("start_time", ensure_datetime(row.start_time))
                end_time = values.get("end_time", optional_datetime(row.end_time))
                if "duration_minutes" in values:
                    self._resolve_duration(start_time, end_time, values["duration_minutes"])
                elif "start_time" in values or "end_time" in values:
                    derived = self._resolve_duration(start_time, end_time, None)
                    if derived is not None:
                        values["duration_minutes"] = derived
                for key, value in values.items():
                    setattr(row, key, value)
                row.updated_at = self._clock()
        return await self.get_intervention(intervention_id)

    async def delete_intervention(self, intervention_id: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._load(session, intervention_id)
                row.deleted_at = self._clock()
        logger.info("Intervention %s soft-deleted", intervention_id)

    async def get_statistics(self, *, technician_id: int | None = None) -> InterventionStatistics:
        live = InterventionTable.deleted_at.is_(None)
        if technician_id is not None:
            live = live & (InterventionTable.technician_id == technician_id)

        def count_status(status: InterventionStatus):
            return func.sum(case((InterventionTable.status == status.value, 1), else_=0))

        async with self._session_factory() as session:
            overview_row = (
                await session.execute(
                    select(
                        func.count(InterventionTable.id),
                        count_status(InterventionStatus.COMPLETED),
                        count_status(InterventionStatus.IN_PROGRESS),
                        count_status(InterventionStatus.PENDING),
                        func.avg(InterventionTable.duration_minutes),
                    ).where(live)
                )
            ).one()
            cost_rows = (
                await session.execute(
                    select(
                        InterventionTable.intervention_type,
                        InterventionTable.technician_id,
                        InterventionCostTable.total_price,
                    )
                    .join(InterventionTable, InterventionTable.id == InterventionCostTable.intervention_id)
                    .where(live)
                )
            ).all()
            type_rows = (
                await session.execute(
                    select(
                        InterventionTable.intervention_type,
                        func.count(InterventionTable.id),
                        func.avg(InterventionTable.duration_minutes),
                    )
                    .where(live)
                    .group_by(InterventionTable.intervention_type)
                    .order_by(func.count(InterventionTable.id).desc())
                )
            ).all()
            technician_rows = (
                await session.execute(
                    select(
                        InterventionTable.technician_id,
                        UserTable.full_name,
                        func.count(InterventionTable.id),
                        func.avg(InterventionTable.duration_minutes),
                    )
                    .outerjoin(UserTable, UserTable.id == InterventionTable.technician_id)
                    .where(live)
                    .group_by(InterventionTable.technician_id, UserTable.full_name)
                    .order_by(func.count(InterventionTable.id).desc())
                    .limit(TOP_TECHNICIANS_LIMIT)
                )
            ).all()

        cost_by_type: dict[str, Decimal] = defaultdict(Decimal)
        cost_by_technician: dict[int, Decimal] = defaultdict(Decimal)
        total_cost = Decimal("0")
        for intervention_type, tech_id, price in cost_rows:
            amount = money(price)
            total_cost += amount
            cost_by_type[intervention_type] += amount
            cost_by_technician[tech_id] += amount

        total, completed, in_progress, pending, avg_duration = overview_row
        overview = {
            "total": int(total or 0),
            "completed": int(completed or 0),
            "in_progress": int(in_progress or 0),
            "pending": int(pending or 0),
            "avg_duration_minutes": optional_float(avg_duration),
            "total_cost": money(total_cost),
            "cost_lines": len(cost_rows),
            "avg_cost_per_line": money(total_cost / len(cost_rows)) if cost_rows else None,
        }
        return InterventionStatistics(
            overview=overview,
            by_type=[
                InterventionTypeSummary(
                    intervention_type=intervention_type,
                    count=int(count),
                    avg_duration_minutes=optional_float(avg),
                    total_cost=money(cost_by_type.get(intervention_type, 0)),
                )
                for intervention_type, count, avg in type_rows
            ],
            top_technicians=[
                TechnicianSummary(
                    technician_id=tech_id,
                    full_name=name,
                    intervention_count=int(count),
                    avg_duration_minutes=optional_float(avg),
                    total_cost=money(cost_by_technician.get(tech_id, 0)),
                )
                for tech_id, name, count, avg in technician_rows
            ],
        )

    # ----------------------------------------------------------------- helpers

    @staticmethod
    def _resolve_duration(start: datetime, end: datetime | None, duration: int | None) -> int | None:
        if duration is not None and duration < 0:
            raise ValidationFailure("duration_minutes cannot be negative")
        if end is None:
            return duration
        if end < start:
            raise ValidationFailure("end_time must not be earlier than start_time")
        if duration is not None:
            return duration
        return int((end - start).total_seconds() // 60)

    @staticmethod
    def _add_line(
        session: AsyncSession,
        intervention_id: int,
        line: CostLineDraft,
        *,
        total: Decimal | None,
        created_at: datetime,
    ) -> InterventionCostTable:
        row = InterventionCostTable(
            intervention_id=intervention_id,
            description=line.description.strip(),
            cost_type=CostType(line.cost_type).value,
            quantity=to_decimal(line.quantity),
            unit_price=to_decimal(line.unit_price),
            total_price=money(total if total is not None else to_decimal(line.quantity) * to_decimal(line.unit_price)),
            notes=line.notes,
            created_at=created_at,
        )
        session.add(row)
        return row

    @staticmethod
    async def _load(session: AsyncSession, intervention_id: int) -> InterventionTable:
        row = await session.get(InterventionTable, intervention_id)
        if row is None or row.deleted_at is not None:
            raise InterventionNotFoundError(f"Intervention {intervention_id} not found")
        return row

    async def _costs_for(
        self, session: AsyncSession, intervention_ids: Iterable[int]
    ) -> dict[int, list[InterventionCost]]:
        ids = list(intervention_ids)
        if not ids:
            return {}
        result = await session.execute(
            select(InterventionCostTable)
            .where(InterventionCostTable.intervention_id.in_(ids))
            .order_by(InterventionCostTable.id.asc())
        )
        grouped: dict[int, list[InterventionCost]] = defaultdict(list)
        for row in result.scalars().all():
            grouped[row.intervention_id].append(self._row_to_cost(row))
        return grouped

    @staticmethod
    def _select_interventions():
        return (
            select(InterventionTable, UserTable.full_name, TicketTable.ticket_number, TicketTable.title)
            .join(TicketTable, TicketTable.id == InterventionTable.ticket_id)
            .outerjoin(UserTable, UserTable.id == InterventionTable.technician_id)
            .where(InterventionTable.deleted_at.is_(None))
        )

    @staticmethod
    def _apply_filters(statement, filters: InterventionFilters):
        if filters.ticket_id is not None:
            statement = statement.where(InterventionTable.ticket_id == filters.ticket_id)
        if filters.technician_id is not None:
            statement = statement.where(InterventionTable.technician_id == filters.technician_id)
        if filters.equipment_id is not None:
            statement = statement.where(TicketTable.equipment_id == filters.equipment_id)
        if filters.client_id is not None:
            statement = statement.where(TicketTable.client_id == filters.client_id)
        if filters.intervention_type is not None:
            statement = statement.where(
                InterventionTable.intervention_type == InterventionType(filters.intervention_type).value
            )
        if filters.status is not None:
            statement = statement.where(InterventionTable.status == InterventionStatus(filters.status).value)
        if filters.start_from is not None:
            statement = statement.where(InterventionTable.start_time >= filters.start_from)
        if filters.start_to is not None:
            statement = statement.where(InterventionTable.start_time <= filters.start_to)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            statement = statement.where(
                or_(
                    InterventionTable.description.ilike(pattern),
                    InterventionTable.notes.ilike(pattern),
                    TicketTable.ticket_number.ilike(pattern),
                )
            )
        return statement

    @staticmethod
    def _row_to_cost(row: InterventionCostTable) -> InterventionCost:
        return InterventionCost(
            id=row.id,
            intervention_id=row.intervention_id,
            description=row.description,
            cost_type=CostType(row.cost_type),
            quantity=to_decimal(row.quantity),
            unit_price=to_decimal(row.unit_price),
            total_price=money(row.total_price),
            notes=row.notes,
            created_at=ensure_datetime(row.created_at),
        )

    @staticmethod
    def _row_to_intervention(row, costs: list[InterventionCost]) -> Intervention:
        intervention, technician_name, ticket_number, ticket_title = row
        return Intervention(
            id=intervention.id,
            ticket_id=intervention.ticket_id,
            technician_id=intervention.technician_id,
            intervention_type=InterventionType(intervention.intervention_type),
            description=intervention.description,
            start_time=ensure_datetime(intervention.start_time),
            end_time=optional_datetime(intervention.end_time),
            duration_minutes=intervention.duration_minutes,
            status=InterventionStatus(intervention.status),
            notes=intervention.notes,
            created_at=ensure_datetime(intervention.created_at),
            updated_at=ensure_datetime(intervention.updated_at),
            technician_name=technician_name,
            ticket_number=ticket_number,
            ticket_title=ticket_title,
            costs=list(costs),
        )
