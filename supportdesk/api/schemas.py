"""Request and response models shared by the support routes.

Field names are camelCase on the wire; money is rendered as a float.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Generic, Mapping, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from supportdesk.support.models import (
    Activity,
    ActivityStatistics,
    DashboardStatistics,
    Intervention,
    InterventionCost,
    InterventionStatistics,
    PublicTicketReceipt,
    TicketType,
    TicketTypeStatistics,
    TicketView,
)
from supportdesk.support.pagination import Page
from supportdesk.support.sla import SLASnapshot

T = TypeVar("T")
E = TypeVar("E")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class PageModel(ApiModel, Generic[T]):
    data: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int


def paginated(result: Sequence[E] | Page[E], convert: Callable[[E], T]) -> list[T] | PageModel[T]:
    """Render a bare list, or a page envelope when the caller asked for one."""

    if isinstance(result, Page):
        return PageModel[Any](
            data=[convert(item) for item in result.data],
            total=result.total,
            page=result.page,
            page_size=result.page_size,
            total_pages=result.total_pages,
        )
    return [convert(item) for item in result]


# ----------------------------------------------------------------- tickets


class UserRefModel(ApiModel):
    id: int
    full_name: str
    email: str | None = None


class ClientRefModel(ApiModel):
    id: int
    name: str
    code: str | None = None
    email: str | None = None
    phone: str | None = None


class EquipmentRefModel(ApiModel):
    id: int
    name: str
    serial_number: str | None = None


class TicketTypeRefModel(ApiModel):
    id: int
    name: str
    sla_hours: int | None = None
    icon: str | None = None
    color: str | None = None


class SLAModel(ApiModel):
    deadline: datetime
    status: str
    remaining_minutes: int
    percentage_remaining: float
    is_breached: bool

    @classmethod
    def from_snapshot(cls, snapshot: SLASnapshot | None) -> "SLAModel | None":
        if snapshot is None:
            return None
        return cls(
            deadline=snapshot.deadline,
            status=snapshot.status.value,
            remaining_minutes=snapshot.remaining_minutes,
            percentage_remaining=snapshot.percentage_remaining,
            is_breached=snapshot.is_breached,
        )


class TicketModel(ApiModel):
    id: int
    ticket_number: str
    unique_code: str
    title: str
    description: str
    priority: str
    status: str
    location: str | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None
    opened_at: datetime
    expected_at: datetime | None = None
    completed_at: datetime | None = None
    rating: int | None = None
    rating_comment: str | None = None
    created_at: datetime
    updated_at: datetime
    ticket_type: TicketTypeRefModel | None = None
    client: ClientRefModel | None = None
    requester: UserRefModel | None = None
    assigned_to: UserRefModel | None = None
    equipment: EquipmentRefModel | None = None
    sla: SLAModel | None = None
    intervention_count: int | None = None
    comment_count: int | None = None
    total_intervention_cost: float | None = None

    @classmethod
    def from_view(cls, view: TicketView) -> "TicketModel":
        ticket = view.ticket
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            unique_code=ticket.unique_code,
            title=ticket.title,
            description=ticket.description,
            priority=ticket.priority.value,
            status=ticket.status.value,
            location=ticket.location,
            equipment_serial_number=ticket.equipment_serial_number,
            equipment_description=ticket.equipment_description,
            opened_at=ticket.opened_at,
            expected_at=ticket.expected_at,
            completed_at=ticket.completed_at,
            rating=ticket.rating,
            rating_comment=ticket.rating_comment,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            ticket_type=TicketTypeRefModel.model_validate(view.ticket_type) if view.ticket_type else None,
            client=ClientRefModel.model_validate(view.client) if view.client else None,
            requester=UserRefModel.model_validate(view.requester) if view.requester else None,
            assigned_to=UserRefModel.model_validate(view.assigned_to) if view.assigned_to else None,
            equipment=EquipmentRefModel.model_validate(view.equipment) if view.equipment else None,
            sla=SLAModel.from_snapshot(view.sla),
            intervention_count=view.intervention_count,
            comment_count=view.comment_count,
            total_intervention_cost=_money(view.total_intervention_cost),
        )


class PublicTicketModel(ApiModel):
    """What a code holder may see: no internal user ids or e-mail addresses."""

    ticket_number: str
    unique_code: str
    title: str
    description: str
    priority: str
    status: str
    location: str | None = None
    opened_at: datetime
    expected_at: datetime | None = None
    completed_at: datetime | None = None
    rating: int | None = None
    ticket_type: str | None = None
    client: str | None = None
    assigned_to: str | None = None
    sla: SLAModel | None = None
    intervention_count: int | None = None

    @classmethod
    def from_view(cls, view: TicketView) -> "PublicTicketModel":
        ticket = view.ticket
        return cls(
            ticket_number=ticket.ticket_number,
            unique_code=ticket.unique_code,
            title=ticket.title,
            description=ticket.description,
            priority=ticket.priority.value,
            status=ticket.status.value,
            location=ticket.location,
            opened_at=ticket.opened_at,
            expected_at=ticket.expected_at,
            completed_at=ticket.completed_at,
            rating=ticket.rating,
            ticket_type=view.ticket_type.name if view.ticket_type else None,
            client=view.client.name if view.client else None,
            assigned_to=view.assigned_to.full_name if view.assigned_to else None,
            sla=SLAModel.from_snapshot(view.sla),
            intervention_count=view.intervention_count,
        )


class PublicReceiptModel(ApiModel):
    id: int
    ticket_number: str
    unique_code: str

    @classmethod
    def from_receipt(cls, receipt: PublicTicketReceipt) -> "PublicReceiptModel":
        return cls(id=receipt.id, ticket_number=receipt.ticket_number, unique_code=receipt.unique_code)


class TicketCreateRequest(ApiModel):
    ticket_type_id: int
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority: str = "medium"
    requester_id: int | None = None
    client_id: int | None = None
    equipment_id: int | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None
    status: str | None = None
    assigned_to_id: int | None = None
    location: str | None = None
    expected_at: datetime | None = None


class TicketUpdateRequest(ApiModel):
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    assigned_to_id: int | None = None
    location: str | None = None
    expected_at: datetime | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None


class CloseRequest(ApiModel):
    resolution: str | None = None
    notes: str | None = None


class ReopenRequest(ApiModel):
    reason: str


class CommentRequest(ApiModel):
    comment: str
    is_internal: bool = False
    attachment_ids: list[int] = Field(default_factory=list)


class RatingRequest(ApiModel):
    rating: int
    feedback: str | None = None


class PublicCreateRequest(ApiModel):
    ticket_type_id: int
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority: str = "medium"
    client_id: int | None = None
    location: str | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None


class PublicCloseRequest(ApiModel):
    reason: str | None = None


class PublicRatingRequest(ApiModel):
    rating: int
    comment: str | None = None


# ---------------------------------------------------------------- activity


class ActivityModel(ApiModel):
    id: int
    ticket_id: int
    activity_type: str
    label: str
    user_id: int | None = None
    user_name: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: Activity) -> "ActivityModel":
        return cls(
            id=entity.id,
            ticket_id=entity.ticket_id,
            activity_type=entity.activity_type,
            label=entity.label,
            user_id=entity.user_id,
            user_name=entity.user_name,
            description=entity.description,
            metadata=_plain(entity.metadata),
            created_at=entity.created_at,
        )


class ActivityStatisticsModel(ApiModel):
    by_type: dict[str, int]
    recent: list[ActivityModel]

    @classmethod
    def from_entity(cls, entity: ActivityStatistics) -> "ActivityStatisticsModel":
        return cls(
            by_type=dict(entity.by_type),
            recent=[ActivityModel.from_entity(item) for item in entity.recent],
        )


# ------------------------------------------------------------ ticket types


class TicketTypeModel(ApiModel):
    id: int
    name: str
    description: str | None = None
    sla_hours: int | None = None
    icon: str | None = None
    color: str | None = None
    created_at: datetime
    updated_at: datetime
    ticket_count: int = 0
    open_tickets: int | None = None

    @classmethod
    def from_entity(cls, entity: TicketType) -> "TicketTypeModel":
        return cls.model_validate(entity)


class PublicTicketTypeModel(ApiModel):
    id: int
    name: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None

    @classmethod
    def from_entity(cls, entity: TicketType) -> "PublicTicketTypeModel":
        return cls.model_validate(entity)


class TicketTypeCreateRequest(ApiModel):
    name: str = Field(min_length=1)
    description: str | None = None
    sla_hours: int | None = None
    icon: str | None = None
    color: str | None = None


class TicketTypeUpdateRequest(ApiModel):
    name: str | None = None
    description: str | None = None
    sla_hours: int | None = None
    icon: str | None = None
    color: str | None = None


class TicketTypeStatisticsModel(ApiModel):
    total_types: int
    active_types: int
    types_with_sla: int
    avg_sla_hours: float | None = None

    @classmethod
    def from_entity(cls, entity: TicketTypeStatistics) -> "TicketTypeStatisticsModel":
        return cls.model_validate(entity)


# ----------------------------------------------------------- interventions


class CostModel(ApiModel):
    id: int
    description: str
    cost_type: str
    quantity: float
    unit_price: float
    total_price: float
    notes: str | None = None
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: InterventionCost) -> "CostModel":
        return cls(
            id=entity.id,
            description=entity.description,
            cost_type=entity.cost_type.value,
            quantity=float(entity.quantity),
            unit_price=float(entity.unit_price),
            total_price=float(entity.total_price),
            notes=entity.notes,
            created_at=entity.created_at,
        )


class InterventionModel(ApiModel):
    id: int
    ticket_id: int
    ticket_number: str | None = None
    ticket_title: str | None = None
    technician_id: int
    technician_name: str | None = None
    type: str
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = None
    status: str
    notes: str | None = None
    costs: list[CostModel] = Field(default_factory=list)
    total_cost: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Intervention) -> "InterventionModel":
        return cls(
            id=entity.id,
            ticket_id=entity.ticket_id,
            ticket_number=entity.ticket_number,
            ticket_title=entity.ticket_title,
            technician_id=entity.technician_id,
            technician_name=entity.technician_name,
            type=entity.intervention_type.value,
            description=entity.description,
            start_time=entity.start_time,
            end_time=entity.end_time,
            duration_minutes=entity.duration_minutes,
            status=entity.status.value,
            notes=entity.notes,
            costs=[CostModel.from_entity(line) for line in entity.costs],
            total_cost=float(entity.total_cost),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class PublicInterventionModel(ApiModel):
    type: str
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration_minutes: int | None = None
    status: str
    technician_name: str | None = None

    @classmethod
    def from_entity(cls, entity: Intervention) -> "PublicInterventionModel":
        return cls(
            type=entity.intervention_type.value,
            description=entity.description,
            start_time=entity.start_time,
            end_time=entity.end_time,
            duration_minutes=entity.duration_minutes,
            status=entity.status.value,
            technician_name=entity.technician_name,
        )


class InterventionCreateRequest(ApiModel):
    ticket_id: int
    technician_id: int | None = None
    type: str = "maintenance"
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int | None = None
    status: str = "pending"
    notes: str | None = None
    labor_cost: Decimal | None = None
    parts_cost: Decimal | None = None


class InterventionUpdateRequest(ApiModel):
    type: str | None = None
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int | None = None
    status: str | None = None
    notes: str | None = None


class CostCreateRequest(ApiModel):
    description: str
    cost_type: str = "other"
    quantity: Decimal = Decimal(1)
    unit_price: Decimal
    total_price: Decimal | None = None
    notes: str | None = None


class TypeSummaryModel(ApiModel):
    type: str
    count: int
    avg_duration_minutes: float | None = None
    total_cost: float


class TechnicianSummaryModel(ApiModel):
    technician_id: int
    full_name: str | None = None
    intervention_count: int
    avg_duration_minutes: float | None = None
    total_cost: float


class InterventionStatisticsModel(ApiModel):
    overview: dict[str, Any]
    by_type: list[TypeSummaryModel]
    top_technicians: list[TechnicianSummaryModel]

    @classmethod
    def from_entity(cls, entity: InterventionStatistics) -> "InterventionStatisticsModel":
        return cls(
            overview=_plain(entity.overview),
            by_type=[
                TypeSummaryModel(
                    type=item.intervention_type,
                    count=item.count,
                    avg_duration_minutes=item.avg_duration_minutes,
                    total_cost=float(item.total_cost),
                )
                for item in entity.by_type
            ],
            top_technicians=[
                TechnicianSummaryModel(
                    technician_id=item.technician_id,
                    full_name=item.full_name,
                    intervention_count=item.intervention_count,
                    avg_duration_minutes=item.avg_duration_minutes,
                    total_cost=float(item.total_cost),
                )
                for item in entity.top_technicians
            ],
        )


# --------------------------------------------------------------- dashboard


class CountBucketModel(ApiModel):
    key: str
    label: str | None = None
    count: int


class AssigneeSummaryModel(ApiModel):
    user_id: int
    full_name: str | None = None
    ticket_count: int
    closed_count: int
    avg_resolution_hours: float | None = None
    avg_rating: float | None = None


class DashboardModel(ApiModel):
    overview: dict[str, Any]
    by_status: list[CountBucketModel]
    by_priority: list[CountBucketModel]
    by_type: list[CountBucketModel]
    top_assignees: list[AssigneeSummaryModel]
    sla: dict[str, int]

    @classmethod
    def from_entity(cls, entity: DashboardStatistics) -> "DashboardModel":
        return cls(
            overview=_plain(entity.overview),
            by_status=[CountBucketModel.model_validate(item) for item in entity.by_status],
            by_priority=[CountBucketModel.model_validate(item) for item in entity.by_priority],
            by_type=[CountBucketModel.model_validate(item) for item in entity.by_type],
            top_assignees=[AssigneeSummaryModel.model_validate(item) for item in entity.top_assignees],
            sla=dict(entity.sla),
        )
