from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Sequence

from .sla import SLASnapshot
from .state import TicketStatus


class TicketPriority(str, Enum):
    """Ticket priorities, declared from least to most severe."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"

    @classmethod
    def by_severity(cls) -> list["TicketPriority"]:
        return list(reversed(list(cls)))


URGENT_PRIORITIES = frozenset({TicketPriority.URGENT, TicketPriority.CRITICAL})


class ActivityType(str, Enum):
    """Kinds of entries written to the ticket timeline."""

    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    COMMENT_ADDED = "comment_added"
    ATTACHMENT_ADDED = "attachment_added"
    INTERVENTION_ADDED = "intervention_added"
    CUSTOMER_RESPONSE = "customer_response"
    TECHNICIAN_RESPONSE = "technician_response"
    CLOSED = "closed"
    REOPENED = "reopened"
    RATED = "rated"
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"


class InterventionType(str, Enum):
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    INSPECTION = "inspection"
    OTHER = "other"


class InterventionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CostType(str, Enum):
    LABOR = "labor"
    PART = "part"
    TRAVEL = "travel"
    OTHER = "other"


@dataclass(slots=True)
class TicketType:
    """Ticket category with its SLA budget."""

    id: int
    name: str
    description: str | None
    sla_hours: int | None
    icon: str | None
    color: str | None
    created_at: datetime
    updated_at: datetime
    ticket_count: int = 0
    open_tickets: int | None = None


@dataclass(slots=True)
class TicketTypeRef:
    id: int
    name: str
    sla_hours: int | None
    icon: str | None = None
    color: str | None = None


@dataclass(slots=True)
class UserRef:
    id: int
    full_name: str
    email: str | None = None


@dataclass(slots=True)
class ClientRef:
    id: int
    name: str
    code: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(slots=True)
class EquipmentRef:
    id: int
    name: str
    serial_number: str | None = None


@dataclass(slots=True)
class Ticket:
    """Persisted ticket fields."""

    id: int
    ticket_number: str
    unique_code: str
    ticket_type_id: int
    client_id: int | None
    equipment_id: int | None
    equipment_serial_number: str | None
    equipment_description: str | None
    title: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    requester_id: int
    assigned_to_id: int | None
    location: str | None
    opened_at: datetime
    expected_at: datetime | None
    completed_at: datetime | None
    rating: int | None
    rating_comment: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class TicketView:
    """Ticket joined with its catalogue references and derived SLA snapshot."""

    ticket: Ticket
    ticket_type: TicketTypeRef | None
    client: ClientRef | None
    requester: UserRef | None
    assigned_to: UserRef | None
    equipment: EquipmentRef | None
    sla: SLASnapshot | None
    intervention_count: int | None = None
    comment_count: int | None = None
    total_intervention_cost: Decimal | None = None


@dataclass(slots=True)
class TicketDraft:
    """Input for ticket creation, shared by the authenticated and public paths."""

    ticket_type_id: int
    title: str
    description: str
    priority: TicketPriority
    requester_id: int
    client_id: int | None = None
    equipment_id: int | None = None
    equipment_serial_number: str | None = None
    equipment_description: str | None = None
    status: TicketStatus | None = None
    assigned_to_id: int | None = None
    location: str | None = None
    expected_at: datetime | None = None


@dataclass(slots=True)
class PublicTicketReceipt:
    """The only data handed back to anonymous callers after intake."""

    id: int
    ticket_number: str
    unique_code: str


@dataclass(slots=True)
class Activity:
    id: int
    ticket_id: int
    activity_type: str
    user_id: int | None
    user_name: str | None
    description: str | None
    metadata: Mapping[str, Any]
    created_at: datetime
    label: str = ""


@dataclass(slots=True)
class ActivityStatistics:
    by_type: Mapping[str, int]
    recent: Sequence[Activity]


@dataclass(slots=True)
class InterventionCost:
    id: int
    intervention_id: int
    description: str
    cost_type: CostType
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    notes: str | None
    created_at: datetime


@dataclass(slots=True)
class Intervention:
    """Technician work session with its cost lines."""

    id: int
    ticket_id: int
    technician_id: int
    intervention_type: InterventionType
    description: str | None
    start_time: datetime
    end_time: datetime | None
    duration_minutes: int | None
    status: InterventionStatus
    notes: str | None
    created_at: datetime
    updated_at: datetime
    technician_name: str | None = None
    ticket_number: str | None = None
    ticket_title: str | None = None
    costs: list[InterventionCost] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((line.total_price for line in self.costs), Decimal("0"))


@dataclass(slots=True)
class InterventionDraft:
    ticket_id: int
    technician_id: int
    intervention_type: InterventionType = InterventionType.MAINTENANCE
    description: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_minutes: int | None = None
    status: InterventionStatus = InterventionStatus.PENDING
    notes: str | None = None
    labor_cost: Decimal | None = None
    parts_cost: Decimal | None = None


@dataclass(slots=True)
class CostLineDraft:
    description: str
    cost_type: CostType
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal | None = None
    notes: str | None = None


@dataclass(slots=True)
class CountBucket:
    key: str
    label: str | None
    count: int


@dataclass(slots=True)
class AssigneeSummary:
    user_id: int
    full_name: str | None
    ticket_count: int
    closed_count: int
    avg_resolution_hours: float | None
    avg_rating: float | None


@dataclass(slots=True)
class DashboardStatistics:
    """On-demand aggregate view over a tenant's tickets."""

    overview: Mapping[str, Any]
    by_status: Sequence[CountBucket]
    by_priority: Sequence[CountBucket]
    by_type: Sequence[CountBucket]
    top_assignees: Sequence[AssigneeSummary]
    sla: Mapping[str, int]


@dataclass(slots=True)
class TechnicianSummary:
    technician_id: int
    full_name: str | None
    intervention_count: int
    avg_duration_minutes: float | None
    total_cost: Decimal


@dataclass(slots=True)
class InterventionTypeSummary:
    intervention_type: str
    count: int
    avg_duration_minutes: float | None
    total_cost: Decimal


@dataclass(slots=True)
class InterventionStatistics:
    overview: Mapping[str, Any]
    by_type: Sequence[InterventionTypeSummary]
    top_technicians: Sequence[TechnicianSummary]


@dataclass(slots=True)
class TicketTypeStatistics:
    total_types: int
    active_types: int
    types_with_sla: int
    avg_sla_hours: float | None

