"""SQLModel table definitions for a tenant's support schema."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


# Catalogue tables below are owned by other back-office modules; the support
# core only reads them through joins.


class UserTable(SQLModel, table=True):
    """Back-office users (requesters, assignees, technicians)."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    full_name: str = Field(sa_column=Column(String(255), nullable=False))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class ClientTable(SQLModel, table=True):
    """Customer records."""

    __tablename__ = "clients"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    code: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    email: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    phone: str | None = Field(default=None, sa_column=Column(String(50), nullable=True))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class EquipmentTable(SQLModel, table=True):
    """Customer equipment that tickets can reference."""

    __tablename__ = "equipment"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    serial_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class TicketTypeTable(SQLModel, table=True):
    """Ticket categories carrying the SLA budget."""

    __tablename__ = "ticket_types"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    sla_hours: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    icon: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    color: str | None = Field(default=None, sa_column=Column(String(20), nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class TicketTable(SQLModel, table=True):
    """Support tickets."""

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_opened_at", "opened_at"),
    )

    id: int | None = Field(default=None, primary_key=True)
    ticket_number: str = Field(sa_column=Column(String(50), nullable=False, unique=True))
    unique_code: str = Field(sa_column=Column(String(32), nullable=False, unique=True))
    ticket_type_id: int = Field(
        sa_column=Column(Integer, ForeignKey("ticket_types.id"), nullable=False)
    )
    client_id: int | None = Field(default=None, sa_column=Column(Integer, ForeignKey("clients.id"), nullable=True))
    equipment_id: int | None = Field(
        default=None, sa_column=Column(Integer, ForeignKey("equipment.id"), nullable=True)
    )
    equipment_serial_number: str | None = Field(default=None, sa_column=Column(String(100), nullable=True))
    equipment_description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    priority: str = Field(sa_column=Column(String(20), nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    requester_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id"), nullable=False))
    assigned_to_id: int | None = Field(default=None, sa_column=Column(Integer, ForeignKey("users.id"), nullable=True))
    location: str | None = Field(default=None, sa_column=Column(String(255), nullable=True))
    opened_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    expected_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    rating: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    rating_comment: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class TicketActivityTable(SQLModel, table=True):
    """Append-only ticket timeline."""

    __tablename__ = "ticket_activities"
    __table_args__ = (Index("ix_ticket_activities_ticket_created", "ticket_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: int = Field(
        sa_column=Column(Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    )
    activity_type: str = Field(sa_column=Column(String(50), nullable=False))
    user_id: int | None = Field(default=None, sa_column=Column(Integer, ForeignKey("users.id"), nullable=True))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    metadata_: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column("metadata", JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class InterventionTable(SQLModel, table=True):
    """Technician work sessions logged against a ticket."""

    __tablename__ = "interventions"

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: int = Field(sa_column=Column(Integer, ForeignKey("tickets.id"), nullable=False))
    technician_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id"), nullable=False))
    intervention_type: str = Field(sa_column=Column("type", String(20), nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    start_time: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    end_time: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    duration_minutes: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    deleted_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class InterventionCostTable(SQLModel, table=True):
    """Itemized cost lines of an intervention."""

    __tablename__ = "intervention_costs"

    id: int | None = Field(default=None, primary_key=True)
    intervention_id: int = Field(
        sa_column=Column(Integer, ForeignKey("interventions.id", ondelete="CASCADE"), nullable=False)
    )
    description: str = Field(sa_column=Column(String(255), nullable=False))
    cost_type: str = Field(sa_column=Column(String(20), nullable=False))
    quantity: Decimal = Field(sa_column=Column(Numeric(12, 4), nullable=False))
    unit_price: Decimal = Field(sa_column=Column(Numeric(14, 4), nullable=False))
    total_price: Decimal = Field(sa_column=Column(Numeric(14, 2), nullable=False))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketSequenceTable(SQLModel, table=True):
    """Named counters used for sequential ticket numbers."""

    __tablename__ = "ticket_sequences"

    name: str = Field(primary_key=True)
    value: int = Field(default=0, sa_column=Column(Integer, nullable=False))
