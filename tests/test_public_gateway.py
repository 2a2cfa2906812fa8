from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import update

from supportdesk.db.models import UserTable
from supportdesk.support.errors import (
    ConflictError,
    DependencyFailureError,
    ReferenceNotFoundError,
    TicketNotFoundError,
    ValidationFailure,
)
from supportdesk.support.models import InterventionDraft, TicketPriority
from supportdesk.support.public import PublicTicketRequest
from supportdesk.support.state import TicketStatus

from .conftest import ADMIN_ID, HARDWARE_TYPE_ID, PUBLIC_USER_ID, START, TECHNICIAN_ID


def _request(**overrides) -> PublicTicketRequest:
    values = dict(
        ticket_type_id=HARDWARE_TYPE_ID,
        title="Screen flickers",
        description="Reception monitor flickers every few seconds",
        priority=TicketPriority.LOW,
    )
    values.update(overrides)
    return PublicTicketRequest(**values)


@pytest.mark.asyncio
async def test_public_intake_returns_receipt_and_uses_public_requester(services):
    receipt = await services.public.create_public(_request())

    assert receipt.ticket_number == "TKT000001"
    assert len(receipt.unique_code) == 10

    view = await services.public.get_by_code(receipt.unique_code.lower())
    assert view.ticket.id == receipt.id
    assert view.ticket.requester_id == PUBLIC_USER_ID

    timeline = await services.activities.get_timeline(receipt.id)
    assert [item.activity_type for item in timeline] == ["created"]
    assert timeline[0].description == "Ticket created via public portal"


@pytest.mark.asyncio
async def test_public_intake_falls_back_to_configured_user(services, session_factory):
    async with session_factory() as session:
        async with session.begin():
            await session.execute(
                update(UserTable).where(UserTable.id == PUBLIC_USER_ID).values(deleted_at=START)
            )

    receipt = await services.public.create_public(_request())
    view = await services.public.get_by_code(receipt.unique_code)

    assert view.ticket.requester_id == ADMIN_ID


@pytest.mark.asyncio
async def test_public_intake_without_any_requester_fails(services, session_factory):
    async with session_factory() as session:
        async with session.begin():
            await session.execute(update(UserTable).values(deleted_at=START))

    with pytest.raises(DependencyFailureError):
        await services.public.create_public(_request())


@pytest.mark.asyncio
async def test_public_intake_rejects_unknown_type_and_client(services):
    with pytest.raises(ReferenceNotFoundError):
        await services.public.create_public(_request(ticket_type_id=42))
    with pytest.raises(ReferenceNotFoundError):
        await services.public.create_public(_request(), client_id=42)


@pytest.mark.asyncio
async def test_unknown_code_is_not_found(services):
    with pytest.raises(TicketNotFoundError):
        await services.public.get_by_code("NOPE000000")


@pytest.mark.asyncio
async def test_close_rate_and_reopen_by_code(services, clock):
    receipt = await services.public.create_public(_request())
    code = receipt.unique_code

    with pytest.raises(ConflictError):
        await services.public.reopen_by_code(code, reason="not finished")

    clock.advance(hours=2)
    closed = await services.public.close_by_code(code)
    assert closed.ticket.status is TicketStatus.CLOSED
    assert closed.ticket.completed_at == clock.now

    with pytest.raises(ConflictError):
        await services.public.close_by_code(code)
    with pytest.raises(ValidationFailure):
        await services.public.rate_by_code(code, rating=0)

    rated = await services.public.rate_by_code(code, rating=5, comment="Thanks")
    assert rated.ticket.rating == 5

    reopened = await services.public.reopen_by_code(code, reason="Flickering again")
    assert reopened.ticket.status is TicketStatus.REOPENED
    assert reopened.ticket.completed_at is None

    timeline = await services.activities.get_timeline(receipt.id)
    closed_entry = next(item for item in timeline if item.activity_type == "closed")
    assert closed_entry.description == "Closed by requester"
    assert {item.user_id for item in timeline} == {PUBLIC_USER_ID}


@pytest.mark.asyncio
async def test_public_lists_interventions_and_active_types(services):
    receipt = await services.public.create_public(_request())
    await services.interventions.create_intervention(
        InterventionDraft(ticket_id=receipt.id, technician_id=TECHNICIAN_ID, parts_cost=Decimal("8")),
        actor_id=TECHNICIAN_ID,
    )
    await services.ticket_types.create_type(name="Retired", sla_hours=4)
    retired = next(item for item in await services.ticket_types.list_types() if item.name == "Retired")
    await services.ticket_types.delete_type(retired.id)

    interventions = await services.public.get_interventions_by_code(receipt.unique_code)
    types = await services.public.list_ticket_types()

    assert len(interventions) == 1
    assert interventions[0].technician_name == "Rui Tecnico"
    assert [item.name for item in types] == ["General", "Hardware"]


@pytest.mark.asyncio
async def test_public_intake_without_client_leaves_client_empty(services):
    receipt = await services.public.create_public(_request())
    view = await services.public.get_by_code(receipt.unique_code)

    assert view.ticket.client_id is None
    assert view.client is None


@pytest.mark.asyncio
async def test_close_by_code_can_run_again_after_reopen(services):
    receipt = await services.public.create_public(_request())
    code = receipt.unique_code
    await services.public.close_by_code(code, reason="Fixed itself")

    with pytest.raises(ConflictError, match="already closed"):
        await services.public.close_by_code(code)

    reopened = await services.public.reopen_by_code(code, reason="Back again")
    closed_again = await services.public.close_by_code(code)

    assert reopened.ticket.completed_at is None
    assert closed_again.ticket.status is TicketStatus.CLOSED
    assert closed_again.ticket.completed_at is not None


@pytest.mark.asyncio
async def test_rating_by_code_needs_completed_ticket(services):
    receipt = await services.public.create_public(_request())
    code = receipt.unique_code

    with pytest.raises(ConflictError):
        await services.public.rate_by_code(code, rating=5)

    await services.public.close_by_code(code)
    await services.public.rate_by_code(code, rating=5)

    assert (await services.public.get_by_code(code)).ticket.rating == 5


@pytest.mark.asyncio
async def test_public_intake_hides_ids_when_requester_vanishes(services, monkeypatch):
    async def vanished_requester(session):
        return 999

    monkeypatch.setattr(services.public, "_resolve_requester", vanished_requester)

    with pytest.raises(ReferenceNotFoundError) as excinfo:
        await services.public.create_public(_request())

    assert "999" not in excinfo.value.message
