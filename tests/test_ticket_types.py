from __future__ import annotations

import pytest

from supportdesk.support.errors import ConflictError, TicketTypeNotFoundError, ValidationFailure
from supportdesk.support.models import TicketDraft, TicketPriority

from .conftest import ADMIN_ID, GENERAL_TYPE_ID, HARDWARE_TYPE_ID


async def _open_ticket(services, type_id: int) -> int:
    view = await services.tickets.create_ticket(
        TicketDraft(
            ticket_type_id=type_id,
            title="Needs attention",
            description="Details",
            priority=TicketPriority.MEDIUM,
            requester_id=ADMIN_ID,
        ),
        actor_id=ADMIN_ID,
    )
    return view.ticket.id


@pytest.mark.asyncio
async def test_create_and_update_type(services):
    created = await services.ticket_types.create_type(name="  Network ", sla_hours=8, color="#00ff00")
    updated = await services.ticket_types.update_type(created.id, {"sla_hours": 12, "icon": "wifi"})

    assert created.name == "Network"
    assert updated.sla_hours == 12
    assert updated.icon == "wifi"
    assert updated.open_tickets == 0


@pytest.mark.asyncio
async def test_type_validation(services):
    with pytest.raises(ValidationFailure):
        await services.ticket_types.create_type(name=" ")
    with pytest.raises(ValidationFailure):
        await services.ticket_types.create_type(name="Zero", sla_hours=0)
    with pytest.raises(ValidationFailure):
        await services.ticket_types.update_type(HARDWARE_TYPE_ID, {"deleted_at": None})


@pytest.mark.asyncio
async def test_list_types_counts_tickets(services):
    await _open_ticket(services, HARDWARE_TYPE_ID)
    await _open_ticket(services, HARDWARE_TYPE_ID)

    types = {item.name: item for item in await services.ticket_types.list_types()}
    hardware = await services.ticket_types.get_type(HARDWARE_TYPE_ID)

    assert types["Hardware"].ticket_count == 2
    assert types["General"].ticket_count == 0
    assert hardware.ticket_count == 2
    assert hardware.open_tickets == 2


@pytest.mark.asyncio
async def test_delete_type_blocked_while_tickets_are_active(services):
    ticket_id = await _open_ticket(services, GENERAL_TYPE_ID)

    with pytest.raises(ConflictError):
        await services.ticket_types.delete_type(GENERAL_TYPE_ID)

    await services.tickets.close_ticket(ticket_id, resolution="done", actor_id=ADMIN_ID)
    await services.ticket_types.delete_type(GENERAL_TYPE_ID)

    with pytest.raises(TicketTypeNotFoundError):
        await services.ticket_types.get_type(GENERAL_TYPE_ID)
    all_types = await services.ticket_types.list_types(active_only=False)
    assert {item.name for item in all_types} == {"General", "Hardware"}


@pytest.mark.asyncio
async def test_type_statistics(services):
    await services.ticket_types.create_type(name="Software", sla_hours=48)

    stats = await services.ticket_types.get_statistics()

    assert stats.total_types == 3
    assert stats.active_types == 3
    assert stats.types_with_sla == 2
    assert stats.avg_sla_hours == 36.0
