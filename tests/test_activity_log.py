from __future__ import annotations

import pytest

from supportdesk.support.activity import activity_label
from supportdesk.support.errors import ActivityNotFoundError, TicketNotFoundError
from supportdesk.support.models import TicketDraft, TicketPriority

from .conftest import ADMIN_ID, HARDWARE_TYPE_ID, TECHNICIAN_ID


async def _ticket(services) -> int:
    view = await services.tickets.create_ticket(
        TicketDraft(
            ticket_type_id=HARDWARE_TYPE_ID,
            title="Laptop will not boot",
            description="Black screen",
            priority=TicketPriority.HIGH,
            requester_id=ADMIN_ID,
        ),
        actor_id=ADMIN_ID,
    )
    return view.ticket.id


def test_labels_fall_back_to_raw_type():
    assert activity_label("closed") == "Ticket closed"
    assert activity_label("custom_event") == "custom_event"


@pytest.mark.asyncio
async def test_timeline_is_newest_first_with_user_names(services, clock):
    ticket_id = await _ticket(services)
    clock.advance(minutes=5)
    await services.tickets.update_ticket(ticket_id, {"assigned_to_id": TECHNICIAN_ID}, actor_id=ADMIN_ID)
    clock.advance(minutes=5)
    await services.tickets.add_comment(ticket_id, comment="Checking battery", actor_id=TECHNICIAN_ID)

    timeline = await services.activities.get_timeline(ticket_id)

    assert [item.activity_type for item in timeline] == ["comment_added", "assigned", "created"]
    assert timeline[0].user_name == "Rui Tecnico"
    assert timeline[1].metadata == {"from": None, "to": TECHNICIAN_ID}
    assert timeline[2].label == "Ticket created"


@pytest.mark.asyncio
async def test_timeline_for_missing_ticket(services):
    with pytest.raises(TicketNotFoundError):
        await services.activities.get_timeline(404)


@pytest.mark.asyncio
async def test_statistics_by_type_and_user(services):
    ticket_id = await _ticket(services)
    await services.tickets.add_comment(ticket_id, comment="one", actor_id=TECHNICIAN_ID)
    await services.tickets.add_comment(ticket_id, comment="two", actor_id=TECHNICIAN_ID)

    overall = await services.activities.get_statistics()
    technician = await services.activities.get_statistics(user_id=TECHNICIAN_ID)

    assert list(overall.by_type.items()) == [("comment_added", 2), ("created", 1)]
    assert technician.by_type == {"comment_added": 2}
    assert len(technician.recent) == 2


@pytest.mark.asyncio
async def test_delete_activity(services):
    ticket_id = await _ticket(services)
    entry = await services.tickets.add_comment(ticket_id, comment="typo", actor_id=ADMIN_ID)

    await services.activities.delete(entry.id)

    assert await services.activities.get_comments(ticket_id, include_internal=True) == []
    with pytest.raises(ActivityNotFoundError):
        await services.activities.delete(entry.id)
