from __future__ import annotations

from datetime import timedelta

import pytest

from supportdesk.support.models import TicketDraft, TicketPriority

from .conftest import ADMIN_ID, GENERAL_TYPE_ID, HARDWARE_TYPE_ID, TECHNICIAN_ID


async def _create(services, *, title: str, priority=TicketPriority.MEDIUM, type_id=HARDWARE_TYPE_ID, **extra) -> int:
    view = await services.tickets.create_ticket(
        TicketDraft(
            ticket_type_id=type_id,
            title=title,
            description="Dashboard fixture",
            priority=priority,
            requester_id=ADMIN_ID,
            **extra,
        ),
        actor_id=ADMIN_ID,
    )
    return view.ticket.id


@pytest.mark.asyncio
async def test_empty_dashboard(services):
    stats = await services.tickets.get_dashboard_statistics()

    assert stats.overview["total"] == 0
    assert stats.overview["avg_resolution_hours"] is None
    assert stats.top_assignees == []
    assert all(bucket.count == 0 for bucket in stats.by_status)
    assert stats.sla == {"ok": 0, "warning": 0, "critical": 0, "breached": 0, "untracked": 0}


@pytest.mark.asyncio
async def test_dashboard_reflects_writes_immediately(services, clock):
    resolved_id = await _create(services, title="Resolved", assigned_to_id=TECHNICIAN_ID)
    await _create(services, title="Urgent", priority=TicketPriority.URGENT, expected_at=clock.now + timedelta(hours=1))
    await _create(services, title="No SLA", type_id=GENERAL_TYPE_ID)

    clock.advance(hours=4)
    await services.tickets.update_ticket(resolved_id, {"status": "resolved"}, actor_id=TECHNICIAN_ID)
    await services.tickets.rate_ticket(resolved_id, rating=4, actor_id=ADMIN_ID)

    stats = await services.tickets.get_dashboard_statistics()
    by_status = {bucket.key: bucket.count for bucket in stats.by_status}
    by_priority = {bucket.key: bucket.count for bucket in stats.by_priority}

    assert stats.overview["total"] == 3
    assert stats.overview["urgent"] == 1
    assert stats.overview["overdue"] == 1
    assert stats.overview["avg_resolution_hours"] == 4.0
    assert stats.overview["avg_rating"] == 4.0
    assert by_status["open"] == 2
    assert by_status["resolved"] == 1
    assert by_priority == {"critical": 0, "urgent": 1, "high": 0, "medium": 2, "low": 0}
    assert [bucket.label for bucket in stats.by_type] == ["Hardware", "General"]
    assert stats.sla["ok"] == 1
    assert stats.sla["untracked"] == 1

    top = stats.top_assignees[0]
    assert top.full_name == "Rui Tecnico"
    assert top.ticket_count == 1
    assert top.avg_resolution_hours == 4.0
    assert top.avg_rating == 4.0
