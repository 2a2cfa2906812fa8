from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from supportdesk.dependencies import support as support_deps
from supportdesk.main import create_app
from supportdesk.support.errors import ConflictError, InvalidTransitionError, TicketNotFoundError
from supportdesk.support.models import (
    ClientRef,
    PublicTicketReceipt,
    Ticket,
    TicketPriority,
    TicketTypeRef,
    TicketView,
    UserRef,
)
from supportdesk.support.pagination import Page
from supportdesk.support.sla import compute_sla
from supportdesk.support.state import TicketStatus

NOW = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)
HEADERS = {
    "X-Tenant-Id": "1",
    "X-User-Id": "7",
    "X-Permissions": "support.view,support.create,support.update,support.delete",
}


def _make_view(*, status: TicketStatus = TicketStatus.OPEN) -> TicketView:
    ticket = Ticket(
        id=11,
        ticket_number="TKT000011",
        unique_code="ABCDEF1234",
        ticket_type_id=1,
        client_id=1,
        equipment_id=None,
        equipment_serial_number=None,
        equipment_description=None,
        title="Printer jammed",
        description="Tray 2",
        priority=TicketPriority.HIGH,
        status=status,
        requester_id=7,
        assigned_to_id=None,
        location=None,
        opened_at=NOW - timedelta(hours=2),
        expected_at=None,
        completed_at=None,
        rating=None,
        rating_comment=None,
        created_at=NOW,
        updated_at=NOW,
    )
    return TicketView(
        ticket=ticket,
        ticket_type=TicketTypeRef(id=1, name="Hardware", sla_hours=24),
        client=ClientRef(id=1, name="Acme Lda"),
        requester=UserRef(id=7, full_name="Ana Admin", email="ana@example.com"),
        assigned_to=None,
        equipment=None,
        sla=compute_sla(ticket.opened_at, 24, None, NOW),
        intervention_count=1,
        comment_count=0,
        total_intervention_cost=Decimal("12.50"),
    )


@pytest.fixture
def api_client():
    app = create_app()
    services = SimpleNamespace(
        tickets=AsyncMock(),
        interventions=AsyncMock(),
        ticket_types=AsyncMock(),
        activities=AsyncMock(),
        public=AsyncMock(),
    )

    async def override_services():
        return services

    app.dependency_overrides[support_deps.get_support_services] = override_services
    app.dependency_overrides[support_deps.get_public_services] = override_services

    client = TestClient(app)
    try:
        yield client, services
    finally:
        app.dependency_overrides.clear()


def test_ping_is_public(api_client):
    client, _ = api_client

    assert client.get("/ping").json() == {"status": "ok"}


def test_get_ticket_renders_camel_case_and_money(api_client):
    client, services = api_client
    services.tickets.get_ticket.return_value = _make_view()

    response = client.get("/support/tickets/11", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["ticketNumber"] == "TKT000011"
    assert body["ticketType"]["name"] == "Hardware"
    assert body["sla"]["status"] == "ok"
    assert body["sla"]["remainingMinutes"] == 22 * 60
    assert body["sla"]["isBreached"] is False
    assert body["totalInterventionCost"] == 12.5
    services.tickets.get_ticket.assert_awaited_once_with(11)


def test_list_tickets_paginates_only_with_both_params(api_client):
    client, services = api_client
    view = _make_view()
    services.tickets.list_tickets.return_value = [view]

    bare = client.get("/support/tickets", headers=HEADERS)
    assert isinstance(bare.json(), list)
    _, kwargs = services.tickets.list_tickets.await_args
    assert kwargs["paging"] is None

    services.tickets.list_tickets.return_value = Page(data=[view], total=3, page=2, page_size=1)
    paged = client.get("/support/tickets", params={"page": 2, "pageSize": 1, "status": "open"}, headers=HEADERS)

    assert paged.status_code == 200
    assert paged.json()["total"] == 3
    assert paged.json()["pageSize"] == 1
    assert paged.json()["totalPages"] == 3
    filters = services.tickets.list_tickets.await_args.args[0]
    assert filters.status is TicketStatus.OPEN


def test_invalid_filter_value_is_a_validation_failure(api_client):
    client, _ = api_client

    response = client.get("/support/tickets", params={"priority": "whenever"}, headers=HEADERS)

    assert response.status_code == 422
    assert response.json()["kind"] == "validation_failure"


def test_create_ticket_defaults_requester_to_principal(api_client):
    client, services = api_client
    services.tickets.create_ticket.return_value = _make_view()

    response = client.post(
        "/support/tickets",
        json={"ticketTypeId": 1, "title": "Printer jammed", "description": "Tray 2", "priority": "high"},
        headers=HEADERS,
    )

    assert response.status_code == 201
    draft = services.tickets.create_ticket.await_args.args[0]
    assert draft.requester_id == 7
    assert draft.priority is TicketPriority.HIGH
    assert services.tickets.create_ticket.await_args.kwargs["actor_id"] == 7


def test_update_passes_only_supplied_fields(api_client):
    client, services = api_client
    services.tickets.update_ticket.return_value = _make_view(status=TicketStatus.IN_PROGRESS)

    response = client.patch("/support/tickets/11", json={"status": "in_progress"}, headers=HEADERS)

    assert response.status_code == 200
    assert services.tickets.update_ticket.await_args.args == (11, {"status": "in_progress"})


def test_domain_errors_map_to_status_codes(api_client):
    client, services = api_client
    services.tickets.get_ticket.side_effect = TicketNotFoundError("Ticket 5 not found")
    services.tickets.update_ticket.side_effect = InvalidTransitionError("Invalid ticket status transition")
    services.tickets.delete_ticket.side_effect = ConflictError("Ticket has interventions")

    missing = client.get("/support/tickets/5", headers=HEADERS)
    invalid = client.patch("/support/tickets/5", json={"status": "open"}, headers=HEADERS)
    conflict = client.delete("/support/tickets/5", headers=HEADERS)

    assert (missing.status_code, missing.json()["kind"]) == (404, "not_found")
    assert (invalid.status_code, invalid.json()["kind"]) == (409, "invalid_transition")
    assert (conflict.status_code, conflict.json()["detail"]) == (409, "Ticket has interventions")


def test_storage_errors_become_dependency_failures(api_client):
    client, services = api_client
    services.tickets.get_ticket.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

    response = client.get("/support/tickets/1", headers=HEADERS)

    assert response.status_code == 503
    assert response.json() == {"kind": "dependency_failure", "detail": "Storage is temporarily unavailable"}


def test_connection_errors_become_dependency_failures(api_client):
    client, services = api_client
    services.tickets.get_ticket.side_effect = ConnectionRefusedError(111, "Connection refused")

    response = client.get("/support/tickets/1", headers=HEADERS)

    assert response.status_code == 503
    assert response.json()["kind"] == "dependency_failure"


def test_missing_permission_is_forbidden(api_client):
    client, services = api_client

    response = client.post(
        "/support/ticket-types",
        json={"name": "Network"},
        headers={**HEADERS, "X-Permissions": "support.view"},
    )

    assert response.status_code == 403
    services.ticket_types.create_type.assert_not_awaited()


def test_authenticated_routes_require_identity(api_client):
    client, _ = api_client

    assert client.get("/support/tickets").status_code == 401


def test_public_create_returns_only_receipt(api_client):
    client, services = api_client
    services.public.create_public.return_value = PublicTicketReceipt(
        id=11, ticket_number="TKT000011", unique_code="ABCDEF1234"
    )

    response = client.post(
        "/public/support/tickets",
        params={"tenantId": 1},
        json={"ticketTypeId": 1, "title": "Screen", "description": "Flickers"},
    )

    assert response.status_code == 201
    assert response.json() == {"id": 11, "ticketNumber": "TKT000011", "uniqueCode": "ABCDEF1234"}


def test_public_lookup_hides_internal_identities(api_client):
    client, services = api_client
    view = _make_view()
    view.sla = compute_sla(NOW - timedelta(hours=30), 24, None, NOW)
    services.public.get_by_code.return_value = view

    response = client.get("/public/support/tickets/abcdef1234", params={"tenantId": 1})

    body = response.json()
    assert response.status_code == 200
    assert body["ticketNumber"] == "TKT000011"
    assert "requester" not in body
    assert "id" not in body
    assert body["sla"]["status"] == "breached"
    assert body["sla"]["isBreached"] is True
    services.public.get_by_code.assert_awaited_once_with("abcdef1234")
