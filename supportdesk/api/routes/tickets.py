from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from supportdesk.api.schemas import (
    ActivityModel,
    CloseRequest,
    CommentRequest,
    PageModel,
    RatingRequest,
    ReopenRequest,
    TicketCreateRequest,
    TicketModel,
    TicketUpdateRequest,
    paginated,
)
from supportdesk.dependencies.auth import CanCreate, CanDelete, CanUpdate, CanView
from supportdesk.dependencies.support import SupportServicesDep
from supportdesk.support.models import TicketDraft, TicketPriority
from supportdesk.support.pagination import PageRequest
from supportdesk.support.sla import SLAStatus
from supportdesk.support.state import TicketStatus
from supportdesk.support.tickets import TicketFilters
from supportdesk.support.utils import coerce_enum

router = APIRouter(prefix="/support/tickets", tags=["tickets"])


@router.get("", response_model=list[TicketModel] | PageModel[TicketModel], summary="List tickets")
async def list_tickets(
    services: SupportServicesDep,
    _: CanView,
    page: int | None = None,
    page_size: Annotated[int | None, Query(alias="pageSize")] = None,
    ticket_type_id: Annotated[int | None, Query(alias="ticketTypeId")] = None,
    client_id: Annotated[int | None, Query(alias="clientId")] = None,
    ticket_status: Annotated[str | None, Query(alias="status")] = None,
    priority: str | None = None,
    assigned_to_id: Annotated[int | None, Query(alias="assignedToId")] = None,
    requester_id: Annotated[int | None, Query(alias="requesterId")] = None,
    equipment_id: Annotated[int | None, Query(alias="equipmentId")] = None,
    search: str | None = None,
    overdue: bool = False,
    sla_status: Annotated[str | None, Query(alias="slaStatus")] = None,
):
    filters = TicketFilters(
        ticket_type_id=ticket_type_id,
        client_id=client_id,
        status=coerce_enum(TicketStatus, ticket_status, "status") if ticket_status else None,
        priority=coerce_enum(TicketPriority, priority, "priority") if priority else None,
        assigned_to_id=assigned_to_id,
        requester_id=requester_id,
        equipment_id=equipment_id,
        search=search,
        overdue_only=overdue,
        sla_status=coerce_enum(SLAStatus, sla_status, "SLA status") if sla_status else None,
    )
    result = await services.tickets.list_tickets(filters, paging=PageRequest.from_params(page, page_size))
    return paginated(result, TicketModel.from_view)


@router.get("/{ticket_id}", response_model=TicketModel)
async def get_ticket(ticket_id: int, services: SupportServicesDep, _: CanView) -> TicketModel:
    return TicketModel.from_view(await services.tickets.get_ticket(ticket_id))


@router.post("", response_model=TicketModel, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    services: SupportServicesDep,
    principal: CanCreate,
) -> TicketModel:
    draft = TicketDraft(
        ticket_type_id=payload.ticket_type_id,
        title=payload.title,
        description=payload.description,
        priority=coerce_enum(TicketPriority, payload.priority, "priority"),
        requester_id=payload.requester_id or principal.user_id,
        client_id=payload.client_id,
        equipment_id=payload.equipment_id,
        equipment_serial_number=payload.equipment_serial_number,
        equipment_description=payload.equipment_description,
        status=coerce_enum(TicketStatus, payload.status, "status") if payload.status else None,
        assigned_to_id=payload.assigned_to_id,
        location=payload.location,
        expected_at=payload.expected_at,
    )
    view = await services.tickets.create_ticket(draft, actor_id=principal.user_id)
    return TicketModel.from_view(view)


@router.patch("/{ticket_id}", response_model=TicketModel)
async def update_ticket(
    ticket_id: int,
    payload: TicketUpdateRequest,
    services: SupportServicesDep,
    principal: CanUpdate,
) -> TicketModel:
    view = await services.tickets.update_ticket(
        ticket_id, payload.model_dump(exclude_unset=True), actor_id=principal.user_id
    )
    return TicketModel.from_view(view)


@router.post("/{ticket_id}/close", response_model=TicketModel)
async def close_ticket(
    ticket_id: int,
    payload: CloseRequest,
    services: SupportServicesDep,
    principal: CanUpdate,
) -> TicketModel:
    view = await services.tickets.close_ticket(
        ticket_id, resolution=payload.resolution, notes=payload.notes, actor_id=principal.user_id
    )
    return TicketModel.from_view(view)


@router.post("/{ticket_id}/reopen", response_model=TicketModel)
async def reopen_ticket(
    ticket_id: int,
    payload: ReopenRequest,
    services: SupportServicesDep,
    principal: CanUpdate,
) -> TicketModel:
    view = await services.tickets.reopen_ticket(ticket_id, reason=payload.reason, actor_id=principal.user_id)
    return TicketModel.from_view(view)


@router.post("/{ticket_id}/rating", response_model=TicketModel)
async def rate_ticket(
    ticket_id: int,
    payload: RatingRequest,
    services: SupportServicesDep,
    principal: CanUpdate,
) -> TicketModel:
    view = await services.tickets.rate_ticket(
        ticket_id, rating=payload.rating, feedback=payload.feedback, actor_id=principal.user_id
    )
    return TicketModel.from_view(view)


@router.post("/{ticket_id}/comments", response_model=ActivityModel, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: int,
    payload: CommentRequest,
    services: SupportServicesDep,
    principal: CanUpdate,
) -> ActivityModel:
    entry = await services.tickets.add_comment(
        ticket_id,
        comment=payload.comment,
        actor_id=principal.user_id,
        is_internal=payload.is_internal,
        attachment_ids=payload.attachment_ids,
    )
    return ActivityModel.from_entity(entry)


@router.get("/{ticket_id}/comments", response_model=list[ActivityModel])
async def list_comments(
    ticket_id: int,
    services: SupportServicesDep,
    _: CanView,
    include_internal: Annotated[bool, Query(alias="includeInternal")] = False,
) -> list[ActivityModel]:
    comments = await services.activities.get_comments(ticket_id, include_internal=include_internal)
    return [ActivityModel.from_entity(item) for item in comments]


@router.get("/{ticket_id}/timeline", response_model=list[ActivityModel])
async def get_timeline(ticket_id: int, services: SupportServicesDep, _: CanView) -> list[ActivityModel]:
    return [ActivityModel.from_entity(item) for item in await services.activities.get_timeline(ticket_id)]


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: int, services: SupportServicesDep, _: CanDelete) -> None:
    await services.tickets.delete_ticket(ticket_id)
