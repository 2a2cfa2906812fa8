"""Unauthenticated routes addressed by a ticket's public access code."""

from __future__ import annotations

from fastapi import APIRouter, status

from supportdesk.api.schemas import (
    PublicCloseRequest,
    PublicCreateRequest,
    PublicInterventionModel,
    PublicRatingRequest,
    PublicReceiptModel,
    PublicTicketModel,
    PublicTicketTypeModel,
    ReopenRequest,
)
from supportdesk.dependencies.support import PublicServicesDep
from supportdesk.support.models import TicketPriority
from supportdesk.support.public import PublicTicketRequest
from supportdesk.support.utils import coerce_enum

router = APIRouter(prefix="/public/support", tags=["public"])


@router.get("/ticket-types", response_model=list[PublicTicketTypeModel])
async def list_public_ticket_types(services: PublicServicesDep) -> list[PublicTicketTypeModel]:
    return [PublicTicketTypeModel.from_entity(item) for item in await services.public.list_ticket_types()]


@router.post("/tickets", response_model=PublicReceiptModel, status_code=status.HTTP_201_CREATED)
async def create_public_ticket(payload: PublicCreateRequest, services: PublicServicesDep) -> PublicReceiptModel:
    request = PublicTicketRequest(
        ticket_type_id=payload.ticket_type_id,
        title=payload.title,
        description=payload.description,
        priority=coerce_enum(TicketPriority, payload.priority, "priority"),
        location=payload.location,
        equipment_serial_number=payload.equipment_serial_number,
        equipment_description=payload.equipment_description,
    )
    receipt = await services.public.create_public(request, client_id=payload.client_id)
    return PublicReceiptModel.from_receipt(receipt)


@router.get("/tickets/{code}", response_model=PublicTicketModel)
async def get_ticket_by_code(code: str, services: PublicServicesDep) -> PublicTicketModel:
    return PublicTicketModel.from_view(await services.public.get_by_code(code))


@router.get("/tickets/{code}/interventions", response_model=list[PublicInterventionModel])
async def get_interventions_by_code(code: str, services: PublicServicesDep) -> list[PublicInterventionModel]:
    interventions = await services.public.get_interventions_by_code(code)
    return [PublicInterventionModel.from_entity(item) for item in interventions]


@router.post("/tickets/{code}/reopen", response_model=PublicTicketModel)
async def reopen_by_code(code: str, payload: ReopenRequest, services: PublicServicesDep) -> PublicTicketModel:
    return PublicTicketModel.from_view(await services.public.reopen_by_code(code, reason=payload.reason))


@router.post("/tickets/{code}/close", response_model=PublicTicketModel)
async def close_by_code(code: str, payload: PublicCloseRequest, services: PublicServicesDep) -> PublicTicketModel:
    return PublicTicketModel.from_view(await services.public.close_by_code(code, reason=payload.reason))


@router.post("/tickets/{code}/rating", response_model=PublicTicketModel)
async def rate_by_code(code: str, payload: PublicRatingRequest, services: PublicServicesDep) -> PublicTicketModel:
    view = await services.public.rate_by_code(code, rating=payload.rating, comment=payload.comment)
    return PublicTicketModel.from_view(view)
