from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from supportdesk.api.schemas import (
    TicketTypeCreateRequest,
    TicketTypeModel,
    TicketTypeStatisticsModel,
    TicketTypeUpdateRequest,
)
from supportdesk.dependencies.auth import CanManage, CanView
from supportdesk.dependencies.support import SupportServicesDep

router = APIRouter(prefix="/support/ticket-types", tags=["ticket-types"])


@router.get("", response_model=list[TicketTypeModel])
async def list_ticket_types(
    services: SupportServicesDep,
    _: CanView,
    include_deleted: Annotated[bool, Query(alias="includeDeleted")] = False,
) -> list[TicketTypeModel]:
    types = await services.ticket_types.list_types(active_only=not include_deleted)
    return [TicketTypeModel.from_entity(item) for item in types]


@router.get("/statistics", response_model=TicketTypeStatisticsModel)
async def ticket_type_statistics(services: SupportServicesDep, _: CanView) -> TicketTypeStatisticsModel:
    return TicketTypeStatisticsModel.from_entity(await services.ticket_types.get_statistics())


@router.get("/{type_id}", response_model=TicketTypeModel)
async def get_ticket_type(type_id: int, services: SupportServicesDep, _: CanView) -> TicketTypeModel:
    return TicketTypeModel.from_entity(await services.ticket_types.get_type(type_id))


@router.post("", response_model=TicketTypeModel, status_code=status.HTTP_201_CREATED)
async def create_ticket_type(
    payload: TicketTypeCreateRequest, services: SupportServicesDep, _: CanManage
) -> TicketTypeModel:
    created = await services.ticket_types.create_type(
        name=payload.name,
        description=payload.description,
        sla_hours=payload.sla_hours,
        icon=payload.icon,
        color=payload.color,
    )
    return TicketTypeModel.from_entity(created)


@router.patch("/{type_id}", response_model=TicketTypeModel)
async def update_ticket_type(
    type_id: int,
    payload: TicketTypeUpdateRequest,
    services: SupportServicesDep,
    _: CanManage,
) -> TicketTypeModel:
    updated = await services.ticket_types.update_type(type_id, payload.model_dump(exclude_unset=True))
    return TicketTypeModel.from_entity(updated)


@router.delete("/{type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket_type(type_id: int, services: SupportServicesDep, _: CanManage) -> None:
    await services.ticket_types.delete_type(type_id)
