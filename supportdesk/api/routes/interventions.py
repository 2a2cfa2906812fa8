from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, status

from supportdesk.api.schemas import (
    CostCreateRequest,
    CostModel,
    InterventionCreateRequest,
    InterventionModel,
    InterventionStatisticsModel,
    InterventionUpdateRequest,
    PageModel,
    paginated,
)
from supportdesk.dependencies.auth import CanDelete, CanIntervene, CanView
from supportdesk.dependencies.support import SupportServicesDep
from supportdesk.support.interventions import InterventionFilters
from supportdesk.support.models import (
    CostLineDraft,
    CostType,
    InterventionDraft,
    InterventionStatus,
    InterventionType,
)
from supportdesk.support.pagination import PageRequest
from supportdesk.support.utils import coerce_enum

router = APIRouter(prefix="/support/interventions", tags=["interventions"])


@router.get("", response_model=list[InterventionModel] | PageModel[InterventionModel])
async def list_interventions(
    services: SupportServicesDep,
    _: CanView,
    page: int | None = None,
    page_size: Annotated[int | None, Query(alias="pageSize")] = None,
    ticket_id: Annotated[int | None, Query(alias="ticketId")] = None,
    technician_id: Annotated[int | None, Query(alias="technicianId")] = None,
    equipment_id: Annotated[int | None, Query(alias="equipmentId")] = None,
    client_id: Annotated[int | None, Query(alias="clientId")] = None,
    intervention_type: Annotated[str | None, Query(alias="type")] = None,
    intervention_status: Annotated[str | None, Query(alias="status")] = None,
    start_from: Annotated[datetime | None, Query(alias="startFrom")] = None,
    start_to: Annotated[datetime | None, Query(alias="startTo")] = None,
    search: str | None = None,
):
    filters = InterventionFilters(
        ticket_id=ticket_id,
        technician_id=technician_id,
        equipment_id=equipment_id,
        client_id=client_id,
        intervention_type=(
            coerce_enum(InterventionType, intervention_type, "intervention type") if intervention_type else None
        ),
        status=(
            coerce_enum(InterventionStatus, intervention_status, "intervention status")
            if intervention_status
            else None
        ),
        start_from=start_from,
        start_to=start_to,
        search=search,
    )
    result = await services.interventions.list_interventions(
        filters, paging=PageRequest.from_params(page, page_size)
    )
    return paginated(result, InterventionModel.from_entity)


@router.get("/statistics", response_model=InterventionStatisticsModel)
async def intervention_statistics(
    services: SupportServicesDep,
    _: CanView,
    technician_id: Annotated[int | None, Query(alias="technicianId")] = None,
) -> InterventionStatisticsModel:
    stats = await services.interventions.get_statistics(technician_id=technician_id)
    return InterventionStatisticsModel.from_entity(stats)


@router.get("/{intervention_id}", response_model=InterventionModel)
async def get_intervention(
    intervention_id: int, services: SupportServicesDep, _: CanView
) -> InterventionModel:
    return InterventionModel.from_entity(await services.interventions.get_intervention(intervention_id))


@router.post("", response_model=InterventionModel, status_code=status.HTTP_201_CREATED)
async def create_intervention(
    payload: InterventionCreateRequest,
    services: SupportServicesDep,
    principal: CanIntervene,
) -> InterventionModel:
    draft = InterventionDraft(
        ticket_id=payload.ticket_id,
        technician_id=payload.technician_id or principal.user_id,
        intervention_type=coerce_enum(InterventionType, payload.type, "intervention type"),
        description=payload.description,
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration_minutes=payload.duration_minutes,
        status=coerce_enum(InterventionStatus, payload.status, "intervention status"),
        notes=payload.notes,
        labor_cost=payload.labor_cost,
        parts_cost=payload.parts_cost,
    )
    intervention = await services.interventions.create_intervention(draft, actor_id=principal.user_id)
    return InterventionModel.from_entity(intervention)


@router.patch("/{intervention_id}", response_model=InterventionModel)
async def update_intervention(
    intervention_id: int,
    payload: InterventionUpdateRequest,
    services: SupportServicesDep,
    _: CanIntervene,
) -> InterventionModel:
    changes = payload.model_dump(exclude_unset=True)
    if "type" in changes:
        changes["intervention_type"] = changes.pop("type")
    intervention = await services.interventions.update_intervention(intervention_id, changes)
    return InterventionModel.from_entity(intervention)


@router.post("/{intervention_id}/costs", response_model=CostModel, status_code=status.HTTP_201_CREATED)
async def add_cost(
    intervention_id: int,
    payload: CostCreateRequest,
    services: SupportServicesDep,
    _: CanIntervene,
) -> CostModel:
    line = CostLineDraft(
        description=payload.description,
        cost_type=coerce_enum(CostType, payload.cost_type, "cost type"),
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        total_price=payload.total_price,
        notes=payload.notes,
    )
    return CostModel.from_entity(await services.interventions.add_cost(intervention_id, line))


@router.delete("/{intervention_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_intervention(intervention_id: int, services: SupportServicesDep, _: CanDelete) -> None:
    await services.interventions.delete_intervention(intervention_id)
