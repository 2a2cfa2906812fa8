from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, status

from supportdesk.api.schemas import ActivityStatisticsModel
from supportdesk.dependencies.auth import CanManage, CanView
from supportdesk.dependencies.support import SupportServicesDep

router = APIRouter(prefix="/support/activities", tags=["activities"])


@router.get("/statistics", response_model=ActivityStatisticsModel)
async def activity_statistics(
    services: SupportServicesDep,
    _: CanView,
    user_id: Annotated[int | None, Query(alias="userId")] = None,
) -> ActivityStatisticsModel:
    return ActivityStatisticsModel.from_entity(await services.activities.get_statistics(user_id=user_id))


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_activity(activity_id: int, services: SupportServicesDep, _: CanManage) -> None:
    await services.activities.delete(activity_id)
