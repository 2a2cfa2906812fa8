from fastapi import APIRouter

from supportdesk.api.schemas import DashboardModel
from supportdesk.dependencies.auth import CanView
from supportdesk.dependencies.support import SupportServicesDep

router = APIRouter(prefix="/support/dashboard", tags=["dashboard"])


@router.get("/statistics", response_model=DashboardModel, summary="Ticket dashboard aggregates")
async def dashboard_statistics(services: SupportServicesDep, _: CanView) -> DashboardModel:
    return DashboardModel.from_entity(await services.tickets.get_dashboard_statistics())
