from fastapi import APIRouter

from supportdesk.dependencies.auth import CurrentPrincipal
from supportdesk.dependencies.support import TenantStoreDep

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/tenant", summary="Round trip to the caller's tenant database")
async def tenant_ping(principal: CurrentPrincipal, store: TenantStoreDep) -> dict[str, str | int]:
    await store.check(principal.tenant_id)
    return {"status": "ok", "tenantId": principal.tenant_id}
