"""Wire tenant-bound support services into request handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Query, Request

from supportdesk.core.config import Settings, get_settings
from supportdesk.services.tenancy import TenantDataStore
from supportdesk.support.services import SupportServices

from .auth import CurrentPrincipal


async def get_tenant_store(request: Request) -> TenantDataStore:
    store = getattr(request.app.state, "tenant_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Tenant data store is not available")
    return store


TenantStoreDep = Annotated[TenantDataStore, Depends(get_tenant_store)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_support_services(
    principal: CurrentPrincipal,
    store: TenantStoreDep,
    settings: SettingsDep,
) -> SupportServices:
    session_factory = await store.session_factory(principal.tenant_id)
    return SupportServices.build(principal.tenant_id, session_factory, settings)


async def get_public_services(
    store: TenantStoreDep,
    settings: SettingsDep,
    tenant_id: Annotated[int, Query(alias="tenantId", gt=0)],
) -> SupportServices:
    session_factory = await store.session_factory(tenant_id)
    return SupportServices.build(tenant_id, session_factory, settings)


SupportServicesDep = Annotated[SupportServices, Depends(get_support_services)]
PublicServicesDep = Annotated[SupportServices, Depends(get_public_services)]
