"""Principal resolution and permission checks for the support API."""

from collections.abc import Callable
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request


class Permission(str, Enum):
    """Capabilities granted to an authenticated principal."""

    VIEW = "support.view"
    CREATE = "support.create"
    UPDATE = "support.update"
    INTERVENE = "support.intervene"
    MANAGE = "support.manage"
    DELETE = "support.delete"


class Principal:
    """The caller on whose behalf a request runs: tenant, user and permissions."""

    def __init__(self, tenant_id: int, user_id: int, permissions: frozenset[Permission]):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.permissions = permissions

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions


def parse_permissions(raw: str | None) -> frozenset[Permission]:
    """Parse a comma separated permission list, ignoring unknown entries."""

    if not raw:
        return frozenset()
    known = {item.value: item for item in Permission}
    return frozenset(known[token] for token in (part.strip() for part in raw.split(",")) if token in known)


def resolve_principal(tenant: str | None, user: str | None, permissions: str | None) -> Principal:
    """Build a principal from the identity headers set by the upstream gateway."""

    if not tenant or not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        tenant_id = int(tenant)
        user_id = int(user)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials") from exc
    if tenant_id <= 0 or user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return Principal(tenant_id=tenant_id, user_id=user_id, permissions=parse_permissions(permissions))


async def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, Principal):
        raise HTTPException(status_code=401, detail="Authentication required")
    return principal


def permission_required(permission: Permission) -> Callable[[Principal], Principal]:
    """Dependency factory ensuring the principal holds the requested permission."""

    async def dependency(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
        if not principal.has_permission(permission):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return principal

    return dependency


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
CanView = Annotated[Principal, Depends(permission_required(Permission.VIEW))]
CanCreate = Annotated[Principal, Depends(permission_required(Permission.CREATE))]
CanUpdate = Annotated[Principal, Depends(permission_required(Permission.UPDATE))]
CanIntervene = Annotated[Principal, Depends(permission_required(Permission.INTERVENE))]
CanManage = Annotated[Principal, Depends(permission_required(Permission.MANAGE))]
CanDelete = Annotated[Principal, Depends(permission_required(Permission.DELETE))]
