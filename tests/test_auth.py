import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from supportdesk.dependencies.auth import (
    Permission,
    Principal,
    get_current_principal,
    parse_permissions,
    permission_required,
    resolve_principal,
)
from supportdesk.middleware import PrincipalMiddleware


def test_parse_permissions_ignores_unknown_entries():
    assert parse_permissions("support.view, support.delete,admin") == frozenset(
        {Permission.VIEW, Permission.DELETE}
    )
    assert parse_permissions(None) == frozenset()


def test_resolve_principal_requires_numeric_ids():
    principal = resolve_principal("4", "12", "support.view")

    assert principal.tenant_id == 4
    assert principal.user_id == 12
    assert principal.has_permission(Permission.VIEW)

    for tenant, user in (("abc", "1"), ("1", None), ("0", "1")):
        with pytest.raises(HTTPException) as exc:
            resolve_principal(tenant, user, None)
        assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_permission_required_allows_authorized_principal():
    dependency = permission_required(Permission.MANAGE)
    principal = Principal(1, 1, frozenset({Permission.MANAGE}))

    result = await dependency(principal)  # type: ignore[arg-type]

    assert result is principal


@pytest.mark.asyncio
async def test_permission_required_rejects_missing_permission():
    dependency = permission_required(Permission.DELETE)
    principal = Principal(1, 1, frozenset({Permission.VIEW}))

    with pytest.raises(HTTPException) as exc:
        await dependency(principal)  # type: ignore[arg-type]

    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"


def _probe_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(PrincipalMiddleware)

    @app.get("/whoami")
    async def whoami(request: Request):
        principal = await get_current_principal(request)
        return {"tenant": principal.tenant_id, "user": principal.user_id}

    return app


def test_middleware_populates_principal_from_headers():
    client = TestClient(_probe_app())

    response = client.get("/whoami", headers={"X-Tenant-Id": "3", "X-User-Id": "9"})

    assert response.status_code == 200
    assert response.json() == {"tenant": 3, "user": 9}


def test_middleware_rejects_malformed_headers():
    client = TestClient(_probe_app())

    response = client.get("/whoami", headers={"X-Tenant-Id": "three", "X-User-Id": "9"})

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid authentication credentials"}


def test_missing_identity_is_unauthenticated():
    client = TestClient(_probe_app())

    response = client.get("/whoami")

    assert response.status_code == 401
