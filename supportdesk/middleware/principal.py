"""Identity header middleware for FastAPI."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from supportdesk.dependencies.auth import Principal, resolve_principal

TENANT_HEADER = "X-Tenant-Id"
USER_HEADER = "X-User-Id"
PERMISSIONS_HEADER = "X-Permissions"


class PrincipalMiddleware(BaseHTTPMiddleware):
    """Populate the request state with the calling principal when identity headers are present."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        tenant = request.headers.get(TENANT_HEADER)
        user = request.headers.get(USER_HEADER)

        if tenant is not None or user is not None:
            try:
                principal: Principal = resolve_principal(
                    tenant, user, request.headers.get(PERMISSIONS_HEADER)
                )
            except HTTPException as exc:
                return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
            request.state.principal = principal

        response = await call_next(request)
        return response
