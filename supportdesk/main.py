from contextlib import asynccontextmanager

from fastapi import FastAPI

from supportdesk.api.errors import register_exception_handlers
from supportdesk.api.routes import activities, dashboard, interventions, ping, public, ticket_types, tickets
from supportdesk.core.config import get_settings
from supportdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from supportdesk.middleware import PrincipalMiddleware
from supportdesk.services.tenancy import TenantDataStore


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    tenant_store = TenantDataStore.from_settings(settings)
    app.state.tenant_store = tenant_store
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    try:
        yield
    finally:
        await tenant_store.dispose()
        app.state.tenant_store = None
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(PrincipalMiddleware)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(interventions.router)
    app.include_router(ticket_types.router)
    app.include_router(activities.router)
    app.include_router(dashboard.router)
    app.include_router(public.router)
    return app


app = create_app()
