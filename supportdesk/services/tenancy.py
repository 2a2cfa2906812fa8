"""Tenant-scoped storage routing.

Each tenant owns an isolated database. :class:`TenantDataStore` is an explicit
keyed cache of async engines: entries expire after an idle period and can be
invalidated on demand (for example after a tenant's credentials rotate).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from supportdesk.core.config import Settings
from supportdesk.support.errors import DependencyFailureError, ValidationFailure

logger = logging.getLogger(__name__)


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@dataclass(slots=True)
class _TenantEngine:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    last_used: float


class TenantDataStore:
    """Resolve a tenant id to a session factory bound to that tenant's database."""

    def __init__(
        self,
        dsn_resolver: Callable[[int], str],
        *,
        idle_seconds: float = 1800.0,
        engine_options: Mapping[str, Any] | None = None,
        auto_create_schema: bool = False,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dsn_resolver = dsn_resolver
        self._idle_seconds = idle_seconds
        self._engine_options = dict(engine_options or {})
        self._auto_create_schema = auto_create_schema
        self._monotonic = monotonic
        self._engines: dict[int, _TenantEngine] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantDataStore":
        template = settings.tenant_dsn_template
        options: dict[str, Any] = {"pool_pre_ping": True}
        if template.startswith("postgresql"):
            options["pool_size"] = settings.tenant_pool_size
        return cls(
            lambda tenant_id: to_asyncpg_dsn(template.format(tenant_id=tenant_id)),
            idle_seconds=settings.tenant_engine_idle_seconds,
            engine_options=options,
            auto_create_schema=settings.auto_create_schema,
        )

    @property
    def cached_tenants(self) -> tuple[int, ...]:
        return tuple(sorted(self._engines))

    async def session_factory(self, tenant_id: int) -> async_sessionmaker[AsyncSession]:
        if not isinstance(tenant_id, int) or isinstance(tenant_id, bool) or tenant_id <= 0:
            raise ValidationFailure("A positive tenant id is required")

        await self.evict_idle()
        async with self._lock:
            entry = self._engines.get(tenant_id)
            if entry is None:
                entry = await self._open(tenant_id)
                self._engines[tenant_id] = entry
            entry.last_used = self._monotonic()
            return entry.session_factory

    async def check(self, tenant_id: int) -> None:
        """Round-trip to the tenant database."""

        factory = await self.session_factory(tenant_id)
        try:
            async with factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as exc:
            raise DependencyFailureError("Tenant data store is unavailable") from exc

    async def invalidate(self, tenant_id: int) -> bool:
        async with self._lock:
            entry = self._engines.pop(tenant_id, None)
        if entry is None:
            return False
        await entry.engine.dispose()
        logger.info("Tenant %s engine invalidated", tenant_id)
        return True

    async def evict_idle(self) -> list[int]:
        now = self._monotonic()
        async with self._lock:
            expired = [
                tenant_id
                for tenant_id, entry in self._engines.items()
                if now - entry.last_used > self._idle_seconds
            ]
            entries = [self._engines.pop(tenant_id) for tenant_id in expired]
        for tenant_id, entry in zip(expired, entries):
            await entry.engine.dispose()
            logger.info("Tenant %s engine evicted after idle timeout", tenant_id)
        return expired

    async def dispose(self) -> None:
        async with self._lock:
            entries = list(self._engines.values())
            self._engines.clear()
        for entry in entries:
            await entry.engine.dispose()

    async def _open(self, tenant_id: int) -> _TenantEngine:
        try:
            engine = create_async_engine(self._dsn_resolver(tenant_id), **self._engine_options)
        except (SQLAlchemyError, ValueError, KeyError) as exc:
            raise DependencyFailureError("Tenant data store is not configured") from exc

        if self._auto_create_schema:
            try:
                async with engine.begin() as connection:
                    await connection.run_sync(SQLModel.metadata.create_all)
            except (SQLAlchemyError, OSError) as exc:
                await engine.dispose()
                raise DependencyFailureError("Tenant data store is unavailable") from exc

        logger.info("Tenant %s engine created", tenant_id)
        return _TenantEngine(
            engine=engine,
            session_factory=async_sessionmaker(engine, expire_on_commit=False),
            last_used=self._monotonic(),
        )
