from __future__ import annotations

import pytest
from sqlalchemy import func, select

from supportdesk.core.config import Settings
from supportdesk.db.models import TicketTypeTable
from supportdesk.services.tenancy import TenantDataStore, to_asyncpg_dsn
from supportdesk.support.errors import DependencyFailureError, ValidationFailure


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def store(tmp_path, monotonic) -> TenantDataStore:
    return TenantDataStore(
        lambda tenant_id: f"sqlite+aiosqlite:///{tmp_path}/tenant_{tenant_id}.db",
        idle_seconds=60,
        auto_create_schema=True,
        monotonic=monotonic,
    )


def test_to_asyncpg_dsn():
    assert to_asyncpg_dsn("postgresql://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
    assert to_asyncpg_dsn("postgresql+asyncpg://u:p@db/x") == "postgresql+asyncpg://u:p@db/x"
    assert to_asyncpg_dsn("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


def test_from_settings_formats_tenant_dsn():
    settings = Settings(_env_file=None, tenant_dsn_template="postgresql://svc@db:5432/t_{tenant_id}")
    store = TenantDataStore.from_settings(settings)

    assert store._dsn_resolver(7) == "postgresql+asyncpg://svc@db:5432/t_7"


@pytest.mark.asyncio
async def test_tenants_are_isolated(store):
    try:
        first = await store.session_factory(1)
        second = await store.session_factory(2)

        async with first() as session:
            async with session.begin():
                session.add(TicketTypeTable(name="Only in tenant 1"))

        async with second() as session:
            count = await session.scalar(select(func.count(TicketTypeTable.id)))

        assert count == 0
        assert store.cached_tenants == (1, 2)
        assert await store.session_factory(1) is first
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_idle_engines_are_evicted(store, monotonic):
    try:
        factory = await store.session_factory(1)
        monotonic.value = 50
        await store.session_factory(2)

        monotonic.value = 95
        evicted = await store.evict_idle()

        assert evicted == [1]
        assert store.cached_tenants == (2,)
        assert await store.session_factory(1) is not factory
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_invalidate_and_check(store):
    try:
        await store.check(3)
        assert await store.invalidate(3) is True
        assert await store.invalidate(3) is False
        assert store.cached_tenants == ()
    finally:
        await store.dispose()


@pytest.mark.asyncio
async def test_rejects_invalid_tenant_ids(store):
    with pytest.raises(ValidationFailure):
        await store.session_factory(0)


@pytest.mark.asyncio
async def test_unreachable_tenant_database_is_a_dependency_failure(tmp_path):
    store = TenantDataStore(
        lambda tenant_id: f"sqlite+aiosqlite:///{tmp_path}/missing/dir/tenant_{tenant_id}.db",
        auto_create_schema=True,
    )

    with pytest.raises(DependencyFailureError):
        await store.session_factory(1)
    assert store.cached_tenants == ()
