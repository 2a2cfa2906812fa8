from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from supportdesk.core.config import Settings
from supportdesk.db.models import ClientTable, EquipmentTable, TicketTypeTable, UserTable
from supportdesk.support.services import SupportServices

START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

ADMIN_ID = 1
TECHNICIAN_ID = 2
PUBLIC_USER_ID = 3
CLIENT_ID = 1
EQUIPMENT_ID = 1
HARDWARE_TYPE_ID = 1
GENERAL_TYPE_ID = 2


class MutableClock:
    """Deterministic clock the services read ``now`` from."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(START)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        async with session.begin():
            session.add_all(
                [
                    UserTable(id=ADMIN_ID, full_name="Ana Admin", email="ana@example.com"),
                    UserTable(id=TECHNICIAN_ID, full_name="Rui Tecnico", email="rui@example.com"),
                    UserTable(id=PUBLIC_USER_ID, full_name="Utilizador Geral"),
                    ClientTable(id=CLIENT_ID, name="Acme Lda", code="ACME"),
                    EquipmentTable(id=EQUIPMENT_ID, name="Printer", serial_number="PR-001"),
                    TicketTypeTable(id=HARDWARE_TYPE_ID, name="Hardware", sla_hours=24, created_at=START, updated_at=START),
                    TicketTypeTable(id=GENERAL_TYPE_ID, name="General", sla_hours=None, created_at=START, updated_at=START),
                ]
            )
    return factory


@pytest.fixture
def services(session_factory: async_sessionmaker, settings: Settings, clock: MutableClock) -> SupportServices:
    return SupportServices.build(1, session_factory, settings, clock=clock)
