"""Pytest fixtures for finance engine tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cleaning_finance.events import DomainEvent, EventEmitter
from cleaning_finance.models import Base, Job, Tenant, TenantSettings, WorkerCompensationProfile
from cleaning_finance.services.actors import Actor, ActorRole

# In-memory SQLite shared across the connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SERVICE_DATE = date(2024, 3, 12)


@pytest_asyncio.fixture
async def engine():
    """Create a fresh test database engine per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


class RecordingHandler:
    """Collects every event the emitter dispatches."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    def __call__(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def recorder() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def emitter(recorder: RecordingHandler) -> EventEmitter:
    """Isolated emitter so tests never share handlers."""
    emitter = EventEmitter()
    emitter.on_all(recorder)
    return emitter


# ----------------------------------------------------------------------------
# Tenant and configuration
# ----------------------------------------------------------------------------


@pytest_asyncio.fixture
async def tenant(session: AsyncSession) -> Tenant:
    """Create an active tenant."""
    tenant = Tenant(tenant_id=uuid4(), name="Sparkle Cleaning Co", status="active")
    session.add(tenant)
    await session.flush()
    return tenant


@pytest_asyncio.fixture
async def tenant_settings(session: AsyncSession, tenant: Tenant) -> TenantSettings:
    """Ontario tenant, 13% tax, automatic invoicing, biweekly pay."""
    settings = TenantSettings(
        tenant_id=tenant.tenant_id,
        tax_rate=Decimal("13.00"),
        invoice_generation_mode="automatic",
        default_hourly_rate=Decimal("20.00"),
        pay_frequency="biweekly",
        period_boundary_rule="pay_frequency",
        jurisdiction_code="ON",
        invoice_due_days=30,
        currency="CAD",
        route_office_cash_through_payroll=True,
        auto_send_cash_receipt=False,
    )
    session.add(settings)
    await session.flush()
    return settings


@pytest.fixture
def worker_id() -> UUID:
    return uuid4()


@pytest_asyncio.fixture
async def hourly_profile(session: AsyncSession, tenant: Tenant, worker_id: UUID) -> WorkerCompensationProfile:
    """Worker paid 25.00 per hour."""
    profile = WorkerCompensationProfile(
        tenant_id=tenant.tenant_id,
        worker_id=worker_id,
        compensation_model="hourly",
        hourly_rate=Decimal("25.00"),
    )
    session.add(profile)
    await session.flush()
    return profile


@pytest_asyncio.fixture
async def fixed_profile(session: AsyncSession, tenant: Tenant, worker_id: UUID) -> WorkerCompensationProfile:
    """Worker paid 60.00 per job."""
    profile = WorkerCompensationProfile(
        tenant_id=tenant.tenant_id,
        worker_id=worker_id,
        compensation_model="fixed",
        fixed_amount_per_job=Decimal("60.00"),
    )
    session.add(profile)
    await session.flush()
    return profile


@pytest_asyncio.fixture
async def percentage_profile(
    session: AsyncSession, tenant: Tenant, worker_id: UUID
) -> WorkerCompensationProfile:
    """Worker paid 40% of the job total."""
    profile = WorkerCompensationProfile(
        tenant_id=tenant.tenant_id,
        worker_id=worker_id,
        compensation_model="percentage",
        percentage_rate=Decimal("40.00"),
    )
    session.add(profile)
    await session.flush()
    return profile


@pytest.fixture
def make_job(session: AsyncSession, tenant: Tenant, tenant_settings: TenantSettings, worker_id: UUID):
    """Factory for scheduled jobs assigned to ``worker_id`` by default."""

    async def _make_job(**overrides) -> Job:
        values = {
            "tenant_id": tenant.tenant_id,
            "worker_id": worker_id,
            "client_id": uuid4(),
            "job_kind": "service",
            "is_billable": True,
            "scheduled_date": SERVICE_DATE,
            "duration_minutes": 120,
            "service_amount": Decimal("100.00"),
            "status": "scheduled",
        }
        values.update(overrides)
        job = Job(**values)
        session.add(job)
        await session.flush()
        return job

    return _make_job


# ----------------------------------------------------------------------------
# Actors
# ----------------------------------------------------------------------------


@pytest.fixture
def admin() -> Actor:
    return Actor(actor_id=uuid4(), role=ActorRole.ADMIN)


@pytest.fixture
def worker(worker_id: UUID) -> Actor:
    return Actor(actor_id=worker_id, role=ActorRole.WORKER)


@pytest.fixture
def system_actor() -> Actor:
    return Actor.system()
