"""Pytest fixtures for completion billing tests."""

from __future__ import annotations

from decimal import Decimal
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.calculators import BudgetPolicy
from completion_billing.database import create_schema, get_engine, make_session_factory
from completion_billing.events import NotificationEmitter
from completion_billing.models import Project, Task
from completion_billing.services import (
    EntityLockRegistry,
    ProjectService,
    TaskService,
)

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COMMISSIONER_ID = 34
FREELANCER_ID = 12
OTHER_USER_ID = 99

POLICY = BudgetPolicy(
    upfront_rate=Decimal("0.12"),
    quantum=Decimal("1"),
    tolerance=Decimal("1"),
)


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = get_engine(TEST_DATABASE_URL)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def locks() -> EntityLockRegistry:
    return EntityLockRegistry()


@pytest.fixture
def emitter(session) -> NotificationEmitter:
    return NotificationEmitter(session, currency="USD")


@pytest.fixture
def project_service(session, emitter, locks) -> ProjectService:
    return ProjectService(session, POLICY, emitter, locks)


@pytest.fixture
def task_service(session, emitter, project_service) -> TaskService:
    return TaskService(session, project_service.invoices, emitter)


@pytest.fixture
def make_project(project_service):
    """Factory creating an activated completion project."""

    async def _make(
        total_budget: Decimal | int = Decimal("10000"),
        total_tasks: int = 4,
        **kwargs,
    ) -> Project:
        kwargs.setdefault("title", "Brand Identity")
        kwargs.setdefault("freelancer_id", FREELANCER_ID)
        kwargs.setdefault("commissioner_name", "Acme Studio")
        kwargs.setdefault("freelancer_name", "Tobi")
        kwargs.setdefault("organization_name", "Acme Corp")
        return await project_service.create_project(
            COMMISSIONER_ID,
            total_budget=Decimal(str(total_budget)),
            total_tasks=total_tasks,
            **kwargs,
        )

    return _make


@pytest.fixture
def approve_task(task_service):
    """Submit then approve a task."""

    async def _approve(task: Task):
        await task_service.submit(task, FREELANCER_ID, "https://example.com/work")
        return await task_service.approve(task, COMMISSIONER_ID)

    return _approve


@asynccontextmanager
async def _app_client(session_factory, locks) -> AsyncGenerator[AsyncClient, None]:
    from completion_billing.api.app import create_app
    from completion_billing.api.dependencies import get_db_session, get_locks

    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_locks] = lambda: locks

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client(session_factory, locks) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, sharing the test database."""
    async with _app_client(session_factory, locks) as ac:
        yield ac


@pytest.fixture
async def file_engine(tmp_path):
    """A database file, so concurrent requests use separate connections."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
async def file_client(file_engine, locks) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app backed by a database file."""
    async with _app_client(make_session_factory(file_engine), locks) as ac:
        yield ac


def commissioner_headers(user_id: int = COMMISSIONER_ID) -> dict[str, str]:
    return {"X-User-ID": str(user_id), "X-User-Type": "commissioner"}


def freelancer_headers(user_id: int = FREELANCER_ID) -> dict[str, str]:
    return {"X-User-ID": str(user_id), "X-User-Type": "freelancer"}
