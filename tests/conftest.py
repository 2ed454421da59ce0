"""
Pytest configuration and fixtures for orchestrator tests.

Provides:
- Async test database with SQLite
- Job store wired to the test database
- Stubbed edge functions (httpx.MockTransport)
- Test client for API testing
"""

import inspect
import json
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from orchestrator.config import Settings, get_settings
from orchestrator.core.database import get_db
from orchestrator.dependencies import get_job_store, get_trigger_scheduler, get_worker
from orchestrator.main import app
from orchestrator.models import Base, Job, LearningIntent
from orchestrator.schemas.jobs import JobCreate
from orchestrator.services.http_dispatcher import HttpDispatcher
from orchestrator.services.job_store import JobStore
from orchestrator.services.trigger_scheduler import (
    HttpWorkflowDispatcher,
    LearningIntentEligibility,
    TriggerScheduler,
)
from orchestrator.services.worker import Worker

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    edge_base_url: str = "http://edge.test"
    edge_service_jwt: str = "test-service-jwt"
    dispatch_url: str = "http://edge.test/functions/v1/orchestrator/dispatch"
    dispatch_service_key: str = "test-dispatch-key"
    orchestrator_api_token: str = ""
    scheduler_enabled: bool = False


@pytest.fixture
def settings() -> Settings:
    return TestSettings()


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine, configured like production."""
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def job_store(session_factory, settings) -> JobStore:
    return JobStore(session_factory, settings)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a SQLite file with a real connection pool.

    Each session gets its own connection, so concurrent transactions are
    genuinely concurrent. Writers take the database lock up front with
    BEGIN IMMEDIATE and queue on the busy timeout instead of failing on
    lock upgrade.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


# ============================================================================
# Edge Function Stub
# ============================================================================


class EdgeStub:
    """
    Stand-in for the downstream edge functions.

    Records every request and answers per path; unknown paths get
    200 {"ok": true}. A route is either a (status, body) tuple or a
    callable taking the httpx.Request (sync or async).
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Any] = {}

    def respond(self, path: str, status: int = 200, body: Any = None) -> None:
        self.routes[path] = (status, body)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path, (200, {"ok": True}))
        if callable(route):
            result = route(request)
            if inspect.isawaitable(result):
                result = await result
            return result

        status, body = route
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def json_bodies(self) -> list[Any]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


@pytest.fixture
def edge() -> EdgeStub:
    return EdgeStub()


@pytest.fixture
def dispatcher(settings, edge) -> HttpDispatcher:
    return HttpDispatcher(settings, transport=edge.transport)


@pytest.fixture
def worker(job_store, dispatcher, settings) -> Worker:
    return Worker(job_store, dispatcher, settings)


@pytest.fixture
def trigger_scheduler(session_factory, settings, edge) -> TriggerScheduler:
    http = HttpDispatcher(
        settings,
        base_url=settings.dispatch_url,
        credential=settings.dispatch_service_key,
        transport=edge.transport,
    )
    return TriggerScheduler(
        LearningIntentEligibility(session_factory),
        HttpWorkflowDispatcher(settings, http=http),
    )


@pytest_asyncio.fixture
async def client(
    session_factory, settings, job_store, worker, trigger_scheduler
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database and component overrides."""

    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_worker] = lambda: worker
    app.dependency_overrides[get_trigger_scheduler] = lambda: trigger_scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def job_factory(job_store: JobStore) -> Callable:
    """Factory for enqueueing test jobs."""

    async def _create_job(
        workflow_run_id: str | None = None,
        step_id: str = "s1",
        user_id: str = "u1",
        payload: dict | None = None,
        priority: int = 100,
        max_attempts: int = 5,
        next_run_at: datetime | None = None,
    ) -> Job:
        if workflow_run_id is None:
            workflow_run_id = f"run-{uuid.uuid4().hex[:8]}"
        if payload is None:
            payload = {"call_path": "/functions/v1/step", "body": {"step": step_id}}

        job_id = await job_store.enqueue(
            JobCreate(
                workflow_run_id=workflow_run_id,
                step_id=step_id,
                user_id=user_id,
                payload=payload,
                priority=priority,
                max_attempts=max_attempts,
                next_run_at=next_run_at,
            )
        )
        return await job_store.get_job(job_id)

    return _create_job


@pytest_asyncio.fixture
async def learning_intent_factory(db_session: AsyncSession) -> Callable:
    """Factory for creating learning intents."""

    async def _create_intent(
        user_id: str | None = "u1", status: str = "in_progress"
    ) -> LearningIntent:
        intent = LearningIntent(user_id=user_id, status=status, topic="Test topic")
        db_session.add(intent)
        await db_session.commit()
        return intent

    return _create_intent
