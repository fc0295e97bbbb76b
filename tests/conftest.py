"""Test configuration and fixtures."""

from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncGenerator, Generator, Protocol
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import Table, insert

from src.clients.cache_invalidation import get_cache_invalidation_service
from src.clients.database import get_database
from src.clients.dedup import get_dedup_service
from src.dedup.merge_lock import MergeLockManager
from src.dedup.service import DedupService
from src.main import app
from src.services.cache_invalidation_service import CacheInvalidationService
from src.store.database import Database
from src.store.tables import patients_table

TEST_TENANT_ID = "clinic-test"
OTHER_TENANT_ID = "clinic-other"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Configure pytest-anyio to use asyncio."""
    return "asyncio"


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """
    Record store on a temporary SQLite file.

    A file (not :memory:) so that concurrent connections share the data.
    """
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'namayose-test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def mock_cache_invalidation_service() -> AsyncMock:
    """Mock cache invalidation client for testing."""
    mock = AsyncMock(spec=CacheInvalidationService)
    mock.enabled = True
    mock.invalidate_patients.return_value = 2
    mock.invalidate_patient.return_value = True
    return mock


@pytest.fixture
def lock_manager(database: Database) -> MergeLockManager:
    """Lock manager with short waits so conflicts surface quickly."""
    return MergeLockManager(database, timeout=0.2, poll_interval=0.01)


@pytest.fixture
def dedup_service(
    database: Database,
    mock_cache_invalidation_service: AsyncMock,
    lock_manager: MergeLockManager,
) -> DedupService:
    """DedupService wired to the test database."""
    return DedupService(
        database,
        cache_invalidation=mock_cache_invalidation_service,
        lock_manager=lock_manager,
    )


async def insert_patient(
    database: Database,
    patient_id: str,
    tenant_id: str = TEST_TENANT_ID,
    **fields: Any,
) -> None:
    """Insert one patient row. ``created_at`` defaults to a fixed instant."""
    fields.setdefault("created_at", datetime(2024, 1, 1, tzinfo=timezone.utc))
    async with database.transaction() as conn:
        await conn.execute(
            insert(patients_table).values(
                tenant_id=tenant_id, patient_id=patient_id, **fields
            )
        )


async def insert_rows(
    database: Database,
    table: Table,
    patient_id: str,
    rows: Sequence[dict[str, Any]] = ({},),
    tenant_id: str = TEST_TENANT_ID,
) -> None:
    """Insert dependent rows referencing ``patient_id``."""
    async with database.transaction() as conn:
        await conn.execute(
            insert(table),
            [{"tenant_id": tenant_id, "patient_id": patient_id, **row} for row in rows],
        )


class ClientFactory(Protocol):
    """Protocol for client factory fixture."""

    def __call__(self) -> AsyncClient: ...


@pytest.fixture
def client_factory(
    database: Database,
    dedup_service: DedupService,
    mock_cache_invalidation_service: AsyncMock,
) -> Generator[ClientFactory, None, None]:
    """Factory for creating test clients with overridden dependencies."""

    def _create_client() -> AsyncClient:
        app.dependency_overrides[get_database] = lambda: database
        app.dependency_overrides[get_dedup_service] = lambda: dedup_service
        app.dependency_overrides[get_cache_invalidation_service] = (
            lambda: mock_cache_invalidation_service
        )

        transport = ASGITransport(app=app)
        return AsyncClient(
            transport=transport,
            base_url="http://testserver",
            headers={"X-Tenant-ID": TEST_TENANT_ID},
        )

    yield _create_client

    app.dependency_overrides.clear()


@pytest.fixture
async def client(
    client_factory: ClientFactory,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client for testing endpoints."""
    async with client_factory() as c:
        yield c
