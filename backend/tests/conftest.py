"""
NoteKeeper Backend: Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Real components wherever it is cheap: a throwaway SQLite database
       (aiosqlite) per test, an AttachmentStore under tmp_path, and the real
       TagGenerator in front of a scripted completion service. Only the
       network-facing completion call is faked.

Fixture Hierarchy (all function-scoped):
    db_engine ─┬─ db_session ─┐
               │              ├─ note_service
    completion_service ─ tag_generator ─┤
    attachment_store ─────────────────────┤
    quota_limits ─────────────────────────┘
    app (dependency overrides) ─ client (httpx over ASGITransport)
"""

import asyncio
import os
import tempfile
from typing import AsyncGenerator, List, Optional, Union

# Settings are read when notekeeper is first imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["COMPLETION_PROVIDER"] = "openai"
os.environ["COMPLETION_ENDPOINT"] = "http://completion.test/v1/chat/completions"
os.environ["COMPLETION_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="notekeeper_test_")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from notekeeper.database import create_schema, get_db_session
from notekeeper.dependencies import get_attachment_store, get_quota_limits, get_tag_generator
from notekeeper.services.attachment_store import AttachmentStore
from notekeeper.services.llm_base import CompletionService
from notekeeper.services.note_repository import NoteRepository
from notekeeper.services.note_service import NoteService, QuotaLimits
from notekeeper.services.tag_service import TagGenerator


class StubCompletionService(CompletionService):
    """
    Scripted completion service.

    Each call pops the next entry from `responses` (falling back to
    `default`). An entry that is an exception instance is raised instead of
    returned, so the real circuit-breaker bookkeeping in complete() runs.
    """

    provider_name = "stub"

    def __init__(
        self,
        default: Union[str, Exception] = '["alpha", "beta"]',
        responses: Optional[List[Union[str, Exception]]] = None,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
    ):
        super().__init__(failure_threshold=failure_threshold, recovery_timeout=recovery_timeout)
        self.default = default
        self.responses = list(responses or [])
        self.calls: List[tuple] = []
        self.healthy = True

    async def _request_completion(self, instruction: str, text: str) -> str:
        self.calls.append((instruction, text))
        result = self.responses.pop(0) if self.responses else self.default
        if isinstance(result, Exception):
            raise result
        return result

    async def health_check(self) -> bool:
        return self.healthy


async def byte_chunks(*parts: bytes):
    for part in parts:
        yield part


class Gate:
    """
    Holds every caller of wait() until `parties` callers have arrived.

    Used to line concurrent tasks up just past their quota check.
    """

    def __init__(self, parties: int, timeout: float = 5.0):
        self.parties = parties
        self.timeout = timeout
        self.arrived = 0
        self._released = asyncio.Event()

    async def wait(self) -> None:
        self.arrived += 1
        if self.arrived >= self.parties:
            self._released.set()
        await asyncio.wait_for(self._released.wait(), timeout=self.timeout)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so every session of a test sees the same data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def repository(db_session):
    return NoteRepository(db_session)


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def completion_service():
    return StubCompletionService()


@pytest.fixture
def tag_generator(completion_service):
    return TagGenerator(completion_service)


@pytest.fixture
def quota_limits():
    return QuotaLimits(max_notes=10, max_attachments=3)


@pytest.fixture
def storage_root(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def attachment_store(storage_root, quota_limits):
    return AttachmentStore(
        storage_root=storage_root,
        max_attachments=quota_limits.max_attachments,
        max_attachment_size=1024,
        chunk_size=16,
    )


@pytest.fixture
def note_service(repository, tag_generator, attachment_store, quota_limits):
    return NoteService(
        repository=repository,
        tag_generator=tag_generator,
        attachment_store=attachment_store,
        limits=quota_limits,
    )


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(session_factory, tag_generator, attachment_store, quota_limits):
    """
    A fresh application wired to the per-test database and stores.

    ASGITransport does not run the lifespan, so nothing here touches the
    configured DATABASE_URL or STORAGE_ROOT.
    """
    from notekeeper.main import create_app

    application = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_db_session
    application.dependency_overrides[get_tag_generator] = lambda: tag_generator
    application.dependency_overrides[get_attachment_store] = lambda: attachment_store
    application.dependency_overrides[get_quota_limits] = lambda: quota_limits
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
