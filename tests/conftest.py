"""Shared test fixtures and configuration."""
import asyncio
import json
import httpx
import pytest
import os
from pathlib import Path
from types import SimpleNamespace
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BASIC_AUTH_USER", "admin")
os.environ.setdefault("BASIC_AUTH_PASS", "testpass123")
os.environ.setdefault("MCP_SERVERS", "")

from inspection_agent.main import app
from inspection_agent.db.database import Base, get_db
from inspection_agent.core.config import Settings
from inspection_agent.core.dependencies import (
    get_equipment_repository,
    get_session_config,
    get_tool_bridge,
    get_tool_registry,
)
from inspection_agent.services.call_session.models import SessionConfig
from inspection_agent.services.call_session.orchestrator import SessionOrchestrator
from inspection_agent.services.call_session.scheduler import Action, Scheduler
from inspection_agent.services.call_session.transport import SocketConnection
from inspection_agent.services.equipment.in_memory_registry import InMemoryEquipmentProvider
from inspection_agent.services.equipment.repository import EquipmentRepository
from inspection_agent.services.inspection.validator import InspectionValidator
from inspection_agent.services.persistence.callers import CallerPersistenceService
from inspection_agent.services.persistence.inspections import InspectionPersistenceService
from inspection_agent.services.tools.bridge import ExternalToolBridge
from inspection_agent.services.tools.inspection_tools import build_inspection_tools
from inspection_agent.services.tools.registry import ToolRegistry


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeSocket(SocketConnection):
    """In-memory socket: tests feed inbound messages and read what was sent."""

    def __init__(self, fail_on_send: bool = False):
        self.inbound: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.fail_on_send = fail_on_send
        self.stall_on_send = False

    def feed(self, message: Any) -> None:
        self.inbound.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def disconnect(self) -> None:
        self.inbound.put_nowait(None)

    async def messages(self) -> AsyncIterator[str]:
        while True:
            message = await self.inbound.get()
            if message is None:
                return
            yield message

    async def send_text(self, text: str) -> None:
        if self.stall_on_send:
            await asyncio.Event().wait()
        if self.closed or self.fail_on_send:
            raise ConnectionError("socket closed")
        self.sent.append(json.loads(text))

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.inbound.put_nowait(None)

    @property
    def is_open(self) -> bool:
        return not self.closed

    def sent_types(self) -> List[str]:
        return [m.get("type") or m.get("event") for m in self.sent]


class ManualScheduler(Scheduler):
    """Virtual clock scheduler: actions run only when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._actions: Dict[str, Tuple[float, int, Action]] = {}

    def schedule(self, name: str, delay_seconds: float, action: Action) -> None:
        self._seq += 1
        self._actions[name] = (self.now + max(0.0, delay_seconds), self._seq, action)

    def cancel(self, name: str) -> bool:
        return self._actions.pop(name, None) is not None

    def cancel_all(self) -> None:
        self._actions.clear()

    def pending(self) -> List[str]:
        return list(self._actions)

    def due_at(self, name: str) -> Optional[float]:
        entry = self._actions.get(name)
        return entry[0] if entry else None

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, running due actions in order."""
        target = self.now + seconds
        while True:
            due = [
                (when, seq, name)
                for name, (when, seq, _) in self._actions.items()
                if when <= target + 1e-9
            ]
            if not due:
                break
            when, _, name = min(due)
            _, _, action = self._actions.pop(name)
            self.now = max(self.now, when)
            await action()
        self.now = target


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        openai_api_key="test-key",
        database_url=TEST_DATABASE_URL,
        basic_auth_user="admin",
        basic_auth_pass="testpass123",
        base_url=None,
        mcp_servers="",
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_db_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def test_equipment_path():
    """Return path to test equipment YAML file."""
    return Path(__file__).parent / "fixtures" / "test_equipment.yaml"


@pytest.fixture
def equipment_repository():
    """Equipment repository backed by the packaged registry."""
    return EquipmentRepository(InMemoryEquipmentProvider())


@pytest.fixture
def inspection_validator(equipment_repository):
    return InspectionValidator(equipment_repository)


@pytest.fixture
def inspections_service(test_db):
    return InspectionPersistenceService(test_db)


@pytest.fixture
def callers_service(test_db):
    return CallerPersistenceService(test_db)


@pytest.fixture
def tool_registry(equipment_repository, inspection_validator):
    """Registry with the local inspection tools and no external providers."""
    return ToolRegistry(build_inspection_tools(equipment_repository, inspection_validator))


@pytest.fixture
def session_config():
    """Session configuration with the default fixed delays."""
    return SessionConfig(instructions="Test instructions")


@pytest.fixture
def socket_factory():
    """Factory for in-memory sockets."""
    return FakeSocket


@pytest.fixture
def make_call(tool_registry, inspections_service, callers_service, session_config):
    """Build an orchestrator wired to fake sockets and a virtual clock."""

    def _make_call(
        config: Optional[SessionConfig] = None,
        connect_error: Optional[Exception] = None,
        registry: Optional[ToolRegistry] = None,
    ):
        media = FakeSocket()
        backend = FakeSocket()
        scheduler = ManualScheduler()

        async def connect_backend():
            if connect_error is not None:
                raise connect_error
            return backend

        orchestrator = SessionOrchestrator(
            media=media,
            backend_connector=connect_backend,
            tool_registry=registry or tool_registry,
            inspections=inspections_service,
            callers=callers_service,
            config=config or session_config,
            scheduler=scheduler,
        )
        return SimpleNamespace(
            orchestrator=orchestrator,
            media=media,
            backend=backend,
            scheduler=scheduler,
        )

    return _make_call


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
def tool_bridge():
    """Bridge with no providers configured."""
    return ExternalToolBridge({})


@pytest.fixture
def app_overrides(equipment_repository, tool_registry, tool_bridge, session_config, test_settings, monkeypatch):
    """Override startup state and settings used by the routes."""
    # Override dependencies
    app.dependency_overrides[get_equipment_repository] = lambda: equipment_repository
    app.dependency_overrides[get_tool_registry] = lambda: tool_registry
    app.dependency_overrides[get_tool_bridge] = lambda: tool_bridge
    app.dependency_overrides[get_session_config] = lambda: session_config

    # Override settings in modules that use it
    monkeypatch.setattr("inspection_agent.core.config.settings", test_settings)
    monkeypatch.setattr("inspection_agent.api.auth.settings", test_settings)
    monkeypatch.setattr("inspection_agent.api.webhooks.voice.settings", test_settings)

    yield app

    # Clear overrides
    app.dependency_overrides.clear()


@pytest.fixture
def test_client(app_overrides):
    """Create FastAPI test client for routes that do not touch the database."""
    return TestClient(app_overrides)


@pytest.fixture
async def async_client(app_overrides, override_get_db):
    """Create an async client bound to the test database."""
    app_overrides.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app_overrides)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def auth(test_settings):
    """HTTP Basic credentials for the record endpoints."""
    return (test_settings.basic_auth_user, test_settings.basic_auth_pass)


@pytest.fixture
def clean_call_sessions():
    """Clean up call sessions before and after tests."""
    from inspection_agent.services.call_session import manager
    manager._sessions.clear()
    yield
    manager._sessions.clear()


# Pytest configuration
def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test"
    )
