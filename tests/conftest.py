"""
Global pytest configuration and fixtures for all tests.

Provides an in-memory database shared across worker threads, a manual
clock for driving auto-unpause timers, a fake AMI client and a wired
coordinator/scheduler pair.
"""

import os
from typing import Callable, Generator
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Set testing environment variable as early as possible
os.environ["TESTING"] = "true"

# Import all database models to ensure they're registered with SQLModel.metadata
import callpause.models.db_models  # noqa: F401,E402
from callpause.config.builtin_config import get_builtin_pause_reasons  # noqa: E402
from callpause.config.settings import Settings  # noqa: E402
from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler  # noqa: E402
from callpause.services.pause_coordinator import PauseCoordinator  # noqa: E402
from callpause.services.pause_reason_service import PauseReasonService  # noqa: E402
from tests.utils import FakeAMIClient, ManualClock  # noqa: E402


@pytest.fixture
def test_database_engine():
    """In-memory SQLite engine with all tables; one connection shared by every thread."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_database_engine) -> Callable[[], Session]:
    return sessionmaker(bind=test_database_engine, class_=Session, expire_on_commit=False)


@pytest.fixture
def test_database_session(session_factory) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        pause_reasons_config_path=str(tmp_path / "missing.yaml"),
    )


@pytest.fixture
def reason_service(session_factory) -> PauseReasonService:
    return PauseReasonService(session_factory)


@pytest.fixture
def seeded_reasons(reason_service) -> PauseReasonService:
    """Database seeded with the built-in pause reasons."""
    reason_service.seed_reasons(get_builtin_pause_reasons())
    return reason_service


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_ami() -> FakeAMIClient:
    return FakeAMIClient()


@pytest.fixture
def published_events():
    """Patch event publishing in the coordinator and expose the mocks."""
    with patch("callpause.services.pause_coordinator.publish_agent_paused", new_callable=AsyncMock) as paused, \
         patch("callpause.services.pause_coordinator.publish_agent_unpaused", new_callable=AsyncMock) as unpaused, \
         patch("callpause.services.pause_coordinator.publish_agent_status", new_callable=AsyncMock) as status:
        yield {"paused": paused, "unpaused": unpaused, "status": status}


@pytest.fixture
async def coordinator(session_factory, seeded_reasons, fake_ami, test_settings, clock, published_events):
    """Coordinator wired to a scheduler running on the manual clock."""
    pause_coordinator = PauseCoordinator(session_factory, fake_ami, test_settings, now_func=clock.now_us)
    scheduler = AutoUnpauseScheduler(
        session_factory, pause_coordinator, now_func=clock.now_us, sleep_func=clock.sleep
    )
    pause_coordinator.attach_scheduler(scheduler)
    yield pause_coordinator
    await scheduler.shutdown()


@pytest.fixture
def scheduler(coordinator) -> AutoUnpauseScheduler:
    return coordinator.scheduler
