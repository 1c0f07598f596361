"""Pytest configuration and common fixtures."""

import os
import warnings
from datetime import time
from pathlib import Path

from dotenv import load_dotenv

# Try to load test-specific environment file if it exists
test_env_file = Path(__file__).parent / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file)

# Must be set before booking_engine settings are first read
os.environ.setdefault("ENV", "testing")

import pytest
import pytest_asyncio

from booking_engine.core.config.settings import EngineSettings, reset_settings
from booking_engine.engine import BookingEngine
from booking_engine.models.entities import ServiceType
from factories import HQ_ID, PASSPORT_ID, fixed_clock, make_branches


def pytest_configure(config):
    """Configure pytest environment before tests run."""
    warnings.filterwarnings("ignore", message="coroutine.*was never awaited")


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Isolate every test from the caller's environment."""
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost:5432/booking_engine_test")
    monkeypatch.delenv("BRANCH_DIRECTORY_URL", raising=False)
    monkeypatch.delenv("HOLIDAY_RECURRENCE_MODE", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> EngineSettings:
    """Settings with engine defaults."""
    return EngineSettings()


@pytest.fixture
def branches():
    """Three branches at increasing distance from the origin."""
    return make_branches()


@pytest_asyncio.fixture
async def engine(settings, branches):
    """In-memory engine with the passport service offered at every branch."""
    engine = BookingEngine.create_in_memory(settings=settings, branches=branches, clock=fixed_clock)
    await engine.catalog.add_service_type(
        ServiceType(id=PASSPORT_ID, code="PASSPORT"), names={"ar": "جواز السفر", "en": "Passport"}
    )
    for branch in branches:
        await engine.catalog.assign_service(branch.branch_id, PASSPORT_ID)
    yield engine
    await engine.close()


@pytest_asyncio.fixture
async def hq_sunday(engine):
    """HQ open Sundays 08:00-12:00 in 30-minute slots."""
    return await engine.admin.create_rule(
        branch_id=HQ_ID,
        day_of_week=0,
        start_time=time(8, 0),
        end_time=time(12, 0),
        slot_duration_minutes=30,
    )
