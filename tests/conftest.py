from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - no external LLM traffic
# - SQLite file database instead of PostgreSQL
_APP_DB = Path(__file__).parent / "test_app.db"
if _APP_DB.exists():
    _APP_DB.unlink()
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("QUESTION_SOURCE", "local")
os.environ.setdefault("GATEWAY_AUTH_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_APP_DB}")

from mistake_analyzer.core.app_metrics import reset_metrics  # noqa: E402
from mistake_analyzer.core.resilience import reset_breakers  # noqa: E402
from mistake_analyzer.main import app  # noqa: E402
from mistake_analyzer.models import entities  # noqa: E402,F401
from mistake_analyzer.models.base import Base  # noqa: E402


@pytest.fixture(scope="session")
def client() -> TestClient:
    with TestClient(app) as tc:
        yield tc


@pytest.fixture(autouse=True)
def _clean_process_state():
    reset_metrics()
    reset_breakers()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def session_factory(tmp_path: Path) -> async_sessionmaker[AsyncSession]:
    """Fresh SQLite database per test. Tables are created with a sync engine on the same file."""
    db_file = tmp_path / "repo.db"
    sync_engine = create_engine(f"sqlite:///{db_file}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    # NullPool: no connection outlives the event loop of the test that opened it.
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", poolclass=NullPool)
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)
