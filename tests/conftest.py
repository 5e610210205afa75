"""Shared pytest configuration and fixtures for tests."""

import sys
import io
from pathlib import Path

# Fix Windows console encoding
if sys.platform == "win32":
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from taskboard.core import repository
from taskboard.core.audit import emitter


@pytest.fixture(autouse=True)
def temp_db(monkeypatch, tmp_path):
    """Use temporary database for all tests."""
    db_path = tmp_path / "test_taskboard.db"
    monkeypatch.setattr(repository, "DB_PATH", db_path)
    monkeypatch.setattr(repository, "DB_DIR", tmp_path)

    # configure() rebinds these; keep them restorable between tests
    monkeypatch.setattr(repository, "BUSY_TIMEOUT", repository.BUSY_TIMEOUT)
    monkeypatch.setattr(repository, "TX_DEADLINE", repository.TX_DEADLINE)
    monkeypatch.setattr(repository, "MAX_RETRIES", repository.MAX_RETRIES)
    monkeypatch.setattr(emitter, "enabled", True)

    # Entry points (CLI, HTTP app) load settings from the environment
    monkeypatch.setenv("TASKBOARD_DB", str(db_path))
    monkeypatch.setenv("TASKBOARD_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("TASKBOARD_AUDIT", raising=False)
    monkeypatch.delenv("TASKBOARD_TX_DEADLINE", raising=False)
    monkeypatch.delenv("TASKBOARD_MAX_RETRIES", raising=False)

    yield db_path

    emitter.flush()


@pytest.fixture
def statuses():
    """Status code -> id for the seeded default columns."""
    from taskboard.core.reference import resolver

    return {s.code: s.id for s in resolver.list_statuses()}
