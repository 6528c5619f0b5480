"""
Pytest configuration and shared fixtures for rulestore tests.

Item-level suites use the ``repository`` fixture, which is parametrized
over both store backends so every scenario runs in memory and on SQLite.
"""

import os
import tempfile

import pytest

from rulestore.interface.repository import RulesRepository
from rulestore.storage.engine import InMemoryNodeStore
from rulestore.storage.sqlite import SQLiteNodeStore


def _remove_db(db_path):
    """Remove a SQLite file and its WAL side files."""
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def db_path():
    """Path to a fresh temporary SQLite database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    os.unlink(path)
    yield path
    _remove_db(path)


@pytest.fixture
def memory_store():
    """Create an empty in-memory store."""
    store = InMemoryNodeStore()
    yield store
    store.clear()


@pytest.fixture
def sqlite_store(db_path):
    """Create a temporary SQLite store."""
    store = SQLiteNodeStore(db_path)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, db_path):
    """Each store backend in turn."""
    if request.param == "memory":
        store = InMemoryNodeStore()
    else:
        store = SQLiteNodeStore(db_path)
    yield store
    store.close()


# =============================================================================
# Repository Fixtures
# =============================================================================

@pytest.fixture
def repository(store):
    """A repository over each store backend in turn."""
    return RulesRepository(store=store)


@pytest.fixture
def loan_rule(repository):
    """A rule checked in twice: "Loan Rule" (v1), then "Loan Rule v2" (v2)."""
    rule = repository.create_rule("loan-rule", "Checks loan applications")
    rule.update_title("Loan Rule")
    rule.checkin("first")
    rule.update_title("Loan Rule v2")
    rule.checkin("second")
    return rule


@pytest.fixture
def unversioned_repository():
    """A repository over a store without versioning support."""
    return RulesRepository(store=InMemoryNodeStore(versioning=False))
