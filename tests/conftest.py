"""Pytest configuration and fixtures for the ledger tests."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.models import init_db, make_engine, make_session_factory
from backend.services.ledger import Ledger
from backend.services.ledger_store import InMemoryLedgerStore, SQLLedgerStore

T0 = datetime(2026, 1, 10, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store():
    return InMemoryLedgerStore()


@pytest.fixture
def sql_store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield SQLLedgerStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Each store-level test runs against both backends."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def ledger(store):
    return Ledger(store, keep=15)


@pytest.fixture
def at():
    """at(n) -> a placement time n minutes after a fixed origin."""
    return lambda minutes: T0 + timedelta(minutes=minutes)


@pytest.fixture
def all_stats():
    """all_stats(ledger, user) -> every aggregate row, exact modes and rollups."""
    def _rows(ledger, user_key):
        with ledger.store.transaction() as tx:
            return tx.list_stats(user_key)
    return _rows
