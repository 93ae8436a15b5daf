"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from smartalt.audit.changelog import ChangeLog
from smartalt.config import LoggingCfg
from smartalt.db.connection import Database
from smartalt.db.repository import Repository
from smartalt.db.schema import initialize
from smartalt.db.transients import TransientStore


class FakeClock:
    """Callable clock for code that takes ``clock=time.time``."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".smartalt.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def repo(tmp_db, fake_clock):
    return Repository(tmp_db, clock=fake_clock)


@pytest.fixture
def transients(tmp_db, fake_clock):
    return TransientStore(tmp_db, clock=fake_clock)


@pytest.fixture
def changelog(tmp_db, repo, fake_clock):
    """Change log recording everything down to debug."""
    return ChangeLog(tmp_db, LoggingCfg(level="debug"), repo, clock=fake_clock)
