"""
Pytest configuration for the read-phenomena harness.

Provides fixtures for:
- An in-memory fake backend (with and without dirty reads)
- A scenario runner wired to it with short directive delays
"""

from __future__ import annotations

import pytest

from phenomena.backends import Credential
from phenomena.scenario import ScenarioRunner
from tests.fakes import FakeBackend, FakeDatabase

TEST_DELAY_SECONDS = 0.01


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase(dirty_reads=True)


@pytest.fixture
def fake_backend(fake_db: FakeDatabase) -> FakeBackend:
    return FakeBackend(fake_db)


@pytest.fixture
def credentials() -> dict[str, Credential]:
    return {"A": Credential("shinsro"), "B": Credential("karina", "secret")}


@pytest.fixture
def runner(fake_backend: FakeBackend, credentials: dict[str, Credential]) -> ScenarioRunner:
    return ScenarioRunner(fake_backend, credentials, delay=TEST_DELAY_SECONDS, receive_timeout=5)
