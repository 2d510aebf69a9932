"""
Pytest configuration and fixtures for the test suite.
"""
import os
import sys

import pytest

# Add src directory (library) and repo root (tests.fixtures) to path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "src"))
sys.path.insert(0, ROOT)

from spotify_library.config import ClientConfiguration  # noqa: E402
from spotify_library.store import MemoryCredentialStore  # noqa: E402
from tests.fixtures.fakes import (  # noqa: E402
    CountingGrant,
    RecordingSleep,
    ScriptedTransport,
    make_credential,
)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "asyncio: mark test as an async test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def grant():
    return CountingGrant()


@pytest.fixture
def memory_store():
    return MemoryCredentialStore()


@pytest.fixture
def seeded_store():
    """Store holding a valid user credential."""
    return MemoryCredentialStore(make_credential())


@pytest.fixture
def client_config():
    return ClientConfiguration()


@pytest.fixture
def scripted_transport():
    def factory(responses=None, handler=None, delay=0.0):
        return ScriptedTransport(responses=responses, handler=handler, delay=delay)

    return factory


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep SPOTIFY_* variables from the developer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("SPOTIFY_"):
            monkeypatch.delenv(key, raising=False)
