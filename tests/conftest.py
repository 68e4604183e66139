"""
Fixtures shared by the remote_config test suite.
"""

import threading
import time
from typing import Any, Callable, Dict, List

import pytest
import yaml

from remote_config import registry, scheduler
from remote_config.client import Client
from remote_config.errors import SourceError
from remote_config.server import Server
from remote_config.sources import BaseRepository


class MemoryRepository(BaseRepository):
    """Repository backed by a dict; flip `fail` to make refreshes error."""

    def __init__(self, name: str = "app", payload: Dict[str, Any] | None = None, fail: bool = False):
        super().__init__(name)
        self.payload: Dict[str, Any] = payload if payload is not None else {}
        self.fail = fail
        self.fetches = 0
        self._count_lock = threading.Lock()

    def fetch(self) -> bytes:
        with self._count_lock:
            self.fetches += 1
        if self.fail:
            raise SourceError(f"{self.name} unavailable")
        return yaml.safe_dump(self.payload).encode("utf-8")


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def sample_payload():
    return {
        "name": "John",
        "age": 30,
        "ratio": 0.75,
        "enabled": True,
        "hobbies": ["chess", "climbing"],
        "ports": [80, 443],
        "database": {"host": "db.internal", "port": 5432, "tags": ["primary"]},
    }


@pytest.fixture
def memory_repo(sample_payload):
    return MemoryRepository("app", sample_payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_default_client():
    """Keep the process-wide default client from leaking between tests."""
    registry.set_default(None)
    yield
    registry.set_default(None)


@pytest.fixture
def fast_refresh(monkeypatch):
    """Lower the refresh floor so background ticks happen within a test."""
    monkeypatch.setattr(scheduler, "MIN_REFRESH_INTERVAL", 0.01)
    return 0.02


@pytest.fixture
def make_client():
    clients: List[Client] = []

    def factory(repository, interval: float = 30.0, **kwargs) -> Client:
        c = Client(repository, interval, **kwargs)
        clients.append(c)
        return c

    yield factory
    for c in clients:
        c.close()


@pytest.fixture
def make_server():
    servers: List[Server] = []

    def factory(repositories, interval: float = 30.0, **kwargs) -> Server:
        s = Server(repositories, interval, **kwargs)
        servers.append(s)
        return s

    yield factory
    for s in servers:
        s.stop()
