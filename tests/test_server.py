"""
Tests for the multi-repository Server: aggregation, lifecycle and serving.
"""

import os
import signal
import socket
import threading

import httpx
import pytest

from remote_config import server as server_module
from remote_config.errors import ListenError, RepositoryConfigError, ShutdownError
from remote_config.scheduler import DEFAULT_REFRESH_INTERVAL
from remote_config.server import Server, close_repositories, parse_address

from conftest import MemoryRepository, wait_for


class SlowRepository(MemoryRepository):
    """Serving the raw snapshot blocks until `release` is set."""

    def __init__(self, name: str, payload=None):
        super().__init__(name, payload)
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_raw_data(self) -> bytes:
        self.entered.set()
        self.release.wait(10.0)
        return super().get_raw_data()


class ClosingRepository(MemoryRepository):
    def __init__(self, name: str = "app", payload=None):
        super().__init__(name, payload)
        self.closed = 0

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def held_port():
    taken = socket.socket()
    taken.bind(("127.0.0.1", 0))
    taken.listen()
    yield taken.getsockname()[1]
    taken.close()


class TestConstruction:
    def test_interval_floor(self, make_server):
        assert make_server([MemoryRepository("a", {"x": 1})], 1).refresh_interval == 5.0

    def test_default_interval(self):
        server = Server([MemoryRepository("a", {"x": 1})])
        try:
            assert server.refresh_interval == DEFAULT_REFRESH_INTERVAL
        finally:
            server.stop()

    def test_single_failing_repository_does_not_abort(self, make_server):
        server = make_server([MemoryRepository("broken", fail=True)])
        assert server.is_healthy() is False
        assert server.is_ready() is False
        status = server.get_repository_status()["broken"]
        assert status.error_count == 1
        assert status.last_error == "broken unavailable"

    def test_one_failing_one_working(self, make_server):
        server = make_server([
            MemoryRepository("good", {"x": 1}),
            MemoryRepository("bad", fail=True),
        ])
        assert server.is_healthy() is False
        assert server.is_ready() is True

    def test_all_working(self, make_server):
        server = make_server([MemoryRepository("a", {"x": 1}), MemoryRepository("b", {"y": 2})])
        assert server.is_healthy() is True
        assert server.is_ready() is True

    def test_empty_repository_set_is_unhealthy(self, make_server):
        server = make_server([])
        assert server.is_healthy() is False
        assert server.is_ready() is False

    @pytest.mark.parametrize("names", [["a", "a"], ["status"], ["health"], [""], ["a/b"]])
    def test_invalid_names_rejected(self, names):
        with pytest.raises(RepositoryConfigError):
            Server([MemoryRepository(n) for n in names])

    def test_every_repository_refreshed_once(self, make_server):
        repos = [MemoryRepository("a"), MemoryRepository("b"), MemoryRepository("c")]
        make_server(repos)
        assert [r.fetches for r in repos] == [1, 1, 1]


class TestStatus:
    def test_status_is_a_copy(self, make_server):
        repo = MemoryRepository("a", {"x": 1})
        server = make_server([repo])
        before = server.get_repository_status()
        server._workers[0].refresh_once()
        after = server.get_repository_status()

        assert before["a"].refresh_count == 1
        assert after["a"].refresh_count == 2
        before.clear()
        assert "a" in server.get_repository_status()

    def test_health_follows_latest_outcome(self, make_server):
        repo = MemoryRepository("a", {"x": 1})
        server = make_server([repo])
        repo.fail = True
        server._workers[0].refresh_once()
        assert server.is_healthy() is False
        # readiness only needs one past success
        assert server.is_ready() is True
        repo.fail = False
        server._workers[0].refresh_once()
        assert server.is_healthy() is True

    def test_repository_lookup(self, make_server):
        repo = MemoryRepository("a", {"x": 1})
        server = make_server([repo])
        assert server.repository("a") is repo
        assert server.repository("nope") is None


class TestLifecycle:
    def test_background_refresh(self, fast_refresh, make_server):
        repos = [MemoryRepository("a", {"x": 1}), MemoryRepository("b", fail=True)]
        server = make_server(repos, fast_refresh)
        assert wait_for(lambda: server.get_repository_status()["a"].refresh_count >= 3)
        assert wait_for(lambda: server.get_repository_status()["b"].error_count >= 3)

    def test_stop_waits_for_workers(self, fast_refresh, make_server):
        repos = [MemoryRepository(f"r{i}", {"i": i}) for i in range(3)]
        server = make_server(repos, fast_refresh)
        assert wait_for(lambda: all(r.fetches >= 2 for r in repos))

        server.stop()
        assert not any(w.running for w in server._workers)
        counts = [r.fetches for r in repos]
        threading.Event().wait(0.1)
        assert [r.fetches for r in repos] == counts

    def test_stop_is_idempotent(self, make_server):
        server = make_server([MemoryRepository("a")])
        server.stop()
        server.stop()

    def test_shutdown_without_listener(self, fast_refresh, make_server):
        repo = MemoryRepository("a", {"x": 1})
        server = make_server([repo], fast_refresh)
        server.shutdown()
        assert not server._workers[0].running


class TestServing:
    def test_bind_failure_is_listen_error(self, make_server, held_port):
        server = make_server([MemoryRepository("a", {"x": 1})])
        with pytest.raises(ListenError):
            server.start(f"127.0.0.1:{held_port}")

    def test_start_serve_and_shutdown(self, make_server):
        repo = MemoryRepository("app", {"name": "John"})
        server = make_server([repo], auth_key="s3cret", shutdown_timeout=5.0)
        t = threading.Thread(target=server.start, args=("127.0.0.1:0",), daemon=True)
        t.start()
        assert wait_for(lambda: server.serving, timeout=10.0)

        host, port = server.address
        base = f"http://{host}:{port}"
        assert httpx.get(f"{base}/health").status_code == 200
        assert httpx.get(f"{base}/app").status_code == 401
        r = httpx.get(f"{base}/app", headers={"X-API-KEY": "s3cret"})
        assert r.status_code == 200
        assert b"John" in r.content

        server.shutdown()
        t.join(timeout=5.0)
        assert not t.is_alive()
        assert not server.serving
        assert not server._workers[0].running

    def test_start_after_shutdown_does_not_serve(self, make_server):
        server = make_server([MemoryRepository("a", {"x": 1})])
        server.shutdown()

        t = threading.Thread(target=server.start, args=("127.0.0.1:0",), daemon=True)
        t.start()
        t.join(timeout=5.0)
        assert not t.is_alive()
        assert not server.serving

        # the listener was closed, so the port can be bound again
        host, port = server.address
        socket.create_server((host, port)).close()

    def test_shutdown_timeout_raises(self, make_server):
        repo = SlowRepository("slow", {"x": 1})
        server = make_server([repo], shutdown_timeout=0.3)
        t = threading.Thread(target=server.start, args=("127.0.0.1:0",), daemon=True)
        t.start()
        assert wait_for(lambda: server.serving, timeout=10.0)

        host, port = server.address

        def request() -> None:
            try:
                httpx.get(f"http://{host}:{port}/slow", timeout=10.0)
            except httpx.HTTPError:
                pass

        client = threading.Thread(target=request, daemon=True)
        client.start()
        assert repo.entered.wait(5.0)
        try:
            with pytest.raises(ShutdownError):
                server.shutdown()
            assert not server._workers[0].running
        finally:
            repo.release.set()
            client.join(timeout=5.0)
            t.join(timeout=5.0)
        assert not t.is_alive()


class TestGracefulShutdown:
    def test_sigterm_stops_serving_and_refresh(self, fast_refresh, make_server):
        server = make_server([MemoryRepository("a", {"x": 1})], fast_refresh, shutdown_timeout=5.0)
        previous = signal.getsignal(signal.SIGTERM)

        def send_sigterm() -> None:
            if wait_for(lambda: server.serving, timeout=10.0):
                os.kill(os.getpid(), signal.SIGTERM)

        sender = threading.Thread(target=send_sigterm, daemon=True)
        sender.start()
        server.start_with_graceful_shutdown("127.0.0.1:0")
        sender.join(timeout=5.0)

        assert not server.serving
        assert not any(w.running for w in server._workers)
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_listen_error_stops_refresh(self, fast_refresh, make_server, held_port):
        repo = MemoryRepository("a", {"x": 1})
        server = make_server([repo], fast_refresh)
        with pytest.raises(ListenError):
            server.start_with_graceful_shutdown(f"127.0.0.1:{held_port}")
        assert not any(w.running for w in server._workers)
        fetches = repo.fetches
        threading.Event().wait(0.1)
        assert repo.fetches == fetches


class TestCloseRepositories:
    def test_closes_repositories_that_hold_resources(self):
        closing = ClosingRepository("web")
        close_repositories([MemoryRepository("plain"), closing])
        assert closing.closed == 1

    def test_main_closes_repositories_on_listen_error(self, monkeypatch, held_port):
        opened: list = []

        def from_uri(uri, name=None):
            repo = ClosingRepository(name or "app", {"x": 1})
            opened.append(repo)
            return repo

        monkeypatch.setattr(server_module, "setup_logging", lambda *args, **kwargs: None)
        monkeypatch.setattr(server_module, "repository_from_uri", from_uri)
        monkeypatch.setattr(server_module.config, "CONFIG_SOURCES", "app=./app.yaml,flags=./flags.yaml")
        monkeypatch.setattr(server_module.config, "BIND_HOST", "127.0.0.1")
        monkeypatch.setattr(server_module.config, "PORT", held_port)

        with pytest.raises(ListenError):
            server_module.main()
        assert [r.closed for r in opened] == [1, 1]


class TestParseAddress:
    @pytest.mark.parametrize("address,expected", [
        ("127.0.0.1:8090", ("127.0.0.1", 8090)),
        (":8090", ("0.0.0.0", 8090)),
        ("[::1]:9000", ("::1", 9000)),
        ("localhost:0", ("localhost", 0)),
    ])
    def test_valid(self, address, expected):
        assert parse_address(address) == expected

    @pytest.mark.parametrize("address", ["8090", "host:http", "host:70000"])
    def test_invalid(self, address):
        with pytest.raises(ValueError):
            parse_address(address)
