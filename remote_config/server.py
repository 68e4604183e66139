"""
Multi-repository HTTP publisher.

A Server keeps every repository fresh on its own background thread and
serves the raw snapshots plus health, readiness and status over HTTP.
Shutdown always stops refreshing before the HTTP listener is drained.
"""
import logging
import signal
import socket
import threading
import time
from typing import Any, Callable, Iterable

import uvicorn
from fastapi import FastAPI

from . import config
from .app import create_app
from .errors import ListenError, RepositoryConfigError, ShutdownError
from .logging import setup_logging
from .scheduler import DEFAULT_REFRESH_INTERVAL, RefreshStatus, RefreshWorker, StatusTracker, effective_interval
from .sources import Repository, repository_from_uri

DEFAULT_SHUTDOWN_TIMEOUT = 30.0
IDLE_TIMEOUT = 600            # keep-alive seconds
RESERVED_NAMES = frozenset({"health", "ready", "status"})

log = logging.getLogger(__name__)

def parse_address(address: str) -> tuple[str, int]:
    """`host:port`, `:port` or `[v6]:port` -> (host, port). An empty host binds all interfaces."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"address must be host:port, got {address!r}")
    try:
        port_no = int(port)
    except ValueError:
        raise ValueError(f"invalid port in address {address!r}") from None
    if not 0 <= port_no <= 65535:
        raise ValueError(f"port out of range in address {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, port_no

def _validate_names(repositories: list[Repository]) -> None:
    seen: set[str] = set()
    for repo in repositories:
        name = repo.get_name()
        if not name or "/" in name:
            raise RepositoryConfigError(f"invalid repository name {name!r}")
        if name in RESERVED_NAMES:
            raise RepositoryConfigError(f"repository name {name!r} collides with a built-in route")
        if name in seen:
            raise RepositoryConfigError(f"duplicate repository name {name!r}")
        seen.add(name)

class Server:
    def __init__(
        self,
        repositories: Iterable[Repository],
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        *,
        auth_key: str | None = None,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.repositories = list(repositories)
        _validate_names(self.repositories)
        self.refresh_interval = effective_interval(refresh_interval)
        self.auth_key = auth_key or None
        self.shutdown_timeout = shutdown_timeout

        self._by_name = {r.get_name(): r for r in self.repositories}
        self._cancel = threading.Event()
        self._trackers = {name: StatusTracker(name, clock) for name in self._by_name}
        self._workers = [
            RefreshWorker(r, self.refresh_interval, self._trackers[r.get_name()], self._cancel)
            for r in self.repositories
        ]

        self._app: FastAPI | None = None
        self._http_lock = threading.Lock()
        self._http: uvicorn.Server | None = None
        self._http_done = threading.Event()
        self._http_done.set()
        self.address: tuple[str, int] | None = None

        # One bad source must not keep the others from being served.
        failed = [w.repository.get_name() for w in self._workers if w.refresh_once() is not None]
        for w in self._workers:
            w.start()
        log.info(
            "server initialised",
            extra={"event": "server.init", "extra_fields": {
                "repositories": list(self._by_name),
                "failed": failed,
                "interval_s": self.refresh_interval,
                "auth": self.auth_key is not None,
            }},
        )

    # status

    def repository(self, name: str) -> Repository | None:
        return self._by_name.get(name)

    def get_repository_status(self) -> dict[str, RefreshStatus]:
        # statuses are frozen; a fresh dict is all the copying a caller needs
        return {name: t.snapshot() for name, t in self._trackers.items()}

    def is_healthy(self) -> bool:
        statuses = self.get_repository_status()
        return bool(statuses) and all(s.healthy for s in statuses.values())

    def is_ready(self) -> bool:
        return any(s.refresh_count > 0 for s in self.get_repository_status().values())

    # HTTP

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            self._app = create_app(self, self.auth_key)
        return self._app

    @property
    def serving(self) -> bool:
        with self._http_lock:
            return self._http is not None and self._http.started and not self._http_done.is_set()

    def start(self, address: str) -> None:
        """
        Bind `address` and serve until `shutdown()` (or a signal, when called
        from the main thread). Raises ListenError if the socket cannot be bound.
        """
        host, port = parse_address(address)
        try:
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            sock = socket.create_server((host, port), family=family)
        except OSError as e:
            log.error(
                "error starting server",
                extra={"event": "server.listen_error", "extra_fields": {"address": address, "error": repr(e)}},
            )
            raise ListenError(f"server failed to start: {e}") from e

        self.address = sock.getsockname()[:2]
        http = uvicorn.Server(uvicorn.Config(
            self.app,
            log_config=None,
            access_log=False,
            timeout_keep_alive=IDLE_TIMEOUT,
            # shutdown() owns the drain deadline and forces exit when it passes
            timeout_graceful_shutdown=None,
        ))
        with self._http_lock:
            if self._cancel.is_set():
                sock.close()
                log.warning(
                    "server already shut down, not serving",
                    extra={"event": "server.start", "extra_fields": {"address": address}},
                )
                return
            self._http = http
            self._http_done.clear()
        log.info(
            "starting server",
            extra={"event": "server.start", "extra_fields": {"host": self.address[0], "port": self.address[1]}},
        )
        try:
            http.run(sockets=[sock])
        finally:
            sock.close()
            self._http_done.set()

    def start_with_graceful_shutdown(self, address: str) -> None:
        """Serve until SIGINT/SIGTERM, then shut down. Must run on the main thread."""
        wake = threading.Event()
        received: list[int] = []
        errors: list[BaseException] = []

        def on_signal(signum: int, frame: Any) -> None:
            received.append(signum)
            wake.set()

        def serve() -> None:
            try:
                self.start(address)
            except BaseException as e:  # handed back to the waiting thread
                errors.append(e)
            finally:
                wake.set()

        previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            t = threading.Thread(target=serve, name="http-server", daemon=True)
            t.start()
            while not wake.wait(0.5):
                pass
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        if received:
            log.info(
                "received shutdown signal, initiating graceful shutdown",
                extra={"event": "server.signal", "extra_fields": {"signal": signal.Signals(received[0]).name}},
            )
            self.shutdown()
            return
        self.stop()
        if errors:
            raise errors[0]

    def stop(self) -> None:
        """Cancel every refresh worker and wait until all of them have exited."""
        self._cancel.set()
        for w in self._workers:
            w.join()

    def shutdown(self) -> None:
        # cancel is set under the lock so a concurrent start() either sees it or is seen here
        with self._http_lock:
            self._cancel.set()
            http = self._http
        self.stop()
        if http is None:
            return
        log.info("shutting down HTTP server", extra={"event": "server.shutdown"})
        http.should_exit = True
        if not self._http_done.wait(self.shutdown_timeout):
            http.force_exit = True
            log.error(
                "error during server shutdown",
                extra={"event": "server.shutdown", "extra_fields": {"timeout_s": self.shutdown_timeout}},
            )
            raise ShutdownError(f"server shutdown failed: listener still open after {self.shutdown_timeout}s")
        log.info("server shutdown complete", extra={"event": "server.shutdown"})

def close_repositories(repositories: Iterable[Repository]) -> None:
    """Release whatever a repository holds open (e.g. a WebRepository's HTTP client)."""
    for repo in repositories:
        close = getattr(repo, "close", None)
        if callable(close):
            close()

def main() -> None:
    setup_logging("remote-config", config.LOG_LEVEL)
    repositories = [repository_from_uri(uri, name) for name, uri in config.parse_sources(config.CONFIG_SOURCES)]
    if not repositories:
        raise SystemExit("CONFIG_SOURCES is empty: nothing to serve")
    try:
        server = Server(
            repositories,
            config.REFRESH_INTERVAL_SEC,
            auth_key=config.AUTH_KEY,
            shutdown_timeout=config.SHUTDOWN_TIMEOUT_SEC,
        )
        server.start_with_graceful_shutdown(f"{config.BIND_HOST}:{config.PORT}")
    finally:
        close_repositories(repositories)

if __name__ == "__main__":
    # Dev run: CONFIG_SOURCES=app=./app.yaml python -m remote_config.server
    main()
