"""
In-process consumer of a single repository.

A Client refreshes its repository once synchronously at construction and
then on a background thread every `refresh_interval` seconds. Accessors
never raise: they return a `Lookup` whose `value` is the caller's default
whenever `error` is set.
"""
import logging
import threading
import time
from typing import Any, Callable, TypeVar

from . import registry
from .decode import Lookup, decode, expect_float, expect_int, expect_string, expect_strings
from .errors import ClientClosedError, ClientInitError, ConfigNotFoundError, RemoteConfigError
from .scheduler import DEFAULT_REFRESH_INTERVAL, RefreshStatus, RefreshWorker, StatusTracker, effective_interval
from .sources import Repository

T = TypeVar("T")

log = logging.getLogger(__name__)

class Client:
    def __init__(
        self,
        repository: Repository,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        *,
        register_default: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.refresh_interval = effective_interval(refresh_interval)
        self._clock = clock
        self._closed = threading.Event()
        self._close_lock = threading.Lock()
        self._cancel = threading.Event()
        self._tracker = StatusTracker(repository.get_name(), clock)
        self._worker = RefreshWorker(repository, self.refresh_interval, self._tracker, self._cancel)

        err = self._worker.refresh_once()
        if err is not None:
            raise ClientInitError(f"initial refresh of {repository.get_name()!r} failed: {err}") from err

        self._worker.start()
        log.info(
            "client ready",
            extra={"event": "client.init", "extra_fields": {
                "repository": repository.get_name(),
                "interval_s": self.refresh_interval,
                "default": register_default,
            }},
        )
        if register_default:
            registry.set_default(self)

    # lifecycle

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Stop background refresh. Safe to call repeatedly and from several threads."""
        with self._close_lock:
            if self._closed.is_set():
                return
            self._closed.set()
            self._cancel.set()
        self._worker.join()
        log.info(
            "client closed",
            extra={"event": "client.close", "extra_fields": {"repository": self.repository.get_name()}},
        )

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # lookups

    def _raw(self, name: str) -> Any:
        if self._closed.is_set():
            raise ClientClosedError()
        value, present = self.repository.get_data(name)
        if not present:
            raise ConfigNotFoundError(name)
        return value

    def get_config(self, name: str, default: Any = None, *, shape: Any = None) -> Lookup:
        """
        Look up `name` and decode it into `shape` (by default the type of
        `default`, or anything when no default is given).
        """
        if shape is None:
            shape = Any if default is None else type(default)
        try:
            return Lookup(decode(self._raw(name), shape))
        except RemoteConfigError as e:
            return Lookup(default, e)

    def _typed(self, name: str, default: T, check: Callable[[str, Any], T]) -> Lookup:
        try:
            return Lookup(check(name, self._raw(name)))
        except RemoteConfigError as e:
            return Lookup(default, e)

    def get_string(self, name: str, default: str = "") -> Lookup:
        return self._typed(name, default, expect_string)

    def get_int(self, name: str, default: int = 0) -> Lookup:
        return self._typed(name, default, expect_int)

    def get_float(self, name: str, default: float = 0.0) -> Lookup:
        return self._typed(name, default, expect_float)

    def get_strings(self, name: str, default: list[str] | None = None) -> Lookup:
        return self._typed(name, list(default) if default is not None else [], expect_strings)

    # health

    def get_refresh_status(self) -> RefreshStatus:
        return self._tracker.snapshot()

    def is_healthy(self) -> bool:
        # Staleness only: a failed refresh while the data is still fresh keeps the client healthy.
        if self._closed.is_set():
            return False
        return not self._tracker.snapshot().is_stale(self.refresh_interval, self._clock())

    def __repr__(self) -> str:
        state = "closed" if self.closed else "active"
        return f"Client(repository={self.repository.get_name()!r}, interval={self.refresh_interval}, {state})"
