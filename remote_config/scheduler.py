import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable

from .sources import Repository

MIN_REFRESH_INTERVAL = 5.0   # seconds; shorter requests are raised to this
STALENESS_FACTOR = 2         # stale once the last success is older than this many intervals
DEFAULT_REFRESH_INTERVAL = 30.0

log = logging.getLogger(__name__)

def effective_interval(requested: float) -> float:
    floor = MIN_REFRESH_INTERVAL
    if requested < floor:
        log.warning(
            "refresh interval too low, raising it to the minimum",
            extra={"event": "refresh.interval_floor", "extra_fields": {
                "requested_s": requested, "effective_s": floor,
            }},
        )
        return floor
    return float(requested)

@dataclass(frozen=True)
class RefreshStatus:
    name: str
    last_refresh_time: float | None = None  # epoch seconds of the last successful refresh
    last_error: str | None = None
    refresh_count: int = 0
    error_count: int = 0
    healthy: bool = False                   # most recent refresh succeeded

    def is_stale(self, interval: float, now: float) -> bool:
        if self.last_refresh_time is None:
            return True
        return (now - self.last_refresh_time) > STALENESS_FACTOR * interval

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "last_refresh_time": (
                datetime.fromtimestamp(self.last_refresh_time, tz=timezone.utc).isoformat()
                if self.last_refresh_time is not None else None
            ),
        }
        if self.last_error is not None:
            out["last_refresh_error"] = self.last_error
        out["refresh_count"] = self.refresh_count
        out["refresh_errors"] = self.error_count
        out["is_healthy"] = self.healthy
        return out

class StatusTracker:
    """Single writer (the refresh worker), many readers. Every write publishes a new frozen value."""

    def __init__(self, name: str, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._lock = threading.Lock()
        self._status = RefreshStatus(name=name)

    def record_success(self) -> RefreshStatus:
        now = self.clock()
        with self._lock:
            self._status = replace(
                self._status,
                last_refresh_time=now,
                last_error=None,
                refresh_count=self._status.refresh_count + 1,
                healthy=True,
            )
            return self._status

    def record_error(self, err: BaseException) -> RefreshStatus:
        with self._lock:
            self._status = replace(
                self._status,
                last_error=str(err) or type(err).__name__,
                error_count=self._status.error_count + 1,
                healthy=False,
            )
            return self._status

    def snapshot(self) -> RefreshStatus:
        with self._lock:
            return self._status

class RefreshWorker:
    """
    Background refresh of one repository. The loop wakes every `interval`
    seconds or as soon as `cancel` is set, and exits on the latter.
    """
    def __init__(
        self,
        repository: Repository,
        interval: float,
        tracker: StatusTracker,
        cancel: threading.Event,
    ):
        self.repository = repository
        self.interval = interval
        self.tracker = tracker
        self._cancel = cancel
        self._thread: threading.Thread | None = None
        self.last_cycle_ms: int | None = None

    def refresh_once(self) -> Exception | None:
        """Refresh now; the outcome is recorded and logged, and a failure is returned, never raised."""
        name = self.repository.get_name()
        t0 = time.time()
        try:
            self.repository.refresh()
        except Exception as e:
            status = self.tracker.record_error(e)
            self.last_cycle_ms = int((time.time() - t0) * 1000)
            log.error(
                "error refreshing repository",
                extra={"event": "refresh.error", "extra_fields": {
                    "repository": name,
                    "error": repr(e),
                    "cycle_ms": self.last_cycle_ms,
                    "errors": status.error_count,
                }},
            )
            return e
        status = self.tracker.record_success()
        self.last_cycle_ms = int((time.time() - t0) * 1000)
        log.info(
            "repository refreshed",
            extra={"event": "refresh.ok", "extra_fields": {
                "repository": name,
                "cycle_ms": self.last_cycle_ms,
                "refreshes": status.refresh_count,
            }},
        )
        return None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"refresh:{self.repository.get_name()}",
            daemon=True,
        )
        self._thread.start()

    def _run(self) -> None:
        while not self._cancel.wait(self.interval):
            self.refresh_once()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the loop to exit; True once the thread is gone (or was never started)."""
        t = self._thread
        if t is None:
            return True
        if t is not threading.current_thread():
            t.join(timeout)
        return not t.is_alive()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
