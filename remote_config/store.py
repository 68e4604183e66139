import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from .errors import DecodeError

@dataclass(frozen=True)
class Snapshot:
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    raw: bytes = b""
    fetched_at: float | None = None  # epoch seconds; None until the first fetch

EMPTY_SNAPSHOT = Snapshot()

def parse_snapshot(raw: bytes, fetched_at: float | None = None) -> Snapshot:
    """Decode a YAML payload into a read-only Snapshot. Raises DecodeError."""
    try:
        decoded = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise DecodeError(f"invalid YAML payload: {e}") from e
    if decoded is None:
        decoded = {}
    if not isinstance(decoded, dict):
        raise DecodeError(f"top-level YAML must be a mapping, got {type(decoded).__name__}")
    data = {str(k): v for k, v in decoded.items()}
    return Snapshot(
        data=MappingProxyType(data),
        raw=bytes(raw),
        fetched_at=time.time() if fetched_at is None else fetched_at,
    )

class SnapshotStore:
    """
    Holds one Snapshot reference. Writers build a complete Snapshot first and
    only swap the reference under the lock; readers take the reference under
    the same lock and then read from the immutable value.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._snap: Snapshot = EMPTY_SNAPSHOT

    def swap(self, snap: Snapshot) -> Snapshot:
        with self._lock:
            previous, self._snap = self._snap, snap
        return previous

    def current(self) -> Snapshot:
        with self._lock:
            return self._snap

