"""
Configuration sources.

Anything with `refresh`, `get_data`, `get_raw_data` and `get_name` can be
served or consumed; `BaseRepository` supplies the snapshot handling so a
backend only has to implement `fetch()`.
"""
import copy
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlparse

import httpx

from .errors import SourceError
from .store import Snapshot, SnapshotStore, parse_snapshot

log = logging.getLogger(__name__)

@runtime_checkable
class Repository(Protocol):
    def refresh(self) -> None:
        """Fetch and decode the latest payload; raise without touching the held snapshot on failure."""

    def get_data(self, key: str) -> tuple[Any, bool]:
        """Return (value, present) from the current snapshot."""

    def get_raw_data(self) -> bytes:
        """Return the encoded bytes of the current snapshot."""

    def get_name(self) -> str:
        """Stable identifier used for routing and status maps."""

class BaseRepository(SnapshotStore):
    def __init__(self, name: str):
        super().__init__()
        self.name = name

    def fetch(self) -> bytes:
        raise NotImplementedError

    def refresh(self) -> None:
        # fetch + decode happen before the lock is taken; only the swap is locked
        raw = self.fetch()
        snap: Snapshot = parse_snapshot(raw)
        self.swap(snap)
        log.debug(
            "snapshot swapped",
            extra={"event": "source.swap", "extra_fields": {
                "repository": self.name, "bytes": len(raw), "keys": len(snap.data),
            }},
        )

    def get_data(self, key: str) -> tuple[Any, bool]:
        data = self.current().data
        if key not in data:
            return None, False
        return copy.deepcopy(data[key]), True

    def get_raw_data(self) -> bytes:
        return self.current().raw

    def get_name(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

class FileRepository(BaseRepository):
    """YAML file on the local filesystem."""

    def __init__(self, path: str | Path, name: str | None = None):
        self.path = Path(path).expanduser().resolve()
        super().__init__(name or self.path.stem)

    @property
    def url(self) -> str:
        return self.path.as_uri()

    def fetch(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise SourceError(f"cannot read {self.path}: {e}") from e

class WebRepository(BaseRepository):
    """YAML document fetched with an HTTP GET."""

    def __init__(
        self,
        url: str,
        name: str | None = None,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        super().__init__(name or _name_from_url(url))
        self._client = client
        self._owns_client = client is None
        self._client_lock = threading.Lock()
        self._client_error: Exception | None = None

    def _get_client(self) -> httpx.Client:
        # Concurrent first callers share one construction attempt; a failure sticks.
        with self._client_lock:
            if self._client is None:
                if self._client_error is not None:
                    raise SourceError(f"http client unavailable: {self._client_error}") from self._client_error
                try:
                    self._client = httpx.Client(timeout=self.timeout)
                except Exception as e:
                    self._client_error = e
                    raise SourceError(f"http client unavailable: {e}") from e
            return self._client

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/yaml, text/yaml, */*"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def fetch(self) -> bytes:
        client = self._get_client()
        try:
            r = client.get(self.url, headers=self._get_headers())
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise SourceError(f"GET {self.url} failed: {e}") from e
        return r.content

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None and self._owns_client:
                self._client.close()
                self._client = None

def _name_from_url(url: str) -> str:
    tail = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return Path(tail).stem or urlparse(url).hostname or "remote"

def repository_from_uri(uri: str, name: str | None = None, **kwargs: Any) -> BaseRepository:
    """Build a repository for `uri`: http(s) URLs are fetched, file URLs and bare paths are read."""
    scheme = urlparse(uri).scheme.lower()
    if scheme in ("http", "https"):
        return WebRepository(uri, name, **kwargs)
    if scheme == "file":
        return FileRepository(urlparse(uri).path, name)
    if scheme == "" or len(scheme) == 1:  # bare path (or a Windows drive letter)
        return FileRepository(uri, name)
    raise ValueError(f"unsupported repository uri: {uri!r}")
