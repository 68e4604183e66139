import os
from typing import Callable, TypeVar

from .scheduler import DEFAULT_REFRESH_INTERVAL

N = TypeVar("N", int, float)

def _num_env(name: str, default: N, cast: Callable[[str], N], min_value: N | None, max_value: N | None) -> N:
    raw = os.getenv(name)
    try:
        value = cast(raw) if raw is not None and raw.strip() else default
    except ValueError:
        value = default
    if min_value is not None and value < min_value:
        value = min_value
    if max_value is not None and value > max_value:
        value = max_value
    return value

def int_env(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    """
    Integer setting from the environment, clamped to [min_value, max_value].
    Unset, blank or unparsable values fall back to `default`.
    """
    return _num_env(name, default, int, min_value, max_value)

def float_env(name: str, default: float, *, min_value: float | None = None, max_value: float | None = None) -> float:
    """Seconds-valued settings (intervals, timeouts); same fallback and clamping as `int_env`."""
    return _num_env(name, float(default), float, min_value, max_value)

def parse_sources(raw: str) -> list[tuple[str | None, str]]:
    """
    Parse CONFIG_SOURCES: comma-separated entries, each either `name=uri` or a
    bare `uri` (the repository then derives its own name).
    """
    sources: list[tuple[str | None, str]] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, uri = entry.partition("=")
        # "=" may also appear in a query string, so only a leading token counts as a name
        if sep and name and "/" not in name and ":" not in name:
            sources.append((name.strip(), uri.strip()))
        else:
            sources.append((None, entry))
    return sources

# Refresh
REFRESH_INTERVAL_SEC = float_env("REFRESH_INTERVAL_SEC", DEFAULT_REFRESH_INTERVAL)  # floored by the scheduler
SHUTDOWN_TIMEOUT_SEC = float_env("SHUTDOWN_TIMEOUT_SEC", 30.0, min_value=0.0)

# Sources and auth
CONFIG_SOURCES = os.getenv("CONFIG_SOURCES", "")
AUTH_KEY       = os.getenv("AUTH_KEY", "")                               # empty disables the gate

# Server bind & logging
BIND_HOST = os.getenv("BIND_HOST", "0.0.0.0")
PORT      = int_env("PORT", 8090, min_value=1, max_value=65535)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
