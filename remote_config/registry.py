"""
Process-wide default Client used by the package-level convenience functions.

A new Client registers itself here unless built with
`register_default=False`; `set_default` replaces (or clears) it explicitly.
Prefer passing a Client around; these helpers are for code that cannot.
"""
import threading
from typing import TYPE_CHECKING, Any

from .decode import Lookup
from .errors import NoDefaultClientError

if TYPE_CHECKING:
    from .client import Client

_lock = threading.Lock()
_default: "Client | None" = None

def set_default(client: "Client | None") -> "Client | None":
    """Install `client` as the default and return the one it replaced."""
    global _default
    with _lock:
        previous, _default = _default, client
    return previous

def get_default() -> "Client | None":
    with _lock:
        return _default

def get_config(name: str, default: Any = None, *, shape: Any = None) -> Lookup:
    client = get_default()
    if client is None:
        return Lookup(default, NoDefaultClientError())
    return client.get_config(name, default, shape=shape)

def get_string(name: str, default: str = "") -> Lookup:
    client = get_default()
    if client is None:
        return Lookup(default, NoDefaultClientError())
    return client.get_string(name, default)

def get_int(name: str, default: int = 0) -> Lookup:
    client = get_default()
    if client is None:
        return Lookup(default, NoDefaultClientError())
    return client.get_int(name, default)

def get_float(name: str, default: float = 0.0) -> Lookup:
    client = get_default()
    if client is None:
        return Lookup(default, NoDefaultClientError())
    return client.get_float(name, default)

def get_strings(name: str, default: list[str] | None = None) -> Lookup:
    client = get_default()
    if client is None:
        return Lookup(list(default) if default is not None else [], NoDefaultClientError())
    return client.get_strings(name, default)

def is_healthy() -> bool:
    client = get_default()
    return client is not None and client.is_healthy()
