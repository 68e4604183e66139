"""
remote_config: configuration snapshots fetched from remote sources, kept
fresh in the background and served in-process (Client) or over HTTP (Server).

    from remote_config import Client, FileRepository, get_string

    client = Client(FileRepository("app.yaml"), refresh_interval=30)
    name, err = get_string("name", "anonymous")
"""
from .client import Client
from .decode import Lookup
from .errors import (
    ClientClosedError,
    ClientInitError,
    ConfigNotFoundError,
    DecodeError,
    ListenError,
    NoDefaultClientError,
    RemoteConfigError,
    RepositoryConfigError,
    ShutdownError,
    SourceError,
    TypeMismatchError,
)
from .registry import (
    get_config,
    get_default,
    get_float,
    get_int,
    get_string,
    get_strings,
    is_healthy,
    set_default,
)
from .scheduler import MIN_REFRESH_INTERVAL, RefreshStatus
from .server import Server
from .sources import BaseRepository, FileRepository, Repository, WebRepository, repository_from_uri

__all__ = [
    "BaseRepository",
    "Client",
    "ClientClosedError",
    "ClientInitError",
    "ConfigNotFoundError",
    "DecodeError",
    "FileRepository",
    "ListenError",
    "Lookup",
    "MIN_REFRESH_INTERVAL",
    "NoDefaultClientError",
    "RefreshStatus",
    "RemoteConfigError",
    "Repository",
    "RepositoryConfigError",
    "Server",
    "ShutdownError",
    "SourceError",
    "TypeMismatchError",
    "WebRepository",
    "get_config",
    "get_default",
    "get_float",
    "get_int",
    "get_string",
    "get_strings",
    "is_healthy",
    "repository_from_uri",
    "set_default",
]

__version__ = "0.1.0"
