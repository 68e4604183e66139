"""Exceptions raised (or returned inside a `Lookup`) by remote_config."""


class RemoteConfigError(Exception):
    """Base class for every error this package produces."""


class ConfigNotFoundError(RemoteConfigError):
    def __init__(self, name: str):
        super().__init__("config not found")
        self.name = name


class TypeMismatchError(RemoteConfigError, TypeError):
    def __init__(self, name: str, expected: str):
        super().__init__(f"config is not {expected}")
        self.name = name
        self.expected = expected


class DecodeError(RemoteConfigError, ValueError):
    """A value (or a whole payload) could not be decoded into the requested shape."""


class ClientClosedError(RemoteConfigError):
    def __init__(self):
        super().__init__("client is closed")


class ClientInitError(RemoteConfigError):
    """The first synchronous refresh of a new Client failed."""


class NoDefaultClientError(RemoteConfigError):
    def __init__(self):
        super().__init__("no default client registered")


class SourceError(RemoteConfigError):
    """A repository could not fetch its payload."""


class RepositoryConfigError(RemoteConfigError, ValueError):
    """Invalid repository set handed to a Server (duplicate or reserved names)."""


class ListenError(RemoteConfigError):
    """The HTTP listener could not be bound."""


class ShutdownError(RemoteConfigError):
    """The HTTP listener did not drain within the shutdown timeout."""
