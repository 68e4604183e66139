import hmac
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse

API_KEY_HEADER = "X-API-KEY"
UNAUTHENTICATED_PATHS = ("/health", "/ready")

CallNext = Callable[[Request], Awaitable[Response]]

def key_matches(supplied: str, expected: str) -> bool:
    # constant time in the length of the supplied key
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))

def authenticate(key: str, exempt: Iterable[str] = UNAUTHENTICATED_PATHS):
    """
    Build an HTTP middleware that lets a request through to `call_next` only
    when its X-API-KEY header equals `key`. Paths in `exempt` skip the check
    so liveness and readiness checks keep working while keys are rotated.
    """
    if not key:
        raise ValueError("authenticate() needs a non-empty key")
    exempt_paths = frozenset(exempt)

    async def middleware(request: Request, call_next: CallNext) -> Response:
        if request.url.path in exempt_paths:
            return await call_next(request)
        supplied = request.headers.get(API_KEY_HEADER, "")
        if not supplied or not key_matches(supplied, key):
            return PlainTextResponse("Unauthorized", status_code=401)
        return await call_next(request)

    return middleware
