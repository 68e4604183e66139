import logging
import time
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .auth import authenticate

if TYPE_CHECKING:
    from .server import Server

RAW_MEDIA_TYPE = "application/x-yaml"

log = logging.getLogger(__name__)

def _statuses(server: "Server") -> dict[str, dict[str, Any]]:
    return {name: st.to_dict() for name, st in server.get_repository_status().items()}

def create_app(server: "Server", auth_key: str | None = None) -> FastAPI:
    """
    HTTP surface of a Server. Health and readiness are always open; when
    `auth_key` is set every other route (including /status) requires it.
    """
    app = FastAPI(
        title="Remote config server",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Middleware added later wraps the earlier ones, so the access log sees 401s too.
    if auth_key:
        app.middleware("http")(authenticate(auth_key))

    # Access log + latency
    @app.middleware("http")
    async def access_logger(request: Request, call_next):
        t0 = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - t0) * 1000)
            log.info(
                "access",
                extra={
                    "event": "http.access",
                    "extra_fields": {
                        "path": request.url.path,
                        "method": request.method,
                        "status": status,
                        "latency_ms": latency_ms,
                    },
                },
            )

    # Endpoints
    @app.api_route("/health", methods=["GET", "HEAD"])
    async def health():
        healthy = server.is_healthy()
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "repositories": _statuses(server),
        }
        return JSONResponse(body, status_code=200 if healthy else 503)

    @app.api_route("/ready", methods=["GET", "HEAD"])
    async def ready():
        if server.is_ready():
            return JSONResponse({"status": "ready"}, status_code=200)
        return JSONResponse({"status": "not ready"}, status_code=503)

    @app.api_route("/status", methods=["GET", "HEAD"])
    async def status():
        return JSONResponse({
            "healthy": server.is_healthy(),
            "ready": server.is_ready(),
            "repositories": _statuses(server),
        })

    @app.api_route("/{name}", methods=["GET", "HEAD"])
    async def raw_snapshot(name: str):
        repo = server.repository(name)
        if repo is None:
            raise HTTPException(status_code=404, detail=f"Unknown repository '{name}'.")
        return Response(content=repo.get_raw_data(), media_type=RAW_MEDIA_TYPE)

    return app
