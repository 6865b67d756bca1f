"""
Request Context Middleware.

Binds a request id plus the tenant, user and workspace behind the request
into the structlog context, so every log line emitted while handling it can
be traced back to one organization and client.
"""

import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

_WORKSPACE_PATH = re.compile(r"^/api/v1/clients/([0-9a-fA-F-]{36})(?:/|$)")


def workspace_id_from_path(path: str) -> str | None:
    match = _WORKSPACE_PATH.match(path)
    return match.group(1).lower() if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Runs after TenantMiddleware, so request.state already carries the caller."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id

        context = {"request_id": request_id, "method": request.method, "path": request.url.path}
        for key in ("organization_id", "user_id"):
            value = getattr(request.state, key, None)
            if value:
                context[key] = value
        client_id = workspace_id_from_path(request.url.path)
        if client_id:
            context["client_id"] = client_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status=response.status_code, elapsed_ms=elapsed_ms)
        return response
