"""
Tenant Context Middleware.

Every request outside PUBLIC_PATHS must carry a valid access token. The
decoded claims are placed on request.state (organization_id, user_id,
user_email, user_role) and every query downstream is scoped by them, so a
mistake here leaks data across organizations.

The token is read from the Authorization header, or from ?token= for
evidence downloads opened directly in a browser tab.
"""

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from complianceos.auth.jwt import TokenError, decode_token

logger = structlog.get_logger(__name__)

PUBLIC_PATHS = frozenset({
    "/health",
    "/ready",
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/invitations/accept",
    "/api/v1/invitations/lookup",
    "/docs",
    "/openapi.json",
    "/redoc",
})


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": detail})


class TenantMiddleware(BaseHTTPMiddleware):
    """Resolve the organization and user behind each request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        # Preflight is answered by CORSMiddleware
        if request.method == "OPTIONS" or self.is_public(request.url.path):
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            return _unauthorized("Missing authentication token")

        try:
            claims = decode_token(token)
        except TokenError as e:
            logger.warning("tenant_auth_failed", error=str(e), path=request.url.path)
            return _unauthorized("Invalid or expired token")

        request.state.organization_id = claims.organization_id
        request.state.user_id = claims.user_id
        request.state.user_email = claims.email
        request.state.user_role = claims.role
        return await call_next(request)

    @staticmethod
    def is_public(path: str) -> bool:
        return path in PUBLIC_PATHS or path.rstrip("/") in PUBLIC_PATHS

    @staticmethod
    def _extract_token(request: Request) -> str | None:
        scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
        return request.query_params.get("token") or None
