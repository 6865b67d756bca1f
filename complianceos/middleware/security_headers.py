"""
Security Headers Middleware (OWASP A05).

JSON API responses get a deny-everything CSP. Evidence downloads are
user-uploaded content, so they are additionally sandboxed and marked
attachment-only for browsers that honour X-Download-Options.
"""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
    "Cache-Control": "no-store",
}

DOWNLOAD_HEADERS = {
    "Content-Security-Policy": "sandbox; default-src 'none'",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-Download-Options": "noopen",
}


def is_file_download(path: str) -> bool:
    return path.startswith("/api/v1/clients/") and path.endswith("/download")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        headers = dict(SECURITY_HEADERS)
        if is_file_download(request.url.path):
            headers.update(DOWNLOAD_HEADERS)
        for header, value in headers.items():
            response.headers[header] = value
        return response
