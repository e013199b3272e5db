"""Security Headers Middleware

Every response gets the base headers; the content policy depends on what is
being served (JSON API, interactive docs or an uploaded prescription file).
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings

BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

DOCS_PATHS = ("/api/docs", "/api/redoc", "/api/openapi.json")

API_POLICY = "default-src 'none'; frame-ancestors 'none'"
# Uploaded images and PDFs are opened directly in the browser
MEDIA_POLICY = "default-src 'none'; img-src 'self'; object-src 'self'; frame-ancestors 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        path = request.url.path

        response.headers.update(BASE_HEADERS)

        # HSTS only when already on HTTPS
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        if path.startswith(settings.MEDIA_URL_PREFIX):
            response.headers["Content-Security-Policy"] = MEDIA_POLICY
        elif not path.startswith(DOCS_PATHS):
            response.headers["Content-Security-Policy"] = API_POLICY

        # Token responses
        if "/auth/" in path:
            response.headers["Cache-Control"] = "no-store"
            response.headers["Pragma"] = "no-cache"

        return response
