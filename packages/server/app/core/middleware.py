"""
Security middleware: CSRF protection and security headers.
"""

from __future__ import annotations

import hmac

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.auth import CSRF_COOKIE, SESSION_COOKIE

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# Machine-to-machine and anonymous endpoints never carry a browser session
CSRF_EXEMPT_PREFIXES = ("/api/webhooks", "/api/n8n", "/api/cron", "/api/dev", "/api/public")

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net https://js.stripe.com; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "connect-src 'self' https://api.stripe.com; "
        "frame-src https://js.stripe.com https://checkout.stripe.com; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

CSRF_ERROR = {
    "error": {
        "code": "CSRF_VALIDATION_FAILED",
        "message": "Token CSRF inválido ou ausente.",
        "status": 403,
    }
}


def csrf_required(request: Request) -> bool:
    """Only unsafe, cookie-authenticated browser requests to app routes need the token."""
    if request.method in SAFE_METHODS:
        return False
    if request.url.path.startswith(CSRF_EXEMPT_PREFIXES):
        return False
    # Bearer tokens are not sent automatically by the browser
    if request.headers.get("Authorization"):
        return False
    return SESSION_COOKIE in request.cookies


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit cookie check: the X-CSRF-Token header must echo the CSRF cookie."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if csrf_required(request):
            cookie_token = request.cookies.get(CSRF_COOKIE, "")
            header_token = request.headers.get("X-CSRF-Token", "")
            if not cookie_token or not hmac.compare_digest(cookie_token.encode(), header_token.encode()):
                return JSONResponse(status_code=403, content=CSRF_ERROR)
        return await call_next(request)
