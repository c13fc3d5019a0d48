"""
Security headers middleware
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from security_api.core.config import settings


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    The API serves JSON only, so the CSP is locked down except for the
    interactive docs pages.
    """

    CSP_DIRECTIVES = {
        "default-src": "'none'",
        "frame-ancestors": "'none'",
        "base-uri": "'none'",
        "form-action": "'none'",
    }

    DOCS_CSP_DIRECTIVES = {
        "default-src": "'self'",
        "script-src": "'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "style-src": "'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "img-src": "'self' data: https:",
        "frame-ancestors": "'self'",
        "object-src": "'none'",
    }

    def _build_csp(self, directives: dict) -> str:
        return "; ".join(f"{key} {value}" for key, value in directives.items())

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        is_docs_path = request.url.path in ("/docs", "/redoc", "/openapi.json")
        directives = self.DOCS_CSP_DIRECTIVES if is_docs_path else self.CSP_DIRECTIVES

        response.headers["Content-Security-Policy"] = self._build_csp(directives)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        if settings.ENVIRONMENT == "production" and not settings.DEBUG:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response
