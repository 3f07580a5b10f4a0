"""Security headers middleware.

Learn: The API returns JSON (plus the interactive docs), so the headers are strict:
- X-Content-Type-Options: no MIME sniffing of JSON into HTML
- X-Frame-Options: never rendered in a frame
- Referrer-Policy: don't leak post URLs to other origins
- Strict-Transport-Security: only sent over HTTPS, or in production
  behind a TLS-terminating proxy
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

API_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to every API response."""

    def __init__(self, app, force_hsts: bool = False):
        super().__init__(app)
        self.force_hsts = force_hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        for name, value in API_HEADERS.items():
            response.headers.setdefault(name, value)
        if self.force_hsts or request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response
