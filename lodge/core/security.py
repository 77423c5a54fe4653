import logging
from typing import Optional, Sequence

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

INSECURE_JWT_SECRET = "dev-secret-please-change"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response.

    Responses to authenticated requests carry member records (CPF, phone,
    finances), so they are also marked ``no-store``.
    """

    def __init__(
        self,
        app,
        *,
        enable_hsts: bool = True,
        csp: Optional[str] = None,
    ) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.csp = csp

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "same-origin")
        if "authorization" in request.headers:
            headers.setdefault("Cache-Control", "no-store")
        if self.enable_hsts and request.url.scheme == "https":
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        if self.csp:
            headers.setdefault("Content-Security-Policy", self.csp)

        return response


def log_security_warnings(
    jwt_secret: str,
    email_backend: str,
    storage_backend: str,
    cors_origins: Sequence[str] = (),
) -> None:
    if jwt_secret == INSECURE_JWT_SECRET:
        logger.warning("JWT secret is using the insecure default; set JWT_SECRET in the environment.")
    if (email_backend or "local").lower().strip() == "local":
        logger.warning("Email backend is set to local stub; contact replies will only be written to disk.")
    if (storage_backend or "local").lower().strip() == "local":
        logger.info("File storage backend is local; uploads are kept on this host.")
    if "*" in cors_origins:
        logger.warning("CORS allows any origin with credentials; list the portal origins in CORS_ALLOW_ORIGINS.")
