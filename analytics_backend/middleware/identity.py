"""
Identity middleware.

Extracts the caller's email from the X-Email header (injected by the
upstream SSO gateway) and stores it in request.state for the auth dependency.
"""
import os

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from analytics_backend.utils.logger import get_logger

logger = get_logger(__name__)


def dev_bypass_email() -> str:
    """
    DEV_EMAIL when SKIP_AUTH=true outside production, otherwise empty.
    """
    if os.getenv("SKIP_AUTH", "").lower() != "true":
        return ""
    if os.getenv("APP_ENV", "development").lower() == "production":
        return ""
    return os.getenv("DEV_EMAIL", "").strip()


class IdentityMiddleware(BaseHTTPMiddleware):
    """
    Middleware to extract identity information from request headers.

    Sets request.state.email (lowercased, may be empty). Authentication
    itself happens in the route dependency so that public endpoints such
    as /health keep working without the header.
    """

    async def dispatch(self, request: Request, call_next):
        email = (request.headers.get("X-Email") or "").strip()

        if not email:
            email = dev_bypass_email()
            if email:
                logger.debug(f"Dev auth bypass: {request.method} {request.url.path} as {email}")

        request.state.email = email.lower()

        response = await call_next(request)
        return response
