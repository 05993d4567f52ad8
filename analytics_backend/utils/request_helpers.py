"""
Request helper functions

FastAPI dependencies that resolve the authenticated caller from request.state
(set by IdentityMiddleware).
"""
from fastapi import Depends, HTTPException, Request, status

from analytics_backend.services.auth_service import AuthError, AuthService, get_auth_service
from analytics_backend.services.dto import AuthUser
from analytics_backend.utils.logger import get_logger

logger = get_logger(__name__)


def get_request_email(request: Request) -> str:
    """
    Extract the caller's email from request state

    Args:
        request: FastAPI Request object

    Returns:
        email: lowercased email, empty string when absent
    """
    return getattr(request.state, "email", "") or ""


def get_current_user(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthUser:
    """
    Resolve the authenticated user, translating auth errors to HTTP errors
    """
    try:
        return auth_service.require_auth(get_request_email(request))
    except AuthError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_payload())


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Only administrators may preview compiled queries and lineage"""
    if not user.is_admin:
        logger.warning(f"Non-admin access denied: sis_user_id={user.sis_user_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Forbidden: admin only"},
        )
    return user
