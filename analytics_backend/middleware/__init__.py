"""
Middleware for the reporting backend

IdentityMiddleware extracts the caller's email from the X-Email header
(injected by the SSO gateway) and stores it in request.state.
"""
from analytics_backend.middleware.identity import IdentityMiddleware

__all__ = ["IdentityMiddleware"]
