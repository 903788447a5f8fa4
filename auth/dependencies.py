"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes authenticate with an access token in the
Authorization: Bearer <token> header. Verification is AuthService.authorize(),
which never touches the database.

try_get_principal_id() is the soft variant (returns None on failure).
get_current_principal_id() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import Unauthorized
from auth.service import AuthService

logger = logging.getLogger("tokenwarden.api")

_BEARER_PREFIX = "Bearer "


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService wired into app.state by the lifespan."""
    return request.app.state.auth_service


def try_get_principal_id(request: Request) -> str | None:
    """Authenticate the request from its Bearer token.

    Returns the principal ID on success, None on any failure. Never raises --
    callers that need a hard 401 should use get_current_principal_id().
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith(_BEARER_PREFIX):
        return None
    token = auth_header[len(_BEARER_PREFIX) :].strip()
    if not token:
        return None
    try:
        return get_auth_service(request).authorize(token)
    except Unauthorized as exc:
        # The reason is diagnostic only; the client always sees one 401 shape.
        logger.info("Access token rejected: %s", exc.code)
        return None


def get_current_principal_id(request: Request) -> str:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal_id: str = Depends(get_current_principal_id)): ...
    """
    principal_id = try_get_principal_id(request)
    if principal_id is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal_id
