"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create a principal; 201
  POST /api/v1/auth/login      -- password login; access + refresh token
  POST /api/v1/auth/refresh    -- rotate a refresh token; new pair
  POST /api/v1/auth/logout     -- revoke a refresh token; 204
  GET  /api/v1/auth/me         -- current principal (requires Bearer token)

Handlers are plain `def`: bcrypt and the SQLAlchemy calls block, so FastAPI
runs them in its worker thread pool, one request per thread.

AuthError subclasses raised by the service are not caught here. The
exception handler in api/main.py maps them to status codes and the error
envelope, so every route reports failures the same way.

Security:
  [H2] POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] Login, refresh and me collapse every credential failure into one
       invalid_credentials / unauthorized shape. Never add a branch here that
       distinguishes "unknown email" from "wrong password".
  [M5] Cache-Control: no-store on every response that carries a token.
"""

import time

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    CredentialsRequest,
    LoginResponse,
    PrincipalResponse,
    RefreshTokenRequest,
    TokenPairResponse,
)
from auth.dependencies import get_auth_service, get_current_principal_id
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/login:     public, rate limited
# - POST /api/v1/auth/refresh:   public -- the refresh token is the credential
# - POST /api/v1/auth/logout:    public -- the refresh token is the credential
# - GET  /api/v1/auth/me:        requires Bearer access token
router = APIRouter()


def _deadline(request: Request) -> float:
    """Monotonic deadline for the service call handling this request."""
    return time.monotonic() + request.app.state.request_timeout


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"  # [M5]


@router.post("/auth/register", response_model=PrincipalResponse, status_code=201)
def register(
    request: Request,
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> PrincipalResponse:
    """Register a new principal. The email is stored trimmed and lowercased."""
    view = service.register(body.email, body.password, deadline=_deadline(request))
    return PrincipalResponse.from_view(view)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(get_settings().login_rate_limit)  # [H2] below @router so the route holds the limited wrapper
def login(
    request: Request,
    response: Response,
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    """Authenticate with email and password.

    Wrong email and wrong password both produce 401 invalid_credentials,
    and both cost one bcrypt check [C1].
    """
    result = service.login(body.email, body.password, deadline=_deadline(request))
    _no_store(response)
    pair = TokenPairResponse.build(
        result.access_token,
        int(service.signer.ttl.total_seconds()),
        result.refresh_token,
    )
    return LoginResponse(**pair.model_dump(), user=PrincipalResponse.from_view(result.principal))


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(
    request: Request,
    response: Response,
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    """Exchange a refresh token for a new access/refresh pair. The old refresh token is revoked."""
    pair = service.refresh(body.refresh_token, deadline=_deadline(request))
    _no_store(response)
    return TokenPairResponse.build(
        pair.access_token,
        int(service.signer.ttl.total_seconds()),
        pair.refresh_token,
    )


@router.post("/auth/logout", status_code=204)
def logout(
    request: Request,
    body: RefreshTokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> Response:
    """Revoke a refresh token. Unknown or already-revoked tokens still return 204."""
    service.logout(body.refresh_token, deadline=_deadline(request))
    return Response(status_code=204)


@router.get("/auth/me", response_model=PrincipalResponse)
def me(
    request: Request,
    principal_id: str = Depends(get_current_principal_id),
    service: AuthService = Depends(get_auth_service),
) -> PrincipalResponse:
    """Return the principal the access token was issued to."""
    view = service.get_principal(principal_id, deadline=_deadline(request))
    return PrincipalResponse.from_view(view)
