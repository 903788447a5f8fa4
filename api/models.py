"""
API request and response models for TokenWarden REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Policy checks (password length, email normalization) live in AuthService,
not here. The field limits below only bound request size.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import PrincipalView, RefreshToken

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /auth/register and POST /auth/login."""

    email: str = Field(max_length=320)
    # Passwords are not stripped: whitespace is significant.
    password: str = Field(max_length=1024)


class RefreshTokenRequest(BaseModel):
    """Request body for POST /auth/refresh and POST /auth/logout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    refresh_token: str = Field(min_length=1, max_length=128)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Public identity fields. The password hash has no field here by construction."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: PrincipalView) -> "PrincipalResponse":
        return cls(
            id=view.id,
            email=view.email,
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class TokenPairResponse(BaseModel):
    """Response for POST /auth/refresh."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # access token lifetime in seconds
    refresh_token: str
    refresh_token_expires_at: datetime

    @classmethod
    def build(cls, access_token: str, expires_in: int, refresh_token: RefreshToken) -> "TokenPairResponse":
        return cls(
            access_token=access_token,
            expires_in=expires_in,
            refresh_token=refresh_token.token,
            refresh_token_expires_at=refresh_token.expires_at,
        )


class LoginResponse(TokenPairResponse):
    """Response for POST /auth/login: the token pair plus the principal."""

    user: PrincipalResponse


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    db: str = "up"
    version: str
