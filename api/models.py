"""
API response models for the Twinsight Auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are separate
from the dataclasses in auth/models.py, which own the internal domain shape.
Route handlers map AuthResult onto them.

Auth responses always carry a numeric `status` field mirroring the outcome
(200/400/401/409). Absent optional fields serialize as null.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------


class AuthResponse(BaseModel):
    """Response for POST /auth/register and POST /auth/login."""

    model_config = ConfigDict(frozen=True)

    status: int
    message: Optional[str] = None
    session_id: Optional[str] = None
    expiry: Optional[int] = None


class LogoutResponse(BaseModel):
    """Response for POST /auth/logout. status is 200 (revoked) or 401 (unknown session)."""

    model_config = ConfigDict(frozen=True)

    status: int


class SessionResponse(BaseModel):
    """Response for POST /auth/session."""

    model_config = ConfigDict(frozen=True)

    status: int
    user_id: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for transport-level failures (400 encoding, 422, 500)."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str]
