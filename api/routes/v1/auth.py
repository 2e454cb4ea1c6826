"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes (all form-encoded POST):
  POST /api/v1/auth/register  -- email_base64, password_base64 -> session
  POST /api/v1/auth/login     -- email_base64, password_base64 -> session
  POST /api/v1/auth/logout    -- session_id                    -> status
  POST /api/v1/auth/session   -- session_id                    -> user_id, email

Response contract:
  Outcomes the caller must act on (invalid email, duplicate account, bad
  credentials, unknown or expired session) are HTTP 200 with the outcome in
  the body's `status` field (400/401/409).
  Malformed base64 or non-UTF-8 credentials are rejected with HTTP 400 before
  the auth core is called.
  Server-side failures are HTTP 500 with the generic error envelope; nothing
  about the cause is exposed.

Security:
  Cache-Control: no-store on every response that can carry a session id.
  Credentials and session ids are never logged here.
"""

from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from api.models import AuthResponse, ErrorDetail, ErrorResponse, LogoutResponse, SessionResponse
from auth.facade import AuthFacade
from auth.models import AuthResult

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decode_base64_field(name: str, value: str) -> str:
    """Strictly decode a base64-encoded UTF-8 form field or raise HTTP 400."""
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_encoding", "message": f"{name} must be base64-encoded UTF-8."},
        ) from None


def _facade(request: Request) -> AuthFacade:
    return request.app.state.auth


def _respond(result: AuthResult, body: BaseModel) -> JSONResponse:
    if result.status == 500:
        resp = JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")
            ).model_dump(),
        )
    else:
        resp = JSONResponse(status_code=200, content=body.model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _auth_response(result: AuthResult) -> JSONResponse:
    return _respond(
        result,
        AuthResponse(
            status=result.status,
            message=result.message,
            session_id=result.session_id,
            expiry=result.expiry,
        ),
    )


# ---------------------------------------------------------------------------
# Endpoints
#
# Plain `def` handlers: the auth core does blocking DB and bcrypt work, so
# FastAPI runs each request in its threadpool.
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse)
def register(
    request: Request,
    email_base64: str = Form(...),
    password_base64: str = Form(...),
) -> JSONResponse:
    """Create an account and return a fresh session."""
    email = _decode_base64_field("email_base64", email_base64)
    password = _decode_base64_field("password_base64", password_base64)
    return _auth_response(_facade(request).register(email, password))


@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    email_base64: str = Form(...),
    password_base64: str = Form(...),
) -> JSONResponse:
    """Check credentials and return a fresh session.

    Unknown email and wrong password produce the identical response.
    """
    email = _decode_base64_field("email_base64", email_base64)
    password = _decode_base64_field("password_base64", password_base64)
    return _auth_response(_facade(request).login(email, password))


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, session_id: str = Form(...)) -> JSONResponse:
    """Revoke a session. status 401 in the body if it did not exist."""
    result = _facade(request).logout(session_id)
    return _respond(result, LogoutResponse(status=result.status))


@router.post("/auth/session", response_model=SessionResponse)
def session(request: Request, session_id: str = Form(...)) -> JSONResponse:
    """Resolve a session id to the owning user's id and email."""
    result = _facade(request).whoami(session_id)
    return _respond(
        result,
        SessionResponse(
            status=result.status,
            user_id=result.user_id,
            email=result.email,
            message=result.message,
        ),
    )
