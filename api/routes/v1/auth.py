"""
api/routes/v1/auth.py -- One endpoint per authentication scheme.

Routes:
  GET  /api/v1/auth/digest  -- Digest-protected identity (RFC 2617)
  GET  /api/v1/auth/basic   -- Basic-protected identity (bcrypt)
  POST /api/v1/auth/token   -- username/password -> JWT
  GET  /api/v1/auth/me      -- Bearer-protected identity

Security:
  POST /token is rate-limited per IP (Settings.token_rate_limit).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on token responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import IdentityResponse, TokenRequest, TokenResponse
from auth.dependencies import require_basic_user, require_bearer_user, require_digest_user
from auth.models import Accepted
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token
from core.config import get_settings

router = APIRouter()


@router.get("/auth/digest", response_model=IdentityResponse)
def digest_identity(user: Accepted = Depends(require_digest_user)) -> IdentityResponse:
    """Return the Digest-authenticated identity."""
    return IdentityResponse.from_outcome(user, scheme="digest")


@router.get("/auth/basic", response_model=IdentityResponse)
def basic_identity(user: Accepted = Depends(require_basic_user)) -> IdentityResponse:
    """Return the Basic-authenticated identity."""
    return IdentityResponse.from_outcome(user, scheme="basic")


@limiter.limit(get_settings().token_rate_limit)  # must be ABOVE @router so FastAPI introspects the undecorated function
@router.post("/auth/token", response_model=TokenResponse)
def issue_token(request: Request, body: TokenRequest) -> JSONResponse:
    """Exchange a username and password for a signed JWT.

    Returns the same generic error for wrong username and wrong password
    to avoid leaking username existence.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None or user.id is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    expires_in = get_settings().token_expire_seconds
    token = create_access_token(user.id, user.username, expire_seconds=expires_in)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(access_token=token, expires_in=expires_in, username=user.username).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=IdentityResponse)
def bearer_identity(user: Accepted = Depends(require_bearer_user)) -> IdentityResponse:
    """Return the Bearer-authenticated identity."""
    return IdentityResponse.from_outcome(user, scheme="bearer")
