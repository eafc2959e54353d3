"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Three schemes, one dependency each:
  1. require_digest_user -- RFC 2617 Digest via the AuthGate on app.state.
  2. require_basic_user  -- Authorization: Basic, bcrypt-verified.
  3. require_bearer_user -- Authorization: Bearer <JWT>.

Every failure raises HTTP 401 with a scheme-appropriate WWW-Authenticate
header. The Digest failure body is identical for every gate reason, so a
client cannot tell "wrong nonce" from "wrong password" from "unknown user".

On success the identity is stored on request.state.user and also returned,
so handlers can take it either way.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

import base64
import binascii

from fastapi import HTTPException, Request

from auth.gate import AuthGate
from auth.models import Accepted, Rejected
from auth.tokens import authenticate_user, decode_access_token

BASIC_REALM = "Login Required"


def _unauthorized(message: str, challenge: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": message},
        headers={"WWW-Authenticate": challenge},
    )


def require_digest_user(request: Request) -> Accepted:
    """Require a valid Digest credential. Raises HTTP 401 with a fresh challenge otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: Accepted = Depends(require_digest_user)): ...
    """
    gate: AuthGate = request.app.state.auth_gate
    outcome = gate.evaluate(request.method, request.headers.get("Authorization"))
    if isinstance(outcome, Rejected):
        raise _unauthorized("Digest authentication required.", outcome.challenge)
    request.state.user = outcome
    return outcome


def require_basic_user(request: Request) -> Accepted:
    """Require a valid Basic credential checked against the bcrypt hash."""
    challenge = f'Basic realm="{BASIC_REALM}"'
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        raise _unauthorized("Basic authentication required.", challenge)
    try:
        decoded = base64.b64decode(auth_header[6:], validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise _unauthorized("Basic authentication required.", challenge) from None
    username, sep, password = decoded.partition(":")
    if not sep or not username or not password:
        raise _unauthorized("Basic authentication required.", challenge)

    user = authenticate_user(request.app.state.user_store, username, password)
    if user is None or user.id is None:
        raise _unauthorized("Invalid credentials.", challenge)
    identity = Accepted(user_id=user.id, username=user.username)
    request.state.user = identity
    return identity


def require_bearer_user(request: Request) -> Accepted:
    """Require a valid, unexpired JWT issued by POST /api/v1/auth/token."""
    auth_header = request.headers.get("Authorization", "")
    payload = decode_access_token(auth_header[7:]) if auth_header.startswith("Bearer ") else None
    if payload is None:
        raise _unauthorized("Authentication required.", "Bearer")
    user = request.app.state.user_store.get_by_id(payload["user_id"])
    if user is None or not user.is_active:
        raise _unauthorized("Authentication required.", "Bearer")
    identity = Accepted(user_id=user.id, username=user.username)
    request.state.user = identity
    return identity
