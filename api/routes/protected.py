"""
api/routes/protected.py -- Digest-protected demo resource.

GET /protected is the canonical target for Digest clients (curl --digest,
`python main.py`). The request URI a client hashes into HA2 is exactly
"/protected", with no version prefix.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import IdentityResponse
from auth.dependencies import require_digest_user
from auth.models import Accepted

router = APIRouter()


@router.get("/protected", response_model=IdentityResponse)
def protected(user: Accepted = Depends(require_digest_user)) -> IdentityResponse:
    return IdentityResponse.from_outcome(user, scheme="digest")
