"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the gate and
routes do the work; these only own the shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from auth.errors import DigestFailure


@dataclass
class User:
    """A local account.

    hashed_password is the bcrypt hash used by Basic auth and token login.

    digest_secret is the cleartext-equivalent value Digest auth needs to
    rebuild HA1 = MD5(username:realm:secret). One-way hashes cannot produce
    it, so Digest-enabled accounts carry it alongside the bcrypt hash. None
    disables Digest for the account.
    """

    username: str
    id: int | None = None
    hashed_password: str | None = None
    digest_secret: str | None = None
    created_at: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class DigestUserRecord:
    """What the Digest gate needs from the identity store, and nothing more."""

    user_id: int
    username: str
    secret: str


@dataclass(frozen=True)
class DigestCredential:
    """A parsed `Authorization: Digest ...` header.

    Built fresh per request and never persisted. Optional parameters are None
    when the client omitted them; validate_credential() enforces which ones
    must be present.
    """

    username: str | None = None
    realm: str | None = None
    nonce: str | None = None
    uri: str | None = None
    response: str | None = None
    qop: str | None = None
    cnonce: str | None = None
    nc: str | None = None
    opaque: str | None = None
    algorithm: str | None = None


@dataclass(frozen=True)
class Accepted:
    user_id: int
    username: str


@dataclass(frozen=True)
class Rejected:
    """A failed gate walk.

    challenge is the complete WWW-Authenticate value, built around a nonce
    issued for this rejection only.
    """

    reason: DigestFailure
    challenge: str


AuthOutcome = Union[Accepted, Rejected]
