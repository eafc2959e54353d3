"""
tests/helpers.py -- Plain helpers shared by the test modules.

digest_authorization() is an independent RFC 2617 client computation built
on hashlib directly, so route tests never verify the server with its own
helpers.
"""

from __future__ import annotations

import hashlib
import re

REALM = "Restricted Access"
NONCE_TTL = 300.0

_NONCE_RE = re.compile(r'nonce="([0-9a-f]+)"')


class FakeClock:
    """Monotonic stand-in whose time only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def md5_hex(data: str) -> str:
    return hashlib.md5(data.encode()).hexdigest()


def digest_authorization(
    nonce: str,
    *,
    username: str = "admin",
    password: str = "secret",
    realm: str = REALM,
    method: str = "GET",
    uri: str = "/protected",
    qop: str | None = None,
    nc: str = "00000001",
    cnonce: str = "0a4f113b",
    response: str | None = None,
) -> str:
    """Build an Authorization: Digest value the way an RFC 2617 client would."""
    ha1 = md5_hex(f"{username}:{realm}:{password}")
    ha2 = md5_hex(f"{method}:{uri}")
    if qop:
        expected = md5_hex(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")
        extra = f', qop={qop}, nc={nc}, cnonce="{cnonce}"'
    else:
        expected = md5_hex(f"{ha1}:{nonce}:{ha2}")
        extra = ""
    return (
        f'Digest username="{username}", realm="{realm}", nonce="{nonce}", uri="{uri}", '
        f'response="{response or expected}"{extra}'
    )


def nonce_from(challenge: str) -> str:
    """Extract the nonce value from a WWW-Authenticate challenge."""
    m = _NONCE_RE.search(challenge)
    assert m is not None, f"No nonce in challenge: {challenge!r}"
    return m.group(1)
