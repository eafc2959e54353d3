"""
auth/digest.py -- RFC 2617 Digest credential parsing and response verification.

Two halves, both free of I/O and shared state:

  Parsing: parse_digest_header() turns the raw Authorization value into a
      DigestCredential or raises MalformedHeader. validate_credential() then
      enforces the required parameters (MissingField / MissingQopParams).
      Parameters follow the RFC 2617 auth-param grammar: key=token or
      key="quoted-string", comma separated. Commas inside quoted strings do
      not split, and backslash escapes inside quotes are honoured.

  Verification: compute_ha1 / compute_ha2 / compute_response implement the
      MD5 construction. verify_response() picks the qop or legacy branch and
      compares in constant time. It returns False rather than raising so the
      gate has a single failure path.

Only algorithm=MD5 is offered in challenges; a credential naming any other
algorithm never verifies.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import fields

from auth.errors import MalformedHeader, MissingField, MissingQopParams
from auth.models import DigestCredential

SCHEME = "Digest"
ALGORITHM = "MD5"
QOP_AUTH = "auth"

REQUIRED_FIELDS = ("username", "realm", "nonce", "uri", "response")

_CREDENTIAL_FIELDS = frozenset(f.name for f in fields(DigestCredential))

# key=token | key="quoted-string", whole segment
_PARAM_RE = re.compile(r'^([A-Za-z0-9_\-]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^",\s]*)$')
_ESCAPE_RE = re.compile(r"\\(.)")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _split_params(text: str) -> list[str]:
    """Split on commas that are not inside a quoted string.

    Raises MalformedHeader on an unterminated quote.
    """
    segments: list[str] = []
    current: list[str] = []
    in_quotes = False
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\" and in_quotes:
            current.append(ch)
            escaped = True
        elif ch == '"':
            current.append(ch)
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            segments.append("".join(current))
            current = []
        else:
            current.append(ch)
    if in_quotes:
        raise MalformedHeader("Unterminated quoted string in digest parameters")
    segments.append("".join(current))
    return segments


def parse_auth_params(text: str) -> dict[str, str]:
    """Parse a comma-separated auth-param list into a dict.

    Keys are lower-cased. Quotes are stripped from quoted values. Blank list
    elements (e.g. a trailing comma) are skipped as RFC 2616 #rule allows.
    Any other segment that is not key=value raises MalformedHeader.
    """
    params: dict[str, str] = {}
    for segment in _split_params(text):
        segment = segment.strip()
        if not segment:
            continue
        m = _PARAM_RE.match(segment)
        if m is None:
            raise MalformedHeader(f"Cannot parse digest parameter: {segment[:40]!r}")
        key, value = m.group(1).lower(), m.group(2)
        if value.startswith('"'):
            value = _ESCAPE_RE.sub(r"\1", value[1:-1])
        params[key] = value
    return params


def parse_digest_header(header_value: str | None) -> DigestCredential:
    """Parse an `Authorization: Digest ...` value into a DigestCredential.

    The scheme token is matched case-insensitively. Parameters outside the
    credential's known fields are ignored.
    """
    if not header_value:
        raise MalformedHeader("Authorization header is empty")
    scheme, _, rest = header_value.strip().partition(" ")
    if scheme.lower() != SCHEME.lower():
        raise MalformedHeader("Authorization scheme is not Digest")
    if not rest.strip():
        raise MalformedHeader("Digest credentials carry no parameters")
    params = parse_auth_params(rest)
    return DigestCredential(**{k: v for k, v in params.items() if k in _CREDENTIAL_FIELDS})


def validate_credential(credential: DigestCredential) -> None:
    """Raise if a parsed credential lacks the parameters verification needs."""
    missing = [name for name in REQUIRED_FIELDS if not getattr(credential, name)]
    if missing:
        raise MissingField(missing)
    if credential.qop is not None and (not credential.cnonce or not credential.nc):
        raise MissingQopParams("qop was supplied without cnonce and nc")


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def _md5_hex(data: str) -> str:
    return hashlib.md5(data.encode("utf-8")).hexdigest()  # noqa: S324 -- mandated by RFC 2617


def compute_ha1(username: str, realm: str, secret: str) -> str:
    """HA1 = MD5(username:realm:secret)"""
    return _md5_hex(f"{username}:{realm}:{secret}")


def compute_ha2(method: str, uri: str) -> str:
    """HA2 = MD5(method:uri)"""
    return _md5_hex(f"{method}:{uri}")


def compute_response(
    ha1: str,
    nonce: str,
    ha2: str,
    qop: str | None = None,
    nc: str | None = None,
    cnonce: str | None = None,
) -> str:
    """Compute the request-digest.

    With qop:    MD5(HA1:nonce:nc:cnonce:qop:HA2)
    Without qop: MD5(HA1:nonce:HA2)  (RFC 2069 compatibility)
    """
    if qop is not None:
        return _md5_hex(f"{ha1}:{nonce}:{nc}:{cnonce}:{qop}:{ha2}")
    return _md5_hex(f"{ha1}:{nonce}:{ha2}")


def verify_response(
    credential: DigestCredential,
    secret: str | None,
    method: str,
    realm: str | None = None,
) -> bool:
    """Recompute the expected response and compare it to the client's.

    Args:
        credential: Parsed client credential.
        secret:     Cleartext-equivalent secret for credential.username.
        method:     HTTP method of the request being authenticated.
        realm:      Realm to hash into HA1. Defaults to the client-supplied
                    realm; the gate always passes the server's own realm.

    Returns False for any missing prerequisite, a non-MD5 algorithm or a qop
    other than "auth" instead of raising.
    """
    realm = realm if realm is not None else credential.realm
    if not (secret and method and realm and credential.username and credential.nonce):
        return False
    if credential.uri is None or not credential.response:
        return False
    if credential.algorithm is not None and credential.algorithm.upper() != ALGORITHM:
        return False
    if credential.qop is not None and (credential.qop != QOP_AUTH or not (credential.cnonce and credential.nc)):
        return False

    ha1 = compute_ha1(credential.username, realm, secret)
    ha2 = compute_ha2(method, credential.uri)
    expected = compute_response(ha1, credential.nonce, ha2, credential.qop, credential.nc, credential.cnonce)
    return hmac.compare_digest(expected.encode("ascii"), credential.response.lower().encode("utf-8"))


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


def build_challenge(realm: str, nonce: str, opaque: str) -> str:
    """Build the WWW-Authenticate value sent with every 401."""
    return f'{SCHEME} realm="{realm}", nonce="{nonce}", opaque="{opaque}", algorithm={ALGORITHM}, qop="{QOP_AUTH}"'
