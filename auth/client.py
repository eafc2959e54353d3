"""
auth/client.py -- Client side of the Digest challenge-response flow.

Used by the `main.py` CLI to exercise a running server:

  1. Send the request with no credentials and expect 401.
  2. Parse the WWW-Authenticate challenge (realm, nonce, opaque, qop).
  3. Compute the response with the same MD5 helpers the server verifies
     with -- qop=auth when the server offers it, legacy mode otherwise.
  4. Repeat the request with the Authorization header.

parse_challenge() and build_authorization() are pure; only
fetch_with_digest() touches the network.
"""

from __future__ import annotations

import logging
import secrets
from urllib.parse import urlsplit

import requests

from auth.digest import ALGORITHM, QOP_AUTH, SCHEME, compute_ha1, compute_ha2, compute_response, parse_auth_params
from auth.errors import MalformedHeader

logger = logging.getLogger("authlab.client")

# Module-level session shared across calls for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


def parse_challenge(header_value: str) -> dict[str, str]:
    """Parse a `WWW-Authenticate: Digest ...` value into its parameters.

    Raises ValueError if the header is not a Digest challenge or has no
    realm/nonce.
    """
    scheme, _, rest = header_value.strip().partition(" ")
    if scheme.lower() != SCHEME.lower():
        raise ValueError(f"Not a Digest challenge: {scheme!r}")
    try:
        params = parse_auth_params(rest)
    except MalformedHeader as e:
        raise ValueError(f"Unparseable Digest challenge: {e}") from e
    if "realm" not in params or "nonce" not in params:
        raise ValueError("Digest challenge is missing realm or nonce")
    return params


def build_authorization(
    method: str,
    uri: str,
    challenge: dict[str, str],
    username: str,
    password: str,
    cnonce: str | None = None,
    nc: int = 1,
) -> str:
    """Compute an Authorization header value answering challenge.

    Chooses qop=auth when the challenge lists it; otherwise falls back to
    the legacy MD5(HA1:nonce:HA2) construction.
    """
    algorithm = challenge.get("algorithm", ALGORITHM)
    if algorithm.upper() != ALGORITHM:
        raise ValueError(f"Unsupported digest algorithm: {algorithm}")

    realm = challenge["realm"]
    nonce = challenge["nonce"]
    ha1 = compute_ha1(username, realm, password)
    ha2 = compute_ha2(method.upper(), uri)

    parts = [
        f'username="{username}"',
        f'realm="{realm}"',
        f'nonce="{nonce}"',
        f'uri="{uri}"',
    ]
    offered = [q.strip() for q in challenge.get("qop", "").split(",") if q.strip()]
    if QOP_AUTH in offered:
        nc_value = f"{nc:08x}"
        cnonce = cnonce or secrets.token_hex(8)
        response = compute_response(ha1, nonce, ha2, QOP_AUTH, nc_value, cnonce)
        parts += [f'response="{response}"', f"qop={QOP_AUTH}", f"nc={nc_value}", f'cnonce="{cnonce}"']
    else:
        parts.append(f'response="{compute_response(ha1, nonce, ha2)}"')
    if "opaque" in challenge:
        parts.append(f'opaque="{challenge["opaque"]}"')
    parts.append(f"algorithm={ALGORITHM}")
    return f"{SCHEME} " + ", ".join(parts)


def fetch_with_digest(
    url: str,
    username: str,
    password: str,
    method: str = "GET",
    timeout: float = 10,
) -> requests.Response:
    """Run the full two-request Digest flow against url and return the final response.

    If the first request does not come back 401 with a Digest challenge it
    is returned unchanged.
    """
    first = _session.request(method, url, timeout=timeout)
    challenge_header = first.headers.get("WWW-Authenticate", "")
    if first.status_code != 401 or not challenge_header.lower().startswith("digest"):
        logger.info("No Digest challenge from %s (status %d)", url, first.status_code)
        return first

    challenge = parse_challenge(challenge_header)
    parts = urlsplit(url)
    uri = parts.path or "/"
    if parts.query:
        uri = f"{uri}?{parts.query}"
    authorization = build_authorization(method, uri, challenge, username, password)
    return _session.request(method, url, headers={"Authorization": authorization}, timeout=timeout)
