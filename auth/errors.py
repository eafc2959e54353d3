"""
auth/errors.py -- Failure taxonomy for the Digest authentication guard.

Every failure collapses to the same externally observable result (401 plus a
fresh challenge). The distinct classes exist for operators: the gate logs
the reason, and tests assert on it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class DigestFailure(str, Enum):
    """Enumerable reason codes carried by a Rejected outcome."""

    MALFORMED_HEADER = "malformed_header"
    MISSING_FIELD = "missing_field"
    MISSING_QOP_PARAMS = "missing_qop_params"
    INVALID_NONCE = "invalid_nonce"
    UNKNOWN_USER = "unknown_user"
    RESPONSE_MISMATCH = "response_mismatch"


class DigestAuthError(Exception):
    """Base class for Digest authentication failures."""

    reason: DigestFailure


class MalformedHeader(DigestAuthError):
    """The Authorization value is not a parseable Digest credential."""

    reason = DigestFailure.MALFORMED_HEADER


class MissingField(DigestAuthError):
    """One or more of the required base parameters is absent or empty."""

    reason = DigestFailure.MISSING_FIELD

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Missing required digest fields: {', '.join(fields)}")


class MissingQopParams(DigestAuthError):
    """qop was supplied without the cnonce/nc values it requires."""

    reason = DigestFailure.MISSING_QOP_PARAMS


class InvalidNonce(DigestAuthError):
    reason = DigestFailure.INVALID_NONCE


class UnknownUser(DigestAuthError):
    reason = DigestFailure.UNKNOWN_USER


class ResponseMismatch(DigestAuthError):
    reason = DigestFailure.RESPONSE_MISMATCH
