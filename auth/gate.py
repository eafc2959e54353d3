"""
auth/gate.py -- Request-level Digest authentication decision.

AuthGate walks an explicit state machine:

    START -> CHECK_HEADER -> CHECK_NONCE -> LOOKUP_USER -> VERIFY -> ACCEPT
                 |               |              |            |
                 +---------------+--------------+------------+--> CHALLENGE

Each non-terminal state is one method that either returns the next state or
raises a DigestAuthError. evaluate() drives the walk and turns any error into
a Rejected outcome carrying a challenge built around a freshly issued nonce.
The nonce the client just failed with is never handed back.

The gate knows nothing about HTTP frameworks. auth/dependencies.py adapts it
to FastAPI (request.state, HTTPException). All failure reasons produce the
same external result; only the log line tells them apart.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from auth.digest import build_challenge, parse_digest_header, validate_credential, verify_response
from auth.errors import DigestAuthError, InvalidNonce, MalformedHeader, ResponseMismatch, UnknownUser
from auth.models import Accepted, AuthOutcome, DigestCredential, DigestUserRecord, Rejected
from auth.nonce import NonceStore

logger = logging.getLogger("authlab.auth.digest")

UserLookup = Callable[[str], DigestUserRecord | None]


class GateState(str, Enum):
    START = "start"
    CHECK_HEADER = "check_header"
    CHECK_NONCE = "check_nonce"
    LOOKUP_USER = "lookup_user"
    VERIFY = "verify"
    ACCEPT = "accept"
    CHALLENGE = "challenge"


@dataclass
class GateContext:
    """Per-request scratch state for one walk. Discarded with the outcome."""

    method: str
    authorization: str | None
    credential: DigestCredential | None = None
    user: DigestUserRecord | None = None
    trail: list[GateState] = field(default_factory=list)


def _require_credential(ctx: GateContext) -> DigestCredential:
    if ctx.credential is None:
        raise ValueError("No parsed credential; CHECK_HEADER has not run")
    return ctx.credential


def _require_user(ctx: GateContext) -> DigestUserRecord:
    if ctx.user is None:
        raise ValueError("No user record; LOOKUP_USER has not run")
    return ctx.user


class AuthGate:
    """Digest challenge-response guard.

    Usage:
        gate = AuthGate(nonces=NonceStore(), lookup_user=store.get_digest_record)
        outcome = gate.evaluate("GET", request.headers.get("Authorization"))
        if isinstance(outcome, Rejected):
            ...  # 401 with WWW-Authenticate: outcome.challenge
    """

    def __init__(
        self,
        nonces: NonceStore,
        lookup_user: UserLookup,
        realm: str = "Restricted Access",
        opaque: str = "5ccc069c403ebaf9f0171e9517f40e41",
    ) -> None:
        self.nonces = nonces
        self.lookup_user = lookup_user
        self.realm = realm
        self.opaque = opaque

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def evaluate(self, method: str, authorization: str | None) -> AuthOutcome:
        """Run one full walk and return Accepted or Rejected. Never raises DigestAuthError."""
        ctx = GateContext(method=method.upper(), authorization=authorization)
        state = GateState.START
        try:
            while state is not GateState.ACCEPT:
                ctx.trail.append(state)
                state = self.step(state, ctx)
        except DigestAuthError as exc:
            ctx.trail.append(GateState.CHALLENGE)
            username = ctx.credential.username if ctx.credential else None
            logger.info(
                "Digest auth rejected: reason=%s state=%s user=%s detail=%s",
                exc.reason.value,
                ctx.trail[-2].value,
                username,
                exc,
            )
            return self.challenge(exc)
        ctx.trail.append(GateState.ACCEPT)
        user = _require_user(ctx)
        logger.debug("Digest auth accepted: user=%s", user.username)
        return Accepted(user_id=user.user_id, username=user.username)

    def step(self, state: GateState, ctx: GateContext) -> GateState:
        """Execute one transition from state and return the next state."""
        handler = self._transitions.get(state)
        if handler is None:
            raise ValueError(f"No transition out of terminal state {state.value!r}")
        return handler(self, ctx)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _start(self, ctx: GateContext) -> GateState:
        return GateState.CHECK_HEADER

    def _check_header(self, ctx: GateContext) -> GateState:
        if not ctx.authorization:
            raise MalformedHeader("No Authorization header")
        ctx.credential = parse_digest_header(ctx.authorization)
        validate_credential(ctx.credential)
        return GateState.CHECK_NONCE

    def _check_nonce(self, ctx: GateContext) -> GateState:
        if not self.nonces.is_valid(_require_credential(ctx).nonce):
            raise InvalidNonce("Nonce is unknown or expired")
        return GateState.LOOKUP_USER

    def _lookup_user(self, ctx: GateContext) -> GateState:
        username = _require_credential(ctx).username
        ctx.user = self.lookup_user(username) if username else None
        if ctx.user is None:
            raise UnknownUser("No digest-enabled user with that name")
        return GateState.VERIFY

    def _verify(self, ctx: GateContext) -> GateState:
        user = _require_user(ctx)
        if not verify_response(_require_credential(ctx), user.secret, ctx.method, realm=self.realm):
            raise ResponseMismatch("Digest response does not match")
        return GateState.ACCEPT

    _transitions: dict[GateState, Callable[["AuthGate", GateContext], GateState]] = {
        GateState.START: _start,
        GateState.CHECK_HEADER: _check_header,
        GateState.CHECK_NONCE: _check_nonce,
        GateState.LOOKUP_USER: _lookup_user,
        GateState.VERIFY: _verify,
    }

    # ------------------------------------------------------------------
    # Terminal: CHALLENGE
    # ------------------------------------------------------------------

    def challenge(self, exc: DigestAuthError) -> Rejected:
        """Issue a new nonce and wrap it in a Rejected outcome."""
        nonce = self.nonces.generate()
        return Rejected(reason=exc.reason, challenge=build_challenge(self.realm, nonce, self.opaque))
