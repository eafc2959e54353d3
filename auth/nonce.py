"""
auth/nonce.py -- In-memory store of server-issued Digest nonces.

Usage:
    store = NonceStore(ttl=300)
    nonce = store.generate()     # issue for a challenge
    store.is_valid(nonce)        # True until the TTL elapses
    store.purge_expired()        # call periodically to trim old entries

The store is the only shared mutable state in the Digest subsystem. FastAPI
runs sync dependencies in a threadpool, so every access goes through one lock.

Expiry is checked lazily: is_valid() evicts an expired entry when it sees
one. purge_expired() only bounds memory for nonces that are never presented
again; correctness does not depend on it running.

The clock is injectable. Defaults to time.monotonic so wall-clock jumps do
not extend or cut short a nonce's lifetime.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("authlab.auth.nonce")

_DEFAULT_TTL = 5 * 60  # 5 minutes in seconds
_NONCE_BYTES = 16

Clock = Callable[[], float]


class NonceStore:
    def __init__(self, ttl: float = _DEFAULT_TTL, clock: Clock = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("Nonce TTL must be positive.")
        self.ttl = ttl
        self._clock = clock
        self._expires_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def generate(self) -> str:
        """Issue a new random nonce (32 hex chars) and start its TTL."""
        nonce = secrets.token_hex(_NONCE_BYTES)
        with self._lock:
            self._expires_at[nonce] = self._clock() + self.ttl
        return nonce

    def is_valid(self, nonce: str | None) -> bool:
        """Return True if nonce was issued here and has not expired.

        Unknown values are simply False. An expired entry is evicted as a side
        effect so a replayed nonce never becomes valid again.
        """
        if not nonce:
            return False
        with self._lock:
            expires_at = self._expires_at.get(nonce)
            if expires_at is None:
                return False
            if self._clock() >= expires_at:
                del self._expires_at[nonce]
                return False
            return True

    def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [n for n, expires_at in self._expires_at.items() if now >= expires_at]
            for nonce in expired:
                del self._expires_at[nonce]
        if expired:
            logger.debug("Purged %d expired nonces", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._expires_at)
