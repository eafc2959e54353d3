"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for AuthLab happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. nonce_ttl_seconds -> NONCE_TTL_SECONDS).

  @model_validator(mode="after"): cross-field validation once every field is
      resolved. Used for the DEBUG-conditional SECRET_KEY policy and for the
      Digest nonce timing bounds.

Security notes:
  SECRET_KEY signs the Bearer JWTs. Shorter than 32 chars is rejected; a
  missing key is fatal outside DEBUG mode.

  SEED_ADMIN_PASSWORD has no default outside DEBUG. With an empty user table
  and no password configured, the first-run account is simply not created.

  DIGEST_OPAQUE defaults to a fixed value so clients that cache the challenge
  across restarts keep working. Set it to an empty string to draw a random
  one per process.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("authlab.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured".
    secret_key: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Digest auth
    # ------------------------------------------------------------------

    digest_realm: str = "Restricted Access"
    digest_opaque: str = "5ccc069c403ebaf9f0171e9517f40e41"
    nonce_ttl_seconds: float = 300.0
    nonce_sweep_interval_seconds: float = 60.0

    # ------------------------------------------------------------------
    # Token auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 3600
    token_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # First-run seed user (created only when the user table is empty)
    # ------------------------------------------------------------------

    seed_admin_username: str = "admin"
    # Empty is the sentinel for "not configured"; DEBUG fills in a dev default.
    seed_admin_password: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
        Production mode: refuse to start without one.
        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not survive restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_digest(self) -> "Settings":
        if self.nonce_ttl_seconds <= 0:
            raise ValueError("NONCE_TTL_SECONDS must be positive.")
        if self.nonce_sweep_interval_seconds <= 0:
            raise ValueError("NONCE_SWEEP_INTERVAL_SECONDS must be positive.")
        if not self.digest_opaque:
            self.digest_opaque = secrets.token_hex(16)
        return self

    @model_validator(mode="after")
    def validate_seed_admin(self) -> "Settings":
        """Only DEBUG gets the well-known dev password for the first-run account."""
        if not self.seed_admin_password and self.debug:
            self.seed_admin_password = "secret"
            logger.warning("WARNING: First-run account will use the dev password. Set SEED_ADMIN_PASSWORD.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
