"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Gatekeeper happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY, hash_cost -> HASH_COST).

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode generates a cookie key with a warning; production
      mode refuses to start without one.

Security notes:
  SECRET_KEY is the cookie encryption password. Keys shorter than 32 chars are
  rejected outright.

  HASH_COST is the bcrypt work factor. It is embedded in every digest, so
  raising it later does not invalidate existing password hashes.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///gatekeeper.db"

    # ------------------------------------------------------------------
    # Sessions and cookies
    # ------------------------------------------------------------------

    session_validity_seconds: int = Field(default=86400, gt=0)
    session_purge_interval_seconds: int = Field(default=3600, gt=0)
    cookie_name: str = "session"
    cookie_domain: str | None = None
    cookie_ttl_seconds: int = Field(default=86400, gt=0)
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # bcrypt accepts 4..31; every +1 doubles the per-hash cost.
    hash_cost: int = Field(default=10, ge=4, le=31)
    # zxcvbn score threshold. Fixed at 3 -- not meant to be tuned per deploy.
    min_strength_score: int = Field(default=3, ge=3, le=3)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Cookies issued before a restart can no longer be decrypted.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Session cookies will not survive restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
