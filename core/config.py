"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CipherWire happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. aes_key -> AES_KEY). List fields such as aes_exclude_prefixes are
      parsed from JSON arrays: AES_EXCLUDE_PREFIXES='["/public", "/api/v1/health"]'.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Dev mode (DEBUG=true) auto-generates a JWT signing key with a
      warning; production refuses to start without one. When encryption is
      enabled the AES key shape is checked here so a typo fails at startup,
      not on the first encrypted response.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright -- HS256 signing relies
  on key entropy.

  AES_KEY is 64 hex characters (32 bytes, AES-256). Generate one with:
      python -c "import secrets; print(secrets.token_hex(32))"

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("cipherwire.config")

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


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

    # Verbose mode: also forces pretty-printed JSON on the plain response path.
    debug: bool = False

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    jwt_algorithm: str = "HS256"
    token_expire_seconds: int = 3600
    # Comma-separated sources tried in order: header:<name>, query:<name>, cookie:<name>
    token_lookup: str = "header:Authorization"
    token_auth_scheme: str = "Bearer"
    # Audience for issued tokens. When set, parsed tokens must carry it.
    token_domain: str = ""

    # ------------------------------------------------------------------
    # Response encryption
    # ------------------------------------------------------------------

    aes_enabled: bool = False
    aes_key: str = ""
    aes_exclude_prefixes: list[str] = []

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    refresh_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Issued tokens will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
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
    def validate_aes_key(self) -> "Settings":
        """When encryption is enabled, AES_KEY must be exactly 64 hex characters."""
        if self.aes_enabled and not _HEX_KEY.match(self.aes_key):
            raise ValueError("AES_KEY must be 64 hex characters (32 bytes) when AES_ENABLED=true.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
