"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for KeyDash happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_secret -> SESSION_SECRET). Type coercion is built in.

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Dev mode (DEBUG=true) generates a session secret with a
      warning; a provided secret that is too short is rejected outright.

Missing secrets are NOT a startup failure. The server starts, logs an error,
and every login or signup attempt fails with ConfigurationError ("server
configuration error"). Session validation with an empty secret fails closed.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, dashboard/, or cache/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("keydash.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'keydash.db'}"


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
    database_url: str = _DEFAULT_DB_URL
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    session_secret: str = ""
    session_duration_seconds: int = 3600
    secure_cookies: bool = True

    # ------------------------------------------------------------------
    # Yubico OTP validation service
    # ------------------------------------------------------------------

    yubico_client_id: str = ""
    # Base64-encoded API key issued by Yubico alongside the client id.
    yubico_secret_key: str = ""
    yubico_verify_url: str = "https://api.yubico.com/wsapi/2.0/verify"
    yubico_timeout_seconds: float = 10.0

    # Comma-separated credential IDs seeded into the registry at startup.
    allowed_yubikey_id: str = ""

    # ------------------------------------------------------------------
    # Upstream market data
    # ------------------------------------------------------------------

    quote_api_url: str = "https://finance.learningis1.st/quote"
    market_hours_api_url: str = "https://finance.learningis1.st/markets?markets=equity,option,bond"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_session_secret(self) -> "Settings":
        """Apply the SESSION_SECRET policy.

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: leave an unset secret empty. Logins report a server
            configuration error until it is provided.

        Both modes: reject secrets shorter than 32 characters.
        """
        if not self.session_secret:
            if self.debug:
                self.session_secret = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SESSION_SECRET. Sessions will not persist across restarts.")
            return self
        if len(self.session_secret) < 32:
            raise ValueError("SESSION_SECRET must be at least 32 characters.")
        return self

    @property
    def allowed_yubikey_ids(self) -> list[str]:
        """Normalized (lower-cased) credential IDs from ALLOWED_YUBIKEY_ID."""
        return [part.strip().lower() for part in self.allowed_yubikey_id.split(",") if part.strip()]

    def missing_secrets(self) -> list[str]:
        """Return the env var names of required secrets that are not set."""
        missing = []
        if not self.yubico_client_id:
            missing.append("YUBICO_CLIENT_ID")
        if not self.yubico_secret_key:
            missing.append("YUBICO_SECRET_KEY")
        if not self.session_secret:
            missing.append("SESSION_SECRET")
        return missing


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
