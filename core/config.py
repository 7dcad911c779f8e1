"""
core/config.py -- Gatekeeper settings, read once from the environment.

Every knob the service has lives on Settings. Other modules never touch
os.environ; they call get_settings() and read attributes.

Sources, highest priority first: constructor kwargs (tests), environment
variables (BCRYPT_ROUNDS, SESSION_TTL_DAYS, ...), then a .env file in the
working directory. List-valued fields (ALLOWED_HOSTS, CORS_ORIGINS) are
given as JSON arrays.

Security notes:
  [M6] BCRYPT_ROUNDS below 10 is rejected outside debug mode. The cost factor
       is what bounds offline brute-force speed against a leaked hash column.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("gatekeeper.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'gatekeeper.db'}"

_MIN_PRODUCTION_ROUNDS = 10


class Settings(BaseSettings):
    """Runtime configuration. Every field has a working default, so a bare
    Settings() is enough for local development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Credentials and tokens
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    # Fixed lifetime; validation never extends it.
    session_ttl_days: int = Field(default=7, ge=1)
    reset_token_ttl_seconds: int = Field(default=3600, ge=60)

    # ------------------------------------------------------------------
    # HTTP boundary
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_bcrypt_rounds(self) -> "Settings":
        """Enforce the bcrypt cost floor [M6].

        Dev mode (DEBUG=true): any cost from 4 upward is accepted, with a
            warning below the floor. Test suites rely on this to keep hashing fast.

        Production mode: refuse to start below the floor.
        """
        if self.bcrypt_rounds < _MIN_PRODUCTION_ROUNDS:
            if not self.debug:
                raise ValueError(f"BCRYPT_ROUNDS={self.bcrypt_rounds} is below {_MIN_PRODUCTION_ROUNDS}; set DEBUG=true to allow it.")
            logger.warning("BCRYPT_ROUNDS=%d is below %d (debug mode only)", self.bcrypt_rounds, _MIN_PRODUCTION_ROUNDS)
        return self


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first use and hand back the same instance afterwards.

    Environment changes after the first call are not seen; tests that need
    different values construct Settings(...) directly.
    """
    return Settings()
