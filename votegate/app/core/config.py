import json
from typing import Annotated, Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    """Accept a JSON list, "*", or comma separated origins."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.startswith("["):
            raw = json.loads(raw)
        else:
            raw = raw.split(",")
    origins = [str(v).strip() for v in raw if str(v).strip()]
    return ["*"] if "*" in origins else origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # development | production. Production turns on secure cookies.
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV", "environment"),
    )

    # Token signing. The secret has no fallback value: an empty secret is
    # rejected when the token signer is built.
    jwt_secret: str = Field(
        default="",
        validation_alias=AliasChoices("JWT_SECRET", "NEXTAUTH_SECRET", "jwt_secret"),
    )
    jwt_expires_in: str = "24h"
    jwt_algorithm: str = "HS256"

    # Session cache
    session_cache_max_size: int = 1000
    session_timeout_seconds: int = 24 * 60 * 60  # fixed TTL used on refresh
    session_inactivity_timeout_seconds: int = 2 * 60 * 60
    session_cleanup_interval_seconds: int = 60 * 60

    # Session cookies (names match the existing web client)
    admin_session_cookie: str = "next-auth.session-token"
    candidate_session_cookie: str = "candidate-token"
    voter_session_cookie: str = "voter-token"
    auth_token_header: str = "X-Auth-Token"
    session_cookie_max_age: int = 24 * 60 * 60

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_cleanup_interval_seconds: int = 5 * 60

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @field_validator("jwt_secret")
    @classmethod
    def strip_secret(cls, v: str) -> str:
        """Drop stray whitespace/newlines from secret stores."""
        return v.strip()

    @field_validator(
        "session_cache_max_size",
        "session_timeout_seconds",
        "session_inactivity_timeout_seconds",
        "session_cookie_max_age",
    )
    @classmethod
    def validate_session_positive(cls, v: int) -> int:
        """Validate session sizes and timeouts are positive."""
        if v < 1:
            raise ValueError("session values must be at least 1")
        return v

    @field_validator(
        "session_cleanup_interval_seconds",
        "rate_limit_cleanup_interval_seconds",
    )
    @classmethod
    def validate_cleanup_interval(cls, v: int) -> int:
        """Validate cleanup intervals are reasonable."""
        if v < 1:
            raise ValueError("cleanup intervals must be at least 1 second")
        if v > 24 * 60 * 60:
            raise ValueError("cleanup intervals should not exceed 24 hours")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
