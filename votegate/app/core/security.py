"""JWT signing and verification for session tokens."""

import secrets
from datetime import datetime
from typing import Any, Mapping, Optional

from jose import JWTError, jwt

from votegate.app.core.config import Settings, settings as default_settings
from votegate.app.core.utils import Clock, parse_duration, system_clock, to_datetime
from votegate.app.exceptions import ConfigurationError, TokenError

DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60


def generate_session_id(nbytes: int = 16) -> str:
    """Generate a random, URL-safe session identifier."""
    return secrets.token_urlsafe(nbytes)


class TokenSigner:
    """Signs and verifies HS256 session tokens with python-jose.

    The signing secret comes from JWT_SECRET or NEXTAUTH_SECRET. There is
    no built-in fallback secret; constructing a signer without one raises
    ConfigurationError.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        default_expires_in: Optional[str] = None,
        clock: Clock = system_clock,
        settings: Optional[Settings] = None,
    ):
        settings = settings or default_settings
        self._secret = secret if secret is not None else settings.jwt_secret
        if not self._secret:
            raise ConfigurationError(
                "JWT_SECRET or NEXTAUTH_SECRET environment variable is required"
            )
        self.algorithm = algorithm or settings.jwt_algorithm
        self.default_expires_in = default_expires_in or settings.jwt_expires_in
        self._clock = clock

    def sign(self, payload: Mapping[str, Any], expires_in: Optional[str] = None) -> str:
        """Sign a payload, adding iat and exp claims.

        Args:
            payload: JSON-serializable claims
            expires_in: Token lifetime such as "1h"; defaults to JWT_EXPIRES_IN

        Raises:
            TokenError: SIGN_ERROR if the payload cannot be encoded
        """
        ttl = parse_duration(expires_in or self.default_expires_in, DEFAULT_TOKEN_TTL_SECONDS)
        issued_at = int(self._clock())
        claims = dict(payload)
        claims["iat"] = issued_at
        claims["exp"] = issued_at + ttl
        try:
            return jwt.encode(claims, self._secret, algorithm=self.algorithm)
        except (JWTError, TypeError, ValueError) as e:
            raise TokenError("Failed to sign token", "SIGN_ERROR") from e

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a token signature and expiry and return its claims.

        Expiry is checked against the signer's clock, not the wall clock.

        Raises:
            TokenError: TOKEN_EXPIRED, INVALID_TOKEN or VERIFICATION_ERROR
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise TokenError("Invalid token", "INVALID_TOKEN") from e
        except Exception as e:
            raise TokenError("Token verification failed", "VERIFICATION_ERROR") from e

        exp = claims.get("exp")
        if exp is not None:
            if not isinstance(exp, (int, float)):
                raise TokenError("Invalid token", "INVALID_TOKEN")
            if exp < int(self._clock()):
                raise TokenError("Token has expired", "TOKEN_EXPIRED")
        return claims

    def decode(self, token: str) -> Optional[dict[str, Any]]:
        """Read claims without verifying the signature (introspection only)."""
        try:
            return jwt.get_unverified_claims(token)
        except (JWTError, ValueError, TypeError):
            return None

    def is_token_expired(self, token: str) -> bool:
        """True when the token is expired, undecodable, or has no exp claim."""
        claims = self.decode(token)
        if not claims or not claims.get("exp"):
            return True
        return claims["exp"] < int(self._clock())

    def get_token_expiration(self, token: str) -> Optional[datetime]:
        claims = self.decode(token)
        if not claims or not claims.get("exp"):
            return None
        return to_datetime(claims["exp"])
