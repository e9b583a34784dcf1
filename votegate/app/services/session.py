"""Bearer-token sessions with a bounded in-memory cache.

Tokens are stateless JWTs. The cache only saves repeated signature checks:
a cached session that is still valid is trusted without verification, any
other token is verified and, if valid, cached.
"""

from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Protocol

from votegate.app.core.config import Settings, settings as default_settings
from votegate.app.core.logging import get_log_context, get_logger
from votegate.app.core.security import TokenSigner, generate_session_id
from votegate.app.core.utils import Clock, parse_duration, system_clock, to_datetime
from votegate.app.exceptions import ConfigurationError, TokenError

logger = get_logger(__name__)

DEFAULT_ROLE = "guest"


class RequestLike(Protocol):
    """The parts of a Starlette request the session manager reads."""

    @property
    def cookies(self) -> Mapping[str, str]: ...

    @property
    def headers(self) -> Mapping[str, str]: ...


@dataclass
class SessionData:
    """Decoded session. Timestamps are aware UTC datetimes."""
    user_id: str
    role: str
    expires_at: datetime
    last_activity: datetime
    email: Optional[str] = None
    phone: Optional[str] = None
    voter_id: Optional[str] = None

    def to_claims(self) -> dict[str, Any]:
        """Claims carried in the signed token (camelCase, as the web client reads them)."""
        claims = {
            "userId": self.user_id,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
            "voterId": self.voter_id,
        }
        return {k: v for k, v in claims.items() if v is not None}

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.user_id,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
            "voterId": self.voter_id,
        }


class EvictionPolicy(str, Enum):
    """Which entry a full session cache drops.

    INSERTION_ORDER drops the oldest inserted token; reads do not move it.
    ACCESS_ORDER drops the least recently read or written token.
    """
    INSERTION_ORDER = "insertion_order"
    ACCESS_ORDER = "access_order"


class SessionCache:
    """Bounded token -> SessionData mapping.

    When a new token would exceed ``max_size`` the single oldest key is
    evicted first. The default policy is insertion order.
    """

    def __init__(
        self,
        max_size: int = 1000,
        policy: EvictionPolicy = EvictionPolicy.INSERTION_ORDER,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.policy = policy
        self._data: OrderedDict[str, SessionData] = OrderedDict()

    def get(self, token: str) -> Optional[SessionData]:
        session = self._data.get(token)
        if session is not None and self.policy is EvictionPolicy.ACCESS_ORDER:
            self._data.move_to_end(token)
        return session

    def put(self, token: str, session: SessionData) -> None:
        if token in self._data:
            self._data[token] = session
            if self.policy is EvictionPolicy.ACCESS_ORDER:
                self._data.move_to_end(token)
            return
        if len(self._data) >= self.max_size:
            self._data.popitem(last=False)
        self._data[token] = session

    def delete(self, token: str) -> bool:
        return self._data.pop(token, None) is not None

    def items(self) -> Iterator[tuple[str, SessionData]]:
        return iter(list(self._data.items()))

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, token: str) -> bool:
        return token in self._data

    def __len__(self) -> int:
        return len(self._data)


class SessionManager:
    """Issues, verifies, refreshes and invalidates bearer-token sessions.

    A session is valid while ``now <= expires_at`` and it has been used
    within the inactivity timeout (2 hours by default).

    Invalidation only drops the cached entry. A token that still has a
    valid signature and expiry is accepted again if presented later.
    """

    def __init__(
        self,
        signer: TokenSigner,
        cache: Optional[SessionCache] = None,
        clock: Clock = system_clock,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.signer = signer
        self.cache = cache if cache is not None else SessionCache(
            max_size=self.settings.session_cache_max_size
        )
        self._clock = clock
        self.session_timeout = timedelta(seconds=self.settings.session_timeout_seconds)
        self.inactivity_timeout = timedelta(
            seconds=self.settings.session_inactivity_timeout_seconds
        )

    def _now(self) -> datetime:
        return to_datetime(self._clock())

    def create_session(self, user_data: Optional[Mapping[str, Any]], expires_in: str = "24h") -> str:
        """Create a signed session token for a user and cache it.

        Args:
            user_data: Mapping with ``userId`` or ``id`` and optionally
                ``role``, ``email``, ``phone``, ``voterId``
            expires_in: Lifetime such as "1h" or "24h"

        Raises:
            ConfigurationError: If no user identity is supplied
        """
        if not user_data:
            raise ConfigurationError("User data is required to create session")
        user_id = user_data.get("userId") or user_data.get("id")
        if not user_id:
            raise ConfigurationError("User data must include an id to create session")

        now = self._now()
        ttl = parse_duration(expires_in, self.settings.session_timeout_seconds)
        session = SessionData(
            user_id=str(user_id),
            role=user_data.get("role") or DEFAULT_ROLE,
            email=user_data.get("email"),
            phone=user_data.get("phone"),
            voter_id=user_data.get("voterId"),
            expires_at=now + timedelta(seconds=ttl),
            last_activity=now,
        )

        token = self.signer.sign(
            {**session.to_claims(), "sessionId": generate_session_id()},
            expires_in,
        )
        self.cache.put(token, session)

        logger.info(
            "Session created",
            extra=get_log_context(
                user_id=session.user_id,
                role=session.role,
                expires_at=session.expires_at.isoformat(),
            ),
        )
        return token

    def get_token_from_request(self, request: RequestLike) -> Optional[str]:
        """Extract the session token.

        Order: admin cookie, candidate cookie, voter cookie, Bearer
        Authorization header, X-Auth-Token header. First non-empty wins.
        """
        sources = (
            lambda: request.cookies.get(self.settings.admin_session_cookie),
            lambda: request.cookies.get(self.settings.candidate_session_cookie),
            lambda: request.cookies.get(self.settings.voter_session_cookie),
            lambda: _bearer_token(request.headers.get("authorization")),
            lambda: request.headers.get(self.settings.auth_token_header),
        )
        for source in sources:
            token = (source() or "").strip()
            if token:
                return token
        return None

    def verify_session(self, request: RequestLike) -> Optional[SessionData]:
        """Return the session for the request's token, or None.

        Never raises: bad, expired or tampered tokens yield None.
        """
        try:
            token = self.get_token_from_request(request)
            if not token:
                return None

            cached = self.cache.get(token)
            if cached is not None and self.is_session_valid(cached):
                cached.last_activity = self._now()
                return cached

            try:
                claims = self.signer.verify(token)
            except TokenError:
                return None

            session = self._session_from_claims(claims)
            if session is None or not self.is_session_valid(session):
                return None

            self.cache.put(token, session)
            return session
        except Exception as e:
            logger.warning(f"Session verification failed: {e}")
            return None

    def _session_from_claims(self, claims: Mapping[str, Any]) -> Optional[SessionData]:
        user_id = claims.get("userId")
        exp = claims.get("exp")
        if not user_id or exp is None:
            return None
        return SessionData(
            user_id=str(user_id),
            role=claims.get("role") or DEFAULT_ROLE,
            email=claims.get("email"),
            phone=claims.get("phone"),
            voter_id=claims.get("voterId"),
            expires_at=to_datetime(float(exp)),
            last_activity=self._now(),
        )

    def refresh_session(self, session: SessionData) -> str:
        """Issue a new token for a session with a fresh 24 hour expiry.

        The previous token stays in the cache until it expires or is swept.
        """
        now = self._now()
        refreshed = replace(
            session,
            expires_at=now + self.session_timeout,
            last_activity=now,
        )

        token = self.signer.sign({**refreshed.to_claims(), "sessionId": generate_session_id()})
        self.cache.put(token, refreshed)

        logger.info(
            "Session refreshed",
            extra=get_log_context(
                user_id=refreshed.user_id,
                expires_at=refreshed.expires_at.isoformat(),
            ),
        )
        return token

    def invalidate_session(self, request: RequestLike) -> None:
        """Drop the request's token from the cache."""
        token = self.get_token_from_request(request)
        if token:
            self.cache.delete(token)
            logger.info(f"Session invalidated (token {token[:10]}...)")

    def is_session_valid(self, session: SessionData) -> bool:
        now = self._now()
        if now > session.expires_at:
            return False
        return now - session.last_activity <= self.inactivity_timeout

    def cleanup_expired_sessions(self) -> int:
        """Remove cached sessions that are no longer valid.

        Returns:
            Number of sessions removed.
        """
        cleaned = 0
        for token, session in self.cache.items():
            if not self.is_session_valid(session):
                self.cache.delete(token)
                cleaned += 1
        if cleaned:
            logger.info(f"Cleaned up {cleaned} expired sessions")
        return cleaned

    def cookie_name_for_role(self, role: str) -> str:
        """Cookie a session of the given role is stored under."""
        if role == "ADMIN":
            return self.settings.admin_session_cookie
        if role == "CANDIDATE":
            return self.settings.candidate_session_cookie
        return self.settings.voter_session_cookie


def _bearer_token(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):].strip()
