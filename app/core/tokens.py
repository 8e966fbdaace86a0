"""
JWT session tokens: issue, verify, refresh.

Every token carries ``original_iat``, the issue time of the first token in
its refresh chain. ``refresh`` propagates it unchanged so the absolute
session window can be enforced no matter how often a session is refreshed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from jose import JWTError, jwt

from app.core.config import Settings, settings
from app.core.errors import ConfigurationError, InvalidPayload, TokenExpired, TokenInvalid

logger = logging.getLogger(__name__)

# Registered claims that are never carried over from caller input or from a
# refreshed token.
RESERVED_CLAIMS = frozenset({"exp", "iat", "nbf", "jti", "aud", "iss", "sub"})


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    absolute_session_ms: int
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ConfigurationError("JWT_SECRET environment variable is not defined")
        if self.absolute_session_ms <= 0:
            raise ConfigurationError("JWT_ABSOLUTE_SESSION_MS must be a positive number")

    @property
    def absolute_session_seconds(self) -> int:
        return self.absolute_session_ms // 1000

    @classmethod
    def from_settings(cls, source: Settings) -> TokenConfig:
        return cls(
            secret=source.JWT_SECRET,
            absolute_session_ms=source.JWT_ABSOLUTE_SESSION_MS,
            algorithm=source.JWT_ALGORITHM,
        )


def _is_subject_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class TokenCodec:
    def __init__(
        self,
        config: TokenConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._clock = clock

    @property
    def config(self) -> TokenConfig:
        return self._config

    def issue(self, claims: Mapping[str, Any], ttl_seconds: int | None = None) -> str:
        """Sign ``claims`` into a token valid for ``ttl_seconds``.

        ``ttl_seconds`` defaults to the absolute session window. The expiry
        never reaches past ``original_iat`` plus that window.
        """
        if not isinstance(claims, Mapping):
            raise InvalidPayload("Claims must be a mapping")
        if not _is_subject_id(claims.get("user_id")):
            raise InvalidPayload("Claims must carry a positive integer user_id")
        if ttl_seconds is not None and (isinstance(ttl_seconds, bool) or ttl_seconds <= 0):
            raise InvalidPayload("ttl_seconds must be a positive number of seconds")

        issued_at = self._clock()
        payload = {k: v for k, v in claims.items() if k not in RESERVED_CLAIMS}
        original_iat = payload.get("original_iat")
        if original_iat is None:
            payload["original_iat"] = int(issued_at)
        elif isinstance(original_iat, bool) or not isinstance(original_iat, (int, float)):
            raise InvalidPayload("original_iat must be a unix timestamp")
        else:
            payload["original_iat"] = int(original_iat)

        ttl = ttl_seconds if ttl_seconds is not None else self._config.absolute_session_seconds
        session_end = payload["original_iat"] + self._config.absolute_session_seconds
        payload["iat"] = int(issued_at)
        # exp keeps the fractional second so a token lives exactly ttl seconds
        payload["exp"] = min(issued_at + ttl, session_end)
        return jwt.encode(payload, self._config.secret, algorithm=self._config.algorithm)

    def verify(self, token: Any) -> dict[str, Any]:
        """Return the claims of ``token`` or raise ``TokenExpired`` / ``TokenInvalid``."""
        if not isinstance(token, str) or not token.strip():
            raise TokenInvalid("Token must be a non-empty string")

        try:
            # Expiry is checked below, after the signature has been verified.
            claims = jwt.decode(
                token,
                self._config.secret,
                algorithms=[self._config.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenInvalid("Failed to verify token") from exc

        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise TokenInvalid("Token has no expiry")
        if not _is_subject_id(claims.get("user_id")):
            raise TokenInvalid("Token has no valid user_id")

        now = self._clock()
        if now > exp:
            raise TokenExpired()

        original_iat = claims.get("original_iat")
        if isinstance(original_iat, (int, float)) and not isinstance(original_iat, bool):
            if now > original_iat + self._config.absolute_session_seconds:
                raise TokenExpired("Session exceeded its absolute lifetime")
        return claims

    def refresh(self, token: Any) -> str:
        """Re-sign a valid token with a fresh expiry, preserving ``original_iat``."""
        claims = self.verify(token)
        original_iat = claims.get("original_iat")
        if original_iat is None:
            original_iat = claims.get("iat", int(self._clock()))

        payload = {k: v for k, v in claims.items() if k not in RESERVED_CLAIMS}
        payload["original_iat"] = original_iat
        return self.issue(payload)

    def is_valid(self, token: Any) -> bool:
        try:
            self.verify(token)
        except (TokenInvalid, TokenExpired):
            return False
        return True


# Built at import time: a missing secret aborts startup.
token_codec = TokenCodec(TokenConfig.from_settings(settings))
