"""
Session cookie attributes, independent of any response object.

A ``CookieBinding`` holds keyword arguments for Starlette's
``Response.set_cookie``; the endpoint layer applies it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from app.core.config import Settings, settings
from app.core.errors import ConfigurationError, InvalidPayload


@dataclass(frozen=True)
class CookieBinding:
    name: str
    value: str
    options: dict[str, Any] = field(default_factory=dict)


class CookieBinder:
    def __init__(
        self,
        cookie_name: str,
        max_age: int,
        secure: bool = False,
        samesite: str = "strict",
    ) -> None:
        if not cookie_name:
            raise ConfigurationError("JWT_COOKIE_NAME environment variable is not defined")
        self.cookie_name = cookie_name
        self._max_age = max_age
        self._secure = secure
        self._samesite = samesite

    @classmethod
    def from_settings(cls, source: Settings) -> CookieBinder:
        return cls(
            cookie_name=source.JWT_COOKIE_NAME,
            max_age=source.JWT_ABSOLUTE_SESSION_MS // 1000,
            secure=source.is_production,
            samesite=source.COOKIE_SAMESITE,
        )

    def _defaults(self, max_age: int) -> dict[str, Any]:
        return {
            "path": "/",
            "httponly": True,
            "samesite": self._samesite,
            "secure": self._secure,
            "max_age": max_age,
        }

    def bind(self, token: str, **overrides: Any) -> CookieBinding:
        """Cookie carrying ``token``. ``httponly`` cannot be overridden."""
        if not isinstance(token, str) or not token.strip():
            raise InvalidPayload("Token must be a non-empty string")
        options = {**self._defaults(self._max_age), **overrides, "httponly": True}
        return CookieBinding(name=self.cookie_name, value=token, options=options)

    def unbind(self, cookies: Any, cookie_name: str | None = None) -> str | None:
        if not isinstance(cookies, Mapping):
            return None
        token = cookies.get(cookie_name or self.cookie_name)
        if not isinstance(token, str) or not token:
            return None
        return token

    def clear(self, **overrides: Any) -> CookieBinding:
        options = {**self._defaults(0), **overrides, "max_age": 0, "httponly": True}
        return CookieBinding(name=self.cookie_name, value="", options=options)


cookie_binder = CookieBinder.from_settings(settings)
