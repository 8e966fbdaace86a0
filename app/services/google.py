"""
Google ID token verification for federated sign-in.

Signature, audience and expiry are checked by google-auth against Google's
published certificates; issuer and required claims are checked here.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from app.core.config import settings
from app.core.errors import ConfigurationError, InvalidCredentials

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = frozenset({"accounts.google.com", "https://accounts.google.com"})


@dataclass(frozen=True)
class FederatedIdentity:
    provider: str
    subject: str
    email: str
    email_verified: bool
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None


class GoogleTokenVerifier:
    provider = "google"

    def __init__(self, client_id: str) -> None:
        self._client_id = client_id
        self._transport = google_requests.Request()

    async def verify(self, credential: str) -> FederatedIdentity:
        token = credential.strip() if isinstance(credential, str) else ""
        if not token:
            raise InvalidCredentials("Missing Google credential")
        if not self._client_id:
            raise ConfigurationError("GOOGLE_CLIENT_ID is not configured")

        try:
            # fetches Google certificates over HTTP, so keep it off the event loop
            payload = await asyncio.to_thread(
                id_token.verify_oauth2_token, token, self._transport, self._client_id
            )
        except ValueError as exc:
            # google-auth raises ValueError for bad signature, audience or expiry
            logger.warning("Google token verification failed: %s", exc)
            raise InvalidCredentials("Invalid Google credential") from exc

        if payload.get("iss") not in GOOGLE_ISSUERS:
            raise InvalidCredentials("Invalid Google credential")
        if not payload.get("sub") or not payload.get("email"):
            raise InvalidCredentials("Incomplete Google credential")

        return FederatedIdentity(
            provider=self.provider,
            subject=str(payload["sub"]),
            email=str(payload["email"]),
            email_verified=bool(payload.get("email_verified")),
            name=payload.get("name"),
            given_name=payload.get("given_name"),
            family_name=payload.get("family_name"),
            picture=payload.get("picture"),
        )


google_verifier = GoogleTokenVerifier(settings.GOOGLE_CLIENT_ID)
