"""
Session lifecycle: login, registration, session resume and logout.

The service returns cookie bindings and never touches a response object;
endpoints apply the bindings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cookies import CookieBinder, CookieBinding, cookie_binder
from app.core.errors import (AccountSuspended, DuplicateAccount, InvalidCredentials,
                             InvalidPayload, TokenExpired, TokenInvalid)
from app.core.permissions import permissions_from_row
from app.core.roles import AccountState, AuthPlatform, Role, normalize_email
from app.core.security import get_password_hash, verify_password
from app.core.tokens import TokenCodec, token_codec
from app.models.user import ProviderLink, User
from app.schemas.user import LoginRequest, RegisterRequest
from app.services.google import FederatedIdentity, google_verifier

logger = logging.getLogger(__name__)


class FederatedVerifier(Protocol):
    provider: str

    async def verify(self, credential: str) -> FederatedIdentity: ...


class ResumeStatus(str, Enum):
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_SUSPENDED = "USER_SUSPENDED"
    SUCCESS = "SUCCESS"


@dataclass(frozen=True)
class SessionResult:
    user: User
    token: str
    cookie: CookieBinding


@dataclass(frozen=True)
class ResumeResult:
    status: ResumeStatus
    user: User | None = None
    cookie: CookieBinding | None = None


def account_is_usable(user: User) -> bool:
    """Suspended and soft-disabled accounts cannot hold a session."""
    return user.state != AccountState.SUSPENDED.value and bool(user.is_active)


def build_claims(user: User) -> dict[str, Any]:
    """Token claims for ``user``; employees also get a permission snapshot."""
    claims: dict[str, Any] = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "state": user.state,
    }
    if user.role == Role.EMPLOYEE.value:
        claims["branch_id"] = user.branch_id
        claims["permissions"] = permissions_from_row(user.permission)
    return claims


class SessionService:
    def __init__(
        self,
        codec: TokenCodec,
        binder: CookieBinder,
        federated_verifier: FederatedVerifier,
    ) -> None:
        self.codec = codec
        self.binder = binder
        self.federated_verifier = federated_verifier

    # ── Login ───────────────────────────────────────────────────────
    async def login(self, db: AsyncSession, credentials: LoginRequest) -> SessionResult:
        if credentials.platform == AuthPlatform.LOCAL:
            user = await self._authenticate_local(db, credentials.email or "", credentials.password or "")
        else:
            user = await self._authenticate_federated(db, credentials.credential or "")

        if not account_is_usable(user):
            logger.warning("Login refused for suspended or disabled user %s", user.id)
            raise AccountSuspended()

        result = self._open_session(user)
        logger.info("User %s logged in via %s", user.id, credentials.platform.value)
        return result

    async def _authenticate_local(self, db: AsyncSession, email: str, password: str) -> User:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        user = result.scalar_one_or_none()
        # Same error for unknown email and wrong password
        if user is None or not verify_password(password, user.hashed_password):
            raise InvalidCredentials()
        return user

    async def _authenticate_federated(self, db: AsyncSession, credential: str) -> User:
        identity = await self.federated_verifier.verify(credential)
        result = await db.execute(
            select(User)
            .join(ProviderLink, ProviderLink.user_id == User.id)
            .where(
                ProviderLink.provider == identity.provider,
                ProviderLink.subject == identity.subject,
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise InvalidCredentials("Invalid Google credential or user not registered")
        return user

    # ── Registration ────────────────────────────────────────────────
    async def register(self, db: AsyncSession, payload: RegisterRequest) -> SessionResult:
        federated: FederatedIdentity | None = None
        email = normalize_email(payload.email)

        if payload.platform == AuthPlatform.LOCAL:
            if not payload.password:
                raise InvalidPayload("Password required for local registration")
            hashed_password = get_password_hash(payload.password)
        else:
            if not payload.credential:
                raise InvalidPayload("Google credential required for Google registration")
            federated = await self.federated_verifier.verify(payload.credential)
            # The provider's verified address wins over the submitted one
            email = normalize_email(federated.email)
            hashed_password = ""

        # Registered identities own their tenant
        user = User(
            email=email,
            hashed_password=hashed_password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            image_url=payload.image_url or (federated.picture if federated else None),
            role=Role.ADMIN.value,
            state=AccountState.ACTIVE.value,
            is_active=True,
        )
        db.add(user)
        try:
            await db.flush()
            if federated is not None:
                db.add(
                    ProviderLink(
                        user_id=user.id,
                        provider=federated.provider,
                        subject=federated.subject,
                    )
                )
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            logger.warning("Registration rejected, account already exists: %s", email)
            raise DuplicateAccount() from exc

        logger.info("Registered user %s (%s) via %s", user.id, email, payload.platform.value)
        return self._open_session(user)

    # ── Session resume ──────────────────────────────────────────────
    async def resume_session(self, db: AsyncSession, cookies: Any) -> ResumeResult:
        token = self.binder.unbind(cookies)
        if token is None:
            return ResumeResult(ResumeStatus.NO_TOKEN)

        try:
            claims = self.codec.verify(token)
        except TokenExpired:
            return ResumeResult(ResumeStatus.EXPIRED_TOKEN)
        except TokenInvalid:
            return ResumeResult(ResumeStatus.INVALID_TOKEN)

        user = await db.get(User, claims["user_id"])
        if user is None:
            return ResumeResult(ResumeStatus.USER_NOT_FOUND)
        if not account_is_usable(user):
            return ResumeResult(ResumeStatus.USER_SUSPENDED)

        # Current claims from the database, same absolute session window
        session = self._open_session(user, original_iat=claims.get("original_iat"))
        return ResumeResult(ResumeStatus.SUCCESS, user=user, cookie=session.cookie)

    # ── Refresh ─────────────────────────────────────────────────────
    def refresh(self, cookies: Any) -> CookieBinding:
        """Re-sign the cookie's token without a database round trip.

        Claims are carried over as they are; ``resume_session`` is the path
        that reloads them.
        """
        token = self.binder.unbind(cookies)
        if token is None:
            raise TokenInvalid("No token to refresh")
        return self.binder.bind(self.codec.refresh(token))

    # ── Logout ──────────────────────────────────────────────────────
    def logout(self) -> CookieBinding:
        return self.binder.clear()

    def _open_session(self, user: User, original_iat: int | None = None) -> SessionResult:
        claims = build_claims(user)
        if original_iat is not None:
            claims["original_iat"] = original_iat
        token = self.codec.issue(claims)
        return SessionResult(user=user, token=token, cookie=self.binder.bind(token))


session_service = SessionService(token_codec, cookie_binder, google_verifier)
