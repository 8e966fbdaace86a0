"""
FastAPI dependencies: database session, authentication and authorization gates.

Gates compose per route, in order::

    dependencies=[
        Depends(authenticate),
        Depends(require_role(Role.ADMIN, Role.EMPLOYEE)),
        Depends(require_permission("products", CAN_EDIT)),
    ]

``authenticate`` only verifies the token; it does not hit the database.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable, Coroutine
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cookies import cookie_binder
from app.core.errors import PermissionRecordError, TokenExpired, TokenInvalid
from app.core.permissions import has_capability
from app.core.roles import Role
from app.core.tokens import token_codec
from app.db.session import async_session_factory
from app.models.user import User
from app.schemas.token import AuthContext
from app.services.session import account_is_usable

logger = logging.getLogger(__name__)

# auto_error=False: the cookie is checked first, the header is only a fallback
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Authentication ──────────────────────────────────────────────────
def extract_token(request: Request, bearer: HTTPAuthorizationCredentials | None) -> str | None:
    """Cookie wins over the Authorization header when both are present."""
    token = cookie_binder.unbind(request.cookies)
    if token:
        return token
    if bearer is not None and bearer.credentials:
        return bearer.credentials
    return None


async def authenticate(
    request: Request,
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthContext:
    """Verify the session token and attach its claims to ``request.state.identity``."""
    token = extract_token(request, bearer)
    if not token:
        raise _unauthorized("Authentication required")

    try:
        claims = token_codec.verify(token)
    except TokenExpired:
        raise _unauthorized("Token expired")
    except TokenInvalid:
        raise _unauthorized("Invalid token")

    try:
        identity = AuthContext.model_validate(claims)
    except ValidationError:
        logger.warning("Signed token with malformed claims for user %s", claims.get("user_id"))
        raise _unauthorized("Invalid token")
    request.state.identity = identity
    return identity


def get_identity(request: Request) -> AuthContext | None:
    identity = getattr(request.state, "identity", None)
    return identity if isinstance(identity, AuthContext) else None


# ── Authorization ───────────────────────────────────────────────────
def require_role(*allowed: Role | str) -> Callable[[Request], Coroutine[Any, Any, AuthContext]]:
    """Gate on the authenticated identity's role. Runs after ``authenticate``."""
    allowed_roles = {Role(r).value for r in allowed}

    async def _require_role(request: Request) -> AuthContext:
        identity = get_identity(request)
        if identity is None:
            raise _unauthorized("User not authenticated")
        if identity.role not in allowed_roles:
            logger.warning(
                "Role denied - user %s (role %s) on %s %s, allowed: %s",
                identity.user_id,
                identity.role,
                request.method,
                request.url.path,
                sorted(allowed_roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return identity

    return _require_role


def require_permission(
    module: str, action: str
) -> Callable[[Request], Coroutine[Any, Any, AuthContext]]:
    """Gate on a module capability. Admins always pass; only employees are evaluated."""

    async def _require_permission(request: Request) -> AuthContext:
        identity = get_identity(request)
        if identity is None:
            raise _unauthorized("User not authenticated")

        try:
            allowed = has_capability(identity.role, identity.permissions, module, action)
        except PermissionRecordError:
            logger.error(
                "Malformed permission record in token for user %s", identity.user_id
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error while verifying permissions",
            )

        if not allowed:
            logger.warning(
                "Permission denied - user %s (role %s) needs %s.%s",
                identity.user_id,
                identity.role,
                module,
                action,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You do not have {action} permission on {module}",
            )
        return identity

    return _require_permission


# ── Current user (database-backed) ──────────────────────────────────
async def get_current_user(
    identity: AuthContext = Depends(authenticate),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the authenticated identity's row; reject deleted or disabled accounts."""
    user = await db.get(User, identity.user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not account_is_usable(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is suspended",
        )
    return user

