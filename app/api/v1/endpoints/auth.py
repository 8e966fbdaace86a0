"""
Auth endpoints: login, registration, session resume, refresh, logout & current user.

Session cookies are built by the session service; this module only applies
them to the outgoing response.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_user, get_db
from app.core.config import settings
from app.core.cookies import CookieBinding
from app.models.user import User
from app.schemas.user import (LoginRequest, LogoutResponse, RefreshResponse,
                              RegisterRequest, ResumeResponse, SessionResponse,
                              UserRead)
from app.services.session import ResumeStatus, session_service

# Rate limiter keyed by client IP
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def apply_cookie(response: Response, binding: CookieBinding) -> None:
    response.set_cookie(key=binding.name, value=binding.value, **binding.options)


@router.post("/login", response_model=SessionResponse)
@limiter.limit("5/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Authenticate with email/password or a Google credential. Sets the HttpOnly session cookie."""
    result = await session_service.login(db, body)
    apply_cookie(response, result.cookie)
    return SessionResponse(user=UserRead.model_validate(result.user), token=result.token)


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/hour")
async def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Create an account and start its session."""
    result = await session_service.register(db, body)
    apply_cookie(response, result.cookie)
    return SessionResponse(user=UserRead.model_validate(result.user), token=result.token)


@router.get("/session", response_model=ResumeResponse)
async def resume_session(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> ResumeResponse:
    """Resume the session held in the cookie.

    Always answers 200 with a status; polled on every page load. Any outcome
    other than SUCCESS clears the cookie.
    """
    result = await session_service.resume_session(db, request.cookies)
    if result.status is ResumeStatus.SUCCESS and result.cookie is not None:
        apply_cookie(response, result.cookie)
        return ResumeResponse(status=result.status.value, user=UserRead.model_validate(result.user))

    if result.status is not ResumeStatus.NO_TOKEN:
        logger.info("Session resume failed: %s", result.status.value)
    apply_cookie(response, session_service.logout())
    return ResumeResponse(status=result.status.value)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(request: Request, response: Response) -> RefreshResponse:
    """Extend the cookie's token within its absolute session window."""
    apply_cookie(response, session_service.refresh(request.cookies))
    return RefreshResponse(message="Token refreshed successfully")


@router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response) -> LogoutResponse:
    """Clear the session cookie."""
    apply_cookie(response, session_service.logout())
    return LogoutResponse(message="Logged out successfully")


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Return profile of the currently authenticated user."""
    return current_user
