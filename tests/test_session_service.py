"""Tests for the session service: login, registration, resume and logout."""

import pytest
from sqlalchemy import select

from app.core.cookies import CookieBinder
from app.core.errors import (AccountSuspended, DuplicateAccount, InvalidCredentials,
                             InvalidPayload, TokenExpired, TokenInvalid)
from app.core.roles import AccountState, AuthPlatform, Role
from app.core.tokens import TokenCodec, TokenConfig
from app.models.user import ProviderLink, User
from app.schemas.user import LoginRequest, RegisterRequest
from app.services.session import ResumeStatus, SessionService, build_claims

SECRET = "session-service-secret-0123456789abcdef"
WEEK = 604_800
DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture
def codec(clock) -> TokenCodec:
    return TokenCodec(TokenConfig(secret=SECRET, absolute_session_ms=WEEK * 1000), clock=clock)


@pytest.fixture
def binder() -> CookieBinder:
    return CookieBinder(cookie_name="jwt_token", max_age=WEEK)


@pytest.fixture
def service(codec, binder, fake_verifier) -> SessionService:
    return SessionService(codec, binder, fake_verifier)


def _local(email: str, password: str = DEFAULT_PASSWORD) -> LoginRequest:
    return LoginRequest(platform=AuthPlatform.LOCAL, email=email, password=password)


# ── Claims ──────────────────────────────────────────────────────────
async def test_admin_claims_have_no_permission_snapshot(make_user):
    user = await make_user(role=Role.ADMIN)
    claims = build_claims(user)
    assert claims == {
        "user_id": user.id,
        "email": user.email,
        "role": "admin",
        "state": "active",
    }


async def test_employee_claims_carry_branch_and_permissions(make_user):
    user = await make_user(
        email="cook@example.com",
        role=Role.EMPLOYEE,
        branch_id=7,
        permissions={"products": {"can_view": True}},
    )
    claims = build_claims(user)
    assert claims["branch_id"] == 7
    assert claims["permissions"]["products"] == {"can_view": True, "can_edit": False}
    assert claims["permissions"]["socials"] == {"can_view": False, "can_edit": False}


# ── Login ───────────────────────────────────────────────────────────
async def test_local_login_issues_token_and_cookie(service, codec, db_session, make_user):
    user = await make_user(email="owner@example.com")

    result = await service.login(db_session, _local("Owner@Example.com "))

    assert result.user.id == user.id
    assert result.cookie.value == result.token
    assert result.cookie.options["httponly"] is True
    claims = codec.verify(result.token)
    assert claims["user_id"] == user.id
    assert claims["role"] == "admin"


async def test_login_unknown_email_and_wrong_password_look_the_same(service, db_session, make_user):
    await make_user(email="owner@example.com")

    with pytest.raises(InvalidCredentials) as unknown:
        await service.login(db_session, _local("nobody@example.com"))
    with pytest.raises(InvalidCredentials) as wrong:
        await service.login(db_session, _local("owner@example.com", "wrong-password"))

    assert unknown.value.detail == wrong.value.detail


async def test_login_without_local_password_is_rejected(service, db_session, make_user):
    await make_user(email="google-only@example.com", password=None)
    with pytest.raises(InvalidCredentials):
        await service.login(db_session, _local("google-only@example.com", "anything-at-all"))


async def test_suspended_user_cannot_login(service, db_session, make_user):
    await make_user(email="gone@example.com", state=AccountState.SUSPENDED)
    with pytest.raises(AccountSuspended):
        await service.login(db_session, _local("gone@example.com"))


async def test_disabled_user_cannot_login(service, db_session, make_user):
    await make_user(email="off@example.com", state=AccountState.ACTIVE, is_active=False)
    with pytest.raises(AccountSuspended):
        await service.login(db_session, _local("off@example.com"))


async def test_google_login_requires_a_linked_account(service, fake_verifier, db_session):
    credentials = LoginRequest(platform=AuthPlatform.GOOGLE, credential="good:sub-1:a@example.com")
    with pytest.raises(InvalidCredentials):
        await service.login(db_session, credentials)
    assert fake_verifier.calls == ["good:sub-1:a@example.com"]


async def test_google_login_rejects_bad_credential(service, db_session):
    credentials = LoginRequest(platform=AuthPlatform.GOOGLE, credential="forged")
    with pytest.raises(InvalidCredentials):
        await service.login(db_session, credentials)


# ── Registration ────────────────────────────────────────────────────
async def test_local_registration_creates_active_admin(service, codec, db_session):
    payload = RegisterRequest(
        email="New@Example.com",
        first_name=" Ana ",
        last_name="Lopez",
        password="long-enough-pw",
    )
    result = await service.register(db_session, payload)

    assert result.user.id is not None
    assert result.user.email == "new@example.com"
    assert result.user.first_name == "Ana"
    assert result.user.role == Role.ADMIN.value
    assert result.user.state == AccountState.ACTIVE.value
    assert codec.verify(result.token)["user_id"] == result.user.id

    again = await service.login(db_session, _local("new@example.com", "long-enough-pw"))
    assert again.user.id == result.user.id


async def test_duplicate_registration_is_case_insensitive(service, db_session, make_user):
    await make_user(email="taken@example.com")
    payload = RegisterRequest(
        email="TAKEN@example.com",
        first_name="A",
        last_name="B",
        password="long-enough-pw",
    )
    with pytest.raises(DuplicateAccount):
        await service.register(db_session, payload)


async def test_google_registration_links_the_provider(service, db_session):
    payload = RegisterRequest(
        platform=AuthPlatform.GOOGLE,
        email="typed@example.com",
        first_name="Gia",
        last_name="Rossi",
        credential="good:google-sub-9:gia@example.com",
    )
    result = await service.register(db_session, payload)

    assert result.user.email == "gia@example.com"
    assert result.user.hashed_password == ""
    assert result.user.image_url == "https://example.com/avatar.png"

    links = (await db_session.execute(select(ProviderLink))).scalars().all()
    assert [(link.provider, link.subject, link.user_id) for link in links] == [
        ("google", "google-sub-9", result.user.id)
    ]

    login = await service.login(
        db_session,
        LoginRequest(platform=AuthPlatform.GOOGLE, credential="good:google-sub-9:gia@example.com"),
    )
    assert login.user.id == result.user.id


async def test_register_requires_password_for_local(service, db_session):
    payload = RegisterRequest.model_construct(
        platform=AuthPlatform.LOCAL,
        email="x@example.com",
        first_name="X",
        last_name="Y",
        password=None,
        credential=None,
        image_url=None,
    )
    with pytest.raises(InvalidPayload):
        await service.register(db_session, payload)


# ── Resume ──────────────────────────────────────────────────────────
async def test_resume_without_cookie(service, db_session):
    result = await service.resume_session(db_session, {})
    assert result.status is ResumeStatus.NO_TOKEN
    assert result.user is None
    assert result.cookie is None


async def test_resume_with_invalid_token(service, db_session):
    result = await service.resume_session(db_session, {"jwt_token": "garbage"})
    assert result.status is ResumeStatus.INVALID_TOKEN


async def test_resume_with_expired_token(service, codec, clock, db_session, make_user):
    user = await make_user()
    token = codec.issue({"user_id": user.id}, ttl_seconds=10)
    clock.advance(11)

    result = await service.resume_session(db_session, {"jwt_token": token})
    assert result.status is ResumeStatus.EXPIRED_TOKEN


async def test_resume_for_deleted_user(service, codec, db_session):
    token = codec.issue({"user_id": 999})
    result = await service.resume_session(db_session, {"jwt_token": token})
    assert result.status is ResumeStatus.USER_NOT_FOUND


async def test_resume_for_disabled_user(service, codec, db_session, make_user):
    user = await make_user(state=AccountState.ACTIVE, is_active=False)
    token = codec.issue({"user_id": user.id})
    result = await service.resume_session(db_session, {"jwt_token": token})
    assert result.status is ResumeStatus.USER_SUSPENDED
    assert result.cookie is None


async def test_resume_for_suspended_user(service, codec, db_session, make_user):
    user = await make_user(state=AccountState.SUSPENDED)
    token = codec.issue({"user_id": user.id})
    result = await service.resume_session(db_session, {"jwt_token": token})
    assert result.status is ResumeStatus.USER_SUSPENDED
    assert result.cookie is None


async def test_resume_reissues_with_current_claims_and_same_window(
    service, codec, clock, db_session, make_user
):
    user = await make_user(
        email="cook@example.com",
        role=Role.EMPLOYEE,
        permissions={"products": {"can_view": True}},
    )
    stale = codec.issue({"user_id": user.id, "role": "employee", "permissions": {}})
    started = codec.verify(stale)["original_iat"]
    clock.advance(3600)

    result = await service.resume_session(db_session, {"jwt_token": stale})

    assert result.status is ResumeStatus.SUCCESS
    assert result.user.id == user.id
    claims = codec.verify(result.cookie.value)
    assert claims["original_iat"] == started
    assert claims["iat"] == int(clock.now)
    assert claims["exp"] == started + WEEK
    assert claims["permissions"]["products"]["can_view"] is True


# ── Logout ──────────────────────────────────────────────────────────
def test_logout_returns_clearing_cookie(service):
    cookie = service.logout()
    assert cookie.name == "jwt_token"
    assert cookie.value == ""
    assert cookie.options["max_age"] == 0


async def test_user_rows_are_untouched_by_failed_registration(service, db_session, make_user):
    await make_user(email="taken@example.com")
    payload = RegisterRequest(email="taken@example.com", first_name="A", last_name="B", password="long-enough-pw")
    with pytest.raises(DuplicateAccount):
        await service.register(db_session, payload)

    users = (await db_session.execute(select(User))).scalars().all()
    assert len(users) == 1


# ── Refresh ─────────────────────────────────────────────────────────
def test_refresh_reissues_the_cookie_token(service, codec, clock):
    token = codec.issue({"user_id": 8, "role": "admin"}, ttl_seconds=60)
    started = codec.verify(token)["original_iat"]
    clock.advance(30)

    cookie = service.refresh({"jwt_token": token})

    claims = codec.verify(cookie.value)
    assert cookie.options["httponly"] is True
    assert claims["original_iat"] == started
    assert claims["role"] == "admin"
    assert claims["exp"] == started + WEEK


def test_refresh_without_cookie_is_invalid(service):
    with pytest.raises(TokenInvalid):
        service.refresh({})


def test_refresh_of_expired_cookie_propagates(service, codec, clock):
    token = codec.issue({"user_id": 8}, ttl_seconds=5)
    clock.advance(6)
    with pytest.raises(TokenExpired):
        service.refresh({"jwt_token": token})
