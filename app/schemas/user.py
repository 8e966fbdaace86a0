"""Pydantic schemas for identities, sign-in payloads and employee management."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, StrictBool, field_validator, model_validator

from app.core.permissions import normalize_permissions, permissions_from_row
from app.core.roles import AccountState, AuthPlatform, Role, normalize_email


def _validate_email(v: str) -> str:
    v = normalize_email(v)
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Invalid email address")
    return v


# ── Permissions ─────────────────────────────────────────────────────
class ModulePermissions(BaseModel):
    can_view: StrictBool = False
    can_edit: StrictBool = False

    model_config = {"extra": "forbid"}


class PermissionSet(BaseModel):
    products: ModulePermissions = Field(default_factory=ModulePermissions)
    categories: ModulePermissions = Field(default_factory=ModulePermissions)
    schedules: ModulePermissions = Field(default_factory=ModulePermissions)
    socials: ModulePermissions = Field(default_factory=ModulePermissions)

    model_config = {"extra": "forbid"}


# ── Sign-in ─────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    platform: AuthPlatform = AuthPlatform.LOCAL
    email: str | None = None
    password: str | None = None
    credential: str | None = None  # Google ID token

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str | None) -> str | None:
        return _validate_email(v) if v is not None else None

    @model_validator(mode="after")
    def _check_platform_fields(self) -> LoginRequest:
        if self.platform == AuthPlatform.LOCAL and (not self.email or not self.password):
            raise ValueError("Missing email or password")
        if self.platform == AuthPlatform.GOOGLE and not self.credential:
            raise ValueError("Missing Google credential")
        return self


class RegisterRequest(BaseModel):
    platform: AuthPlatform = AuthPlatform.LOCAL
    email: str
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    credential: str | None = None
    image_url: str | None = None

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be blank")
        return v

    @model_validator(mode="after")
    def _check_platform_fields(self) -> RegisterRequest:
        if self.platform == AuthPlatform.LOCAL and not self.password:
            raise ValueError("Password required for local registration")
        if self.platform == AuthPlatform.GOOGLE and not self.credential:
            raise ValueError("Google credential required for Google registration")
        return self


# ── Read models ─────────────────────────────────────────────────────
class UserRead(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    image_url: str | None
    role: Role
    state: AccountState
    is_active: bool
    branch_id: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    success: bool = True
    user: UserRead
    token: str
    token_type: str = "bearer"


class ResumeResponse(BaseModel):
    status: str
    user: UserRead | None = None


class RefreshResponse(BaseModel):
    success: bool = True
    message: str


class LogoutResponse(BaseModel):
    message: str


# ── Employee management ─────────────────────────────────────────────
class EmployeeCreate(BaseModel):
    email: str
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    branch_id: int = Field(gt=0)
    permissions: PermissionSet = Field(default_factory=PermissionSet)

    @field_validator("email")
    @classmethod
    def _normalise_email(cls, v: str) -> str:
        return _validate_email(v)


class PermissionsUpdate(BaseModel):
    permissions: PermissionSet


class PromoteRequest(BaseModel):
    branch_id: int = Field(gt=0)
    permissions: PermissionSet = Field(default_factory=PermissionSet)


class EmployeeRead(UserRead):
    permissions: dict[str, dict[str, bool]]

    @model_validator(mode="before")
    @classmethod
    def _attach_permissions(cls, data: Any) -> Any:
        # ORM rows carry the record as a related EmployeePermission
        if hasattr(data, "permission"):
            values = {name: getattr(data, name, None) for name in UserRead.model_fields}
            values["permissions"] = permissions_from_row(data.permission)
            return values
        if isinstance(data, dict) and "permissions" in data:
            data = {**data, "permissions": normalize_permissions(data["permissions"])}
        return data
