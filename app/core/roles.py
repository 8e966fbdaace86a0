"""Closed vocabularies for identities."""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"
    GUEST = "guest"
    DEV = "dev"


class AccountState(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class AuthPlatform(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"


def normalize_email(email: str) -> str:
    return email.strip().lower()
