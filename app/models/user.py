"""
Identity models: users, employee permission records, federated provider links.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Integer, String,
                        Text, UniqueConstraint)
from sqlalchemy.orm import relationship

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    email: str = Column(String(320), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    # Empty for identities that only sign in through a federated provider
    hashed_password: str = Column(Text, nullable=False, default="", server_default="")  # type: ignore[assignment]
    first_name: str = Column(String(255), nullable=False, default="")  # type: ignore[assignment]
    last_name: str = Column(String(255), nullable=False, default="")  # type: ignore[assignment]
    image_url: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    role: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="guest",
        server_default="guest",
    )  # admin | employee | guest | dev
    state: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default="pending",
        server_default="pending",
    )  # pending | active | suspended
    is_active: bool = Column(Boolean, default=True, server_default="true")  # type: ignore[assignment]
    # Employees only; the branches table lives in the catalogue service
    branch_id: int | None = Column(Integer, nullable=True, index=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    permission = relationship(
        "EmployeePermission",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    provider_links = relationship(
        "ProviderLink",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class EmployeePermission(Base):
    __tablename__ = "employee_permissions"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    products_can_view: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    products_can_edit: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    categories_can_view: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    categories_can_edit: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    schedules_can_view: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    schedules_can_edit: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    socials_can_view: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    socials_can_edit: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
    )

    user = relationship("User", back_populates="permission")


class ProviderLink(Base):
    __tablename__ = "auth_providers"
    __table_args__ = (UniqueConstraint("provider", "subject", name="uq_auth_providers_subject"),)

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    user_id: int = Column(  # type: ignore[assignment]
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    subject: str = Column(String(255), nullable=False)  # type: ignore[assignment]
    linked_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    user = relationship("User", back_populates="provider_links")
