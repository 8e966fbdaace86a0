"""Pydantic schemas for verified JWT claims."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class AuthContext(BaseModel):
    """Claims of a verified session token, attached to ``request.state.identity``."""

    user_id: int
    email: str | None = None
    role: str | None = None
    branch_id: int | None = None
    # Either a parsed record or its JSON string form
    permissions: dict[str, Any] | str | None = None
    state: str | None = None
    original_iat: int | None = None
    iat: int | None = None
    # may carry a fractional second
    exp: float | None = None

    model_config = {"extra": "ignore"}
