"""
V1 API router aggregator, wires all endpoint modules together.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import auth, employees

api_router = APIRouter()

# Auth (login, register, session resume, logout, me)
api_router.include_router(auth.router)

# Employee management (admin only)
api_router.include_router(employees.router)


@api_router.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}
