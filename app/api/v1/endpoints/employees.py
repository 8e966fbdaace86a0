"""
Employee management endpoints (admin only).

- Employees are created with a branch assignment and a permission record
  (deny-by-default unless the admin grants capabilities up front).
- Employees are never deleted: DELETE soft-disables them
  (``is_active = False``, ``state = suspended``) and they can be reactivated.
- A guest can be promoted to employee, which assigns a branch and creates
  the permission record.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import authenticate, get_db, require_role
from app.core.errors import DuplicateAccount, InvalidPayload, NotFound
from app.core.permissions import permissions_to_columns
from app.core.roles import AccountState, Role
from app.core.security import get_password_hash
from app.models.user import EmployeePermission, User
from app.schemas.token import AuthContext
from app.schemas.user import (EmployeeCreate, EmployeeRead, PermissionSet,
                              PermissionsUpdate, PromoteRequest)

router = APIRouter(
    prefix="/employees",
    tags=["employees"],
    dependencies=[Depends(authenticate), Depends(require_role(Role.ADMIN))],
)
logger = logging.getLogger(__name__)


async def _get_employee(db: AsyncSession, employee_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == employee_id, User.role == Role.EMPLOYEE.value)
    )
    employee = result.scalar_one_or_none()
    if employee is None:
        raise NotFound("Employee not found")
    return employee


def _assign_permissions(user: User, permissions: PermissionSet) -> None:
    columns = permissions_to_columns(permissions.model_dump())
    if user.permission is None:
        user.permission = EmployeePermission(**columns)
    else:
        for name, value in columns.items():
            setattr(user.permission, name, value)


@router.post("", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
async def create_employee(
    body: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    admin: AuthContext = Depends(authenticate),
) -> EmployeeRead:
    """Create an employee account bound to a branch."""
    employee = User(
        email=body.email,
        hashed_password=get_password_hash(body.password),
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        role=Role.EMPLOYEE.value,
        state=AccountState.ACTIVE.value,
        is_active=True,
        branch_id=body.branch_id,
    )
    _assign_permissions(employee, body.permissions)
    db.add(employee)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateAccount() from exc

    logger.info(
        "Employee %s (%s) created on branch %s by admin %s",
        employee.id,
        employee.email,
        employee.branch_id,
        admin.user_id,
    )
    return EmployeeRead.model_validate(employee)


@router.get("", response_model=list[EmployeeRead])
async def list_employees(
    branch_id: Optional[int] = Query(None, gt=0),
    state: Optional[AccountState] = Query(None),
    is_active: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[EmployeeRead]:
    """List employees, optionally filtered by branch, state and active flag."""
    stmt = select(User).where(User.role == Role.EMPLOYEE.value)
    if branch_id is not None:
        stmt = stmt.where(User.branch_id == branch_id)
    if state is not None:
        stmt = stmt.where(User.state == state.value)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)

    result = await db.execute(stmt.order_by(User.id).offset(skip).limit(limit))
    return [EmployeeRead.model_validate(e) for e in result.scalars().all()]


@router.get("/{employee_id}", response_model=EmployeeRead)
async def get_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
) -> EmployeeRead:
    return EmployeeRead.model_validate(await _get_employee(db, employee_id))


@router.put("/{employee_id}/permissions", response_model=EmployeeRead)
async def update_employee_permissions(
    employee_id: int,
    body: PermissionsUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AuthContext = Depends(authenticate),
) -> EmployeeRead:
    """Replace an employee's permission record.

    Tokens already issued keep their old snapshot until the next session
    resume or login.
    """
    employee = await _get_employee(db, employee_id)
    _assign_permissions(employee, body.permissions)
    await db.commit()
    logger.info("Permissions of employee %s updated by admin %s", employee_id, admin.user_id)
    return EmployeeRead.model_validate(employee)


@router.delete("/{employee_id}", response_model=EmployeeRead)
async def deactivate_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AuthContext = Depends(authenticate),
) -> EmployeeRead:
    """Soft-disable an employee."""
    employee = await _get_employee(db, employee_id)
    employee.is_active = False
    employee.state = AccountState.SUSPENDED.value
    await db.commit()
    logger.info("Employee %s deactivated by admin %s", employee_id, admin.user_id)
    return EmployeeRead.model_validate(employee)


@router.post("/{employee_id}/reactivate", response_model=EmployeeRead)
async def reactivate_employee(
    employee_id: int,
    db: AsyncSession = Depends(get_db),
    admin: AuthContext = Depends(authenticate),
) -> EmployeeRead:
    employee = await _get_employee(db, employee_id)
    employee.is_active = True
    employee.state = AccountState.ACTIVE.value
    await db.commit()
    logger.info("Employee %s reactivated by admin %s", employee_id, admin.user_id)
    return EmployeeRead.model_validate(employee)


@router.post("/promote/{user_id}", response_model=EmployeeRead)
async def promote_guest(
    user_id: int,
    body: PromoteRequest,
    db: AsyncSession = Depends(get_db),
    admin: AuthContext = Depends(authenticate),
) -> EmployeeRead:
    """Turn a guest account into an employee of ``branch_id``."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.role != Role.GUEST.value:
        raise InvalidPayload("Only guest accounts can be promoted to employee")

    user.role = Role.EMPLOYEE.value
    user.branch_id = body.branch_id
    user.state = AccountState.ACTIVE.value
    user.is_active = True
    _assign_permissions(user, body.permissions)
    await db.commit()
    logger.info(
        "Guest %s promoted to employee on branch %s by admin %s",
        user_id,
        body.branch_id,
        admin.user_id,
    )
    return EmployeeRead.model_validate(user)
