from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.audit import AuditLog
from orgauthz.models.hr import Employee
from orgauthz.models.security import Permission, Role
from orgauthz.schemas.security import (
    AuditLogOut,
    PermissionCreateIn,
    PermissionOut,
    PermissionUpdateIn,
    RoleOut,
    RolePermissionsIn,
)
from orgauthz.security.dependencies import get_current_employee
from orgauthz.services import audit, permission_admin

router = APIRouter(tags=["permissions"])


@router.get("/permissions", response_model=list[PermissionOut])
def list_permissions(include_inactive: bool = False, db: Session = Depends(get_db)) -> list[Permission]:
    stmt = select(Permission).order_by(Permission.id)
    if not include_inactive:
        stmt = stmt.where(Permission.is_active.is_(True))
    return list(db.scalars(stmt).all())


@router.post("/permissions", response_model=PermissionOut, status_code=status.HTTP_201_CREATED)
def create_permission(
    body: PermissionCreateIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Permission:
    return permission_admin.create_permission(db, actor_id=caller.id, **body.model_dump())


@router.patch("/permissions/{permission_id}", response_model=PermissionOut)
def update_permission(
    permission_id: int,
    body: PermissionUpdateIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Permission:
    return permission_admin.update_permission(db, permission_id, actor_id=caller.id, **body.model_dump(exclude_unset=True))


@router.delete("/permissions/{permission_id}", response_model=PermissionOut)
def delete_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Permission:
    return permission_admin.delete_permission(db, permission_id, actor_id=caller.id)


@router.put("/roles/{role_id}/permissions", response_model=RoleOut)
def set_role_permissions(
    role_id: int,
    body: RolePermissionsIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Role:
    return permission_admin.set_role_permissions(db, role_id, body.permission_ids, actor_id=caller.id)


@router.get("/audit", response_model=list[AuditLogOut])
def audit_log(
    event: str | None = None,
    target_id: int | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
) -> list[AuditLog]:
    return audit.list_events(db, event=event, target_id=target_id, limit=min(max(limit, 1), 500))
