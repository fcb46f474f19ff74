from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee
from orgauthz.schemas.security import AuthorizeIn, EffectivePermissionsOut, VerdictOut
from orgauthz.security.dependencies import get_current_employee, require_allowed
from orgauthz.services.hierarchy_guard import authorize
from orgauthz.services.permission_aggregator import get_effective_permissions, get_permission_breakdown

router = APIRouter(prefix="/authz", tags=["authz"])


@router.post("/check", response_model=VerdictOut)
def check(
    body: AuthorizeIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> dict[str, Any]:
    """
    Ask the hierarchy guard for a verdict. Denials are a normal 200 response.

    `actor_id` defaults to the caller; asking on behalf of someone else needs
    `employee.view` over that person.
    """

    actor_id = body.actor_id if body.actor_id is not None else caller.id
    if actor_id != caller.id:
        require_allowed(db, caller.id, actor_id, "employee.view")
    return authorize(db, actor_id, body.target_id, body.action, body.resource_type).as_dict()


@router.get("/permissions/{employee_id}", response_model=EffectivePermissionsOut)
def effective_permissions(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    if employee_id != caller.id:
        require_allowed(db, caller.id, employee_id, "employee.view")
    return get_effective_permissions(db, employee_id, use_cache=True)


@router.get("/permissions/{employee_id}/breakdown")
def permission_breakdown(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> dict[str, Any]:
    if employee_id != caller.id:
        require_allowed(db, caller.id, employee_id, "employee.view")
    return get_permission_breakdown(db, employee_id)
