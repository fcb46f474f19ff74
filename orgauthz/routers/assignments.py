from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee
from orgauthz.models.security import Assignment
from orgauthz.schemas.security import AssignmentIn, AssignmentOut
from orgauthz.security import department_guard
from orgauthz.security.dependencies import get_current_employee, require_allowed
from orgauthz.services import assignments

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.get("", response_model=list[AssignmentOut])
def list_assignments(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> list[Assignment]:
    stmt = select(Assignment).order_by(Assignment.employee_id, Assignment.id)
    if not include_inactive:
        stmt = stmt.where(Assignment.is_active.is_(True))
    stmt = department_guard.department_filter(db, caller.id, stmt)
    return list(db.scalars(stmt).all())


@router.post("", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def assign(
    body: AssignmentIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Assignment:
    """
    Place an employee on a role / node / department.

    Re-placing someone already assigned is an administrative action over them;
    a first placement only needs access to the target department.
    """

    if assignments.get_active_assignment(db, body.employee_id) is not None:
        require_allowed(db, caller.id, body.employee_id, "assignment.manage")

    decision = department_guard.evaluate(db, caller.id, body.department_code)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"reason_code": decision.reason_code.value, "message": decision.message},
        )

    return assignments.create_or_replace_assignment(
        db,
        employee_id=body.employee_id,
        role_id=body.role_id,
        org_node_id=body.org_node_id,
        department_code=body.department_code,
        override_ids=body.override_ids,
        assigned_by_id=caller.id,
        notes=body.notes,
    )
