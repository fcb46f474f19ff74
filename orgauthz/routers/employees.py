from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee
from orgauthz.models.security import Assignment
from orgauthz.schemas.hr import EmployeeOut
from orgauthz.schemas.org import OrgNodeOut
from orgauthz.security.dependencies import get_current_employee, require_allowed
from orgauthz.services import hierarchy

router = APIRouter(tags=["employees"])


def _visible(db: Session, caller: Employee, employee_id: int) -> None:
    if caller.id != employee_id:
        require_allowed(db, caller.id, employee_id, "employee.view")


@router.get("/me", response_model=EmployeeOut)
def me(employee: Employee = Depends(get_current_employee)) -> Employee:
    return employee


@router.get("/employees", response_model=list[EmployeeOut])
def list_employees(db: Session = Depends(get_db)) -> list[Employee]:
    # Department narrowing is applied transparently via orgauthz/db/filters.py.
    stmt = (
        select(Employee)
        .join(Assignment, Assignment.employee_id == Employee.id)
        .where(Assignment.is_active.is_(True))
        .order_by(Employee.id)
    )
    return list(db.scalars(stmt).all())


@router.get("/employees/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> Employee:
    _visible(db, caller, employee_id)
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return employee


@router.get("/employees/{employee_id}/power-rank")
def power_rank(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> dict[str, Any]:
    _visible(db, caller, employee_id)
    return hierarchy.calculate_power_rank(db, employee_id)


@router.get("/employees/{employee_id}/subordinates")
def subordinates(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> list[dict[str, Any]]:
    _visible(db, caller, employee_id)
    return hierarchy.get_subordinates(db, employee_id)


@router.get("/employees/{employee_id}/authority-range")
def authority_range(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> list[dict[str, Any]]:
    _visible(db, caller, employee_id)
    return hierarchy.get_authority_range(db, employee_id)


@router.get("/employees/{employee_id}/relationship/{other_id}")
def relationship(
    employee_id: int,
    other_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> dict[str, Any]:
    _visible(db, caller, employee_id)
    _visible(db, caller, other_id)
    result = hierarchy.describe_relationship(db, employee_id, other_id)
    common = hierarchy.get_common_ancestor(db, employee_id, other_id)
    result["common_ancestor"] = OrgNodeOut.model_validate(common).model_dump() if common is not None else None
    return result
