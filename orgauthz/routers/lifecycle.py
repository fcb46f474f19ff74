from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee, LeaveRecord
from orgauthz.schemas.hr import LeaveAcceptIn, LeaveApplyIn, LeaveOut, LeaveRejectIn, StatusChangeIn, TransitionOut
from orgauthz.security.dependencies import get_current_employee, require_allowed
from orgauthz.services import lifecycle

router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


# ---- Leave ---------------------------------------------------------------------------


@router.get("/{employee_id}/leaves", response_model=list[LeaveOut])
def list_leaves(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
) -> list[LeaveRecord]:
    if caller.id != employee_id:
        require_allowed(db, caller.id, employee_id, "employee.view")
    stmt = select(LeaveRecord).where(LeaveRecord.employee_id == employee_id).order_by(LeaveRecord.id.desc())
    return list(db.scalars(stmt).all())


@router.post("/{employee_id}/leave", response_model=TransitionOut, status_code=status.HTTP_201_CREATED)
def apply_leave(
    employee_id: int,
    body: LeaveApplyIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "leave.apply")
    return lifecycle.apply_leave(
        db,
        employee_id,
        leave_type=body.leave_type,
        start_date=body.start_date,
        end_date=body.end_date,
        reason=body.reason,
    )


@router.post("/{employee_id}/leave/accept", response_model=TransitionOut)
def accept_leave(
    employee_id: int,
    body: LeaveAcceptIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "leave.approve")
    return lifecycle.accept_leave(db, caller.id, employee_id, body.delegate_id)


@router.post("/{employee_id}/leave/reject", response_model=TransitionOut)
def reject_leave(
    employee_id: int,
    body: LeaveRejectIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "leave.approve")
    return lifecycle.reject_leave(db, employee_id, body.reason, rejected_by=caller.full_name, actor_id=caller.id)


@router.post("/{employee_id}/leave/cancel", response_model=TransitionOut)
def cancel_leave(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "leave.apply")
    return lifecycle.cancel_leave(db, employee_id)


@router.post("/{employee_id}/leave/take-back", response_model=TransitionOut)
def take_back_leave(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    # The leave-taker's own permissions sit with the delegate until now, so
    # returning early is allowed without a permission check.
    if caller.id != employee_id:
        require_allowed(db, caller.id, employee_id, "leave.approve")
    return lifecycle.take_back_leave(db, employee_id, actor_id=caller.id)


# ---- Status --------------------------------------------------------------------------


@router.post("/{employee_id}/suspend", response_model=TransitionOut)
def suspend(
    employee_id: int,
    body: StatusChangeIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "employee.suspend")
    return lifecycle.suspend(db, employee_id, actor_id=caller.id, **body.model_dump())


@router.post("/{employee_id}/block", response_model=TransitionOut)
def block(
    employee_id: int,
    body: StatusChangeIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "employee.block")
    return lifecycle.block(db, employee_id, actor_id=caller.id, **body.model_dump())


@router.post("/{employee_id}/terminate", response_model=TransitionOut)
def terminate(
    employee_id: int,
    body: StatusChangeIn,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "employee.terminate")
    return lifecycle.terminate(db, employee_id, actor_id=caller.id, **body.model_dump())


@router.post("/{employee_id}/restore", response_model=TransitionOut)
def restore(
    employee_id: int,
    db: Session = Depends(get_db),
    caller: Employee = Depends(get_current_employee),
):
    require_allowed(db, caller.id, employee_id, "employee.restore")
    return lifecycle.restore(db, employee_id, actor_id=caller.id)
