"""
Department Guard.

Request-scoped department isolation: an HR user may not read or write Finance
data. Executives (department `ALL`) are unrestricted. On success the guard hands
back a `DepartmentContext` whose `narrow()` scopes any listing query to the
actor's department.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Select, false
from sqlalchemy.orm import Session

from orgauthz.constants import ALL, ReasonCode, is_executive_department, is_valid_department
from orgauthz.models.security import Assignment
from orgauthz.services.assignments import get_active_assignment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepartmentContext:
    employee_id: int
    department_code: str
    unrestricted: bool

    def allows(self, department_code: str | None) -> bool:
        if self.unrestricted or department_code is None:
            return True
        return department_code in (self.department_code, ALL)

    def narrow(self, stmt: Select, column=Assignment.department_code) -> Select:
        if self.unrestricted:
            return stmt
        return stmt.where(column == self.department_code)


@dataclass(frozen=True)
class DepartmentDecision:
    allowed: bool
    reason_code: ReasonCode
    context: DepartmentContext | None = None
    message: str = ""


def evaluate(
    db: Session,
    actor_id: int,
    target_department: str | None = None,
    *,
    required_department: str | None = None,
) -> DepartmentDecision:
    assignment = get_active_assignment(db, actor_id)
    if assignment is None:
        return DepartmentDecision(False, ReasonCode.NO_ASSIGNMENT, message="No active role assignment")

    department = assignment.department_code
    if is_executive_department(department):
        context = DepartmentContext(employee_id=actor_id, department_code=department, unrestricted=True)
        return DepartmentDecision(True, ReasonCode.EXECUTIVE_ACCESS, context)

    if not is_valid_department(department):
        logger.error("Invalid department %r on active assignment of employee=%s", department, actor_id)
        return DepartmentDecision(False, ReasonCode.INVALID_DEPARTMENT, message=f"Invalid department: {department}")

    if required_department is not None and department != required_department:
        return DepartmentDecision(
            False,
            ReasonCode.DEPARTMENT_MISMATCH,
            message=f"Requires {required_department} department, actor is in {department}",
        )

    if target_department and target_department not in (department, ALL):
        logger.info(
            "Cross-department access denied actor=%s dept=%s target_dept=%s", actor_id, department, target_department
        )
        return DepartmentDecision(
            False,
            ReasonCode.CROSS_DEPARTMENT_DENIED,
            message=f"{department} users cannot access {target_department} data",
        )

    context = DepartmentContext(employee_id=actor_id, department_code=department, unrestricted=False)
    return DepartmentDecision(True, ReasonCode.DEPARTMENT_ALLOWED, context)


def department_filter(db: Session, actor_id: int, base_query: Select, column=Assignment.department_code) -> Select:
    """
    Narrow `base_query` to the actor's department.

    An actor without a usable assignment sees nothing rather than everything.
    """

    decision = evaluate(db, actor_id)
    if decision.context is None:
        return base_query.where(false())
    return decision.context.narrow(base_query, column)


def can_access_department(db: Session, actor_id: int, department_code: str) -> bool:
    return evaluate(db, actor_id, department_code).allowed
