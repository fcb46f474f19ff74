from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from orgauthz.constants import ReasonCode
from orgauthz.db.session import get_db
from orgauthz.models.hr import Employee
from orgauthz.security import department_guard
from orgauthz.security.auth import extract_employee_id, load_employee
from orgauthz.security.config import SecurityConfig
from orgauthz.security.context import AuthzContext
from orgauthz.services.hierarchy_guard import Verdict, authorize
from orgauthz.services.permission_aggregator import get_effective_permissions

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_employee(request: Request) -> Employee:
    employee = getattr(request.state, "employee", None)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return employee


def get_authz(request: Request) -> AuthzContext:
    authz = getattr(request.state, "authz", None)
    if authz is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return authz


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    db: Session = Depends(get_db, use_cache=False),
) -> None:
    """
    Global route-level gate driven by `config/security_config.yaml`.

    Coarse checks only: authentication, "holds one of these permissions", and
    department restrictions. Actor-versus-target decisions belong to
    `hierarchy_guard.authorize`, which handlers call with the concrete target.
    """

    rule = config.match(request.url.path, request.method.upper())
    if not rule.auth_required:
        return

    employee_id = extract_employee_id(request, config)
    if employee_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing employee id")

    employee = load_employee(db, employee_id)
    request.state.employee = employee

    decision = department_guard.evaluate(db, employee.id, required_department=rule.required_department)
    if not decision.allowed:
        if decision.reason_code is ReasonCode.INVALID_DEPARTMENT:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="SYSTEM_ERROR")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"reason_code": decision.reason_code.value, "message": decision.message},
        )

    held = get_effective_permissions(db, employee.id)
    actions = held.actions()
    if rule.required_permissions and not any(held.find(a) is not None for a in rule.required_permissions):
        logger.info(
            "Route denied employee=%s path=%s required=%s",
            employee.id,
            request.url.path,
            sorted(rule.required_permissions),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "reason_code": "NO_PERMISSION",
                "message": f"Requires one of: {sorted(rule.required_permissions)}",
            },
        )

    context = decision.context
    request.state.authz = AuthzContext(
        employee_id=employee.id,
        department_code=context.department_code,
        permissions=actions,
        filter_by_department=rule.filter_by_department,
        unrestricted=context.unrestricted,
    )


def require_allowed(
    db: Session,
    actor_id: int,
    target_id: int,
    action: str,
    resource_type: str | None = None,
) -> Verdict:
    """Run the hierarchy guard for a concrete target; a denial becomes a 403 carrying the verdict."""

    verdict = authorize(db, actor_id, target_id, action, resource_type)
    if not verdict.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=verdict.as_dict())
    return verdict
