from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.models.hr import Employee
from orgauthz.security.config import SecurityConfig

logger = logging.getLogger(__name__)


def extract_employee_id(request: Request, config: SecurityConfig) -> int | None:
    """
    Demo auth: the bearer token is the caller's employee id.

    - Input: `Authorization: Bearer <employee id>`
    - Returns None when the header is absent; malformed headers are a 400.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )

    try:
        return int(token)
    except ValueError as exc:
        logger.warning("Bearer token is not an employee id path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid bearer token (expected integer employee id).",
        ) from exc


def load_employee(db: Session, employee_id: int) -> Employee:
    employee = db.execute(select(Employee).where(Employee.id == employee_id)).scalar_one_or_none()

    if employee is None or not employee.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive employee")

    # Suspended, blocked and terminated employees keep their identity but lose access.
    if not employee.in_normal_status:
        logger.info("Rejected caller employee=%s status=%s", employee.id, employee.decision_status)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Employee status {employee.decision_status} does not allow access",
        )

    return employee
