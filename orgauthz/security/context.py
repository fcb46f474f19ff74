from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthzContext:
    """
    Per-request authorization context.

    Attached to `request.state` by the security dependency and copied into
    `Session.info["authz"]` by `get_db`, where `orgauthz.db.filters` reads it.
    """

    employee_id: int
    department_code: str
    permissions: frozenset[str]

    # Route decision (from config)
    filter_by_department: bool

    # Executive departments see every department.
    unrestricted: bool
