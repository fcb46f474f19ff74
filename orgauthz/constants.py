"""
Enumerations and fixed vocabularies shared by the models, services and API.

Values are stored as plain strings in the database; services convert them
back into these enums at the edges.
"""

from __future__ import annotations

from enum import Enum


ALL = "ALL"
"""Organization-wide wildcard, for department codes and permission status scopes alike."""


class DepartmentCode(str, Enum):
    HR = "HR"
    FINANCE = "Finance"
    BUSINESS_OPERATION = "BusinessOperation"
    IT = "IT"
    COMPLIANCE = "Compliance"
    ALL = ALL


def is_valid_department(code: str | None) -> bool:
    return code in {d.value for d in DepartmentCode}


def is_executive_department(code: str | None) -> bool:
    return code == ALL


class NodeType(str, Enum):
    ORG_ROOT = "ORG_ROOT"
    BOARD = "BOARD"
    EXECUTIVE = "EXECUTIVE"
    DIVISION = "DIVISION"
    DEPARTMENT = "DEPARTMENT"
    DESK = "DESK"
    CELL = "CELL"


class ActionType(str, Enum):
    ADMINISTRATIVE = "ADMINISTRATIVE"
    FUNCTIONAL = "FUNCTIONAL"
    INFORMATIONAL = "INFORMATIONAL"


class HierarchyScope(str, Enum):
    SELF = "SELF"
    DESCENDANT = "DESCENDANT"
    DEPARTMENT = "DEPARTMENT"
    ORGANIZATION = "ORGANIZATION"


class ResourceType(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    LEAVE = "LEAVE"
    ROLE = "ROLE"
    PERMISSION = "PERMISSION"
    NOTIFICATION = "NOTIFICATION"
    ORG_UNIT = "ORG_UNIT"
    SALARY = "SALARY"
    LEDGER = "LEDGER"
    EXPENSE = "EXPENSE"
    COMMISSION = "COMMISSION"
    ALL = ALL


class DecisionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUSPENDED = "SUSPENDED"
    BLOCKED = "BLOCKED"
    TERMINATED = "TERMINATED"
    RESTORED = "RESTORED"


# RESTORED is a regular working status, not a terminal one.
NORMAL_DECISIONS = frozenset({DecisionStatus.PENDING.value, DecisionStatus.APPROVED.value, DecisionStatus.RESTORED.value})


class LeaveState(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


OPEN_LEAVE_STATES = frozenset({LeaveState.PENDING.value, LeaveState.ACCEPTED.value})


class SnapshotKind(str, Enum):
    SUSPENSION = "SUSPENSION"
    BLOCK = "BLOCK"
    TERMINATION = "TERMINATION"
    LEAVE = "LEAVE"
    DELEGATION = "DELEGATION"


STATUS_SNAPSHOT_KINDS = frozenset(
    {SnapshotKind.SUSPENSION.value, SnapshotKind.BLOCK.value, SnapshotKind.TERMINATION.value}
)


# Chairman, Board, CEO
EXECUTIVE_LEVELS = frozenset({0, 1, 2})

POWER_RANK_NAMES = {
    0: "SUPREME",
    1: "EXECUTIVE",
    2: "SENIOR",
    3: "MANAGEMENT",
    4: "SUPERVISORY",
    5: "OPERATIONAL",
    6: "INDIVIDUAL",
}


def power_rank_name(level: int) -> str:
    return POWER_RANK_NAMES.get(level, "INDIVIDUAL")


class AuditEvent(str, Enum):
    PERMISSION_GRANTED = "PERMISSION_GRANTED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    PERMISSION_MODIFIED = "PERMISSION_MODIFIED"
    ROLE_ASSIGNED = "ROLE_ASSIGNED"
    ORG_NODE_MOVED = "ORG_NODE_MOVED"
    LEAVE_APPLIED = "LEAVE_APPLIED"
    LEAVE_ACCEPTED = "LEAVE_ACCEPTED"
    LEAVE_REJECTED = "LEAVE_REJECTED"
    LEAVE_CANCELLED = "LEAVE_CANCELLED"
    LEAVE_RETURNED = "LEAVE_RETURNED"
    LEAVE_EXPIRED = "LEAVE_EXPIRED"
    EMPLOYEE_SUSPENDED = "EMPLOYEE_SUSPENDED"
    EMPLOYEE_BLOCKED = "EMPLOYEE_BLOCKED"
    EMPLOYEE_TERMINATED = "EMPLOYEE_TERMINATED"
    EMPLOYEE_RESTORED = "EMPLOYEE_RESTORED"


class ReasonCode(str, Enum):
    """Stable vocabulary returned by the guards; API layers map these to HTTP statuses."""

    # Denials
    NO_PERMISSION = "NO_PERMISSION"
    NO_ASSIGNMENT = "NO_ASSIGNMENT"
    NO_ORGUNIT = "NO_ORGUNIT"
    SELF_ACTION_DENIED = "SELF_ACTION_DENIED"
    HIERARCHY_LEVEL_VIOLATION = "HIERARCHY_LEVEL_VIOLATION"
    DEPARTMENT_VIOLATION = "DEPARTMENT_VIOLATION"
    SUBTREE_VIOLATION = "SUBTREE_VIOLATION"
    FUNCTIONAL_DEPARTMENT_MISMATCH = "FUNCTIONAL_DEPARTMENT_MISMATCH"
    CROSS_DEPARTMENT_DENIED = "CROSS_DEPARTMENT_DENIED"
    DEPARTMENT_MISMATCH = "DEPARTMENT_MISMATCH"
    INVALID_DEPARTMENT = "INVALID_DEPARTMENT"
    UNKNOWN_ACTION_TYPE = "UNKNOWN_ACTION_TYPE"

    # Grants
    SELF_ACTION_ALLOWED = "SELF_ACTION_ALLOWED"
    ADMINISTRATIVE_ALLOWED = "ADMINISTRATIVE_ALLOWED"
    HIERARCHY_BYPASSED = "HIERARCHY_BYPASSED"
    EXECUTIVE_ACCESS = "EXECUTIVE_ACCESS"
    FUNCTIONAL_ALLOWED = "FUNCTIONAL_ALLOWED"
    INFORMATIONAL_ALLOWED = "INFORMATIONAL_ALLOWED"
    DEPARTMENT_ALLOWED = "DEPARTMENT_ALLOWED"
