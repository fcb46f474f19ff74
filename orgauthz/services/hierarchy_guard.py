"""
Hierarchy Guard: the "power gap" decision protocol.

    can_perform_action(actor, target, action) -> Verdict

Steps run in order and stop at the first decisive outcome:

1. the actor's effective permission set must contain `action`
2. actor and target both need an active assignment on an active org node
3. acting on oneself is allowed only for SELF-scoped permissions
4. branch on the permission's action type:
   - ADMINISTRATIVE: strictly shallower level, same department (or executive),
     target inside the actor's subtree
   - FUNCTIONAL: bypass flag, executive, or same department
   - INFORMATIONAL: possession is enough; listings are narrowed by the Department Guard

Normal denials are values, never exceptions. Infrastructure errors (database,
corrupted hierarchy) propagate to the caller untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from orgauthz.constants import ActionType, HierarchyScope, ReasonCode, is_executive_department
from orgauthz.models.security import Assignment
from orgauthz.services.assignments import get_active_assignment
from orgauthz.services.permission_aggregator import PermissionView, get_effective_permissions

logger = logging.getLogger(__name__)

STEP_PERMISSION = 1
STEP_ASSIGNMENT = 2
STEP_SELF_ACTION = 3
STEP_ACTION_TYPE = 4


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    reason_code: ReasonCode
    step: int
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: ReasonCode, step: int, **details: Any) -> Verdict:
        return cls(True, reason, step, details)

    @classmethod
    def deny(cls, reason: ReasonCode, step: int, **details: Any) -> Verdict:
        return cls(False, reason, step, details)

    def as_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason_code": self.reason_code.value,
            "step": self.step,
            "details": dict(self.details),
        }


@dataclass(frozen=True)
class _Subjects:
    permission: PermissionView
    actor: Assignment
    target: Assignment


# ---- Step 4 handlers -------------------------------------------------------------------


def _administrative(s: _Subjects) -> Verdict:
    actor_node, target_node = s.actor.org_node, s.target.org_node
    info = {
        "actor_level": actor_node.level,
        "target_level": target_node.level,
        "actor_department": s.actor.department_code,
        "target_department": s.target.department_code,
    }

    if actor_node.level >= target_node.level:
        return Verdict.deny(ReasonCode.HIERARCHY_LEVEL_VIOLATION, STEP_ACTION_TYPE, **info)

    if not is_executive_department(s.actor.department_code) and s.actor.department_code != s.target.department_code:
        return Verdict.deny(ReasonCode.DEPARTMENT_VIOLATION, STEP_ACTION_TYPE, **info)

    if not actor_node.contains(target_node):
        return Verdict.deny(
            ReasonCode.SUBTREE_VIOLATION,
            STEP_ACTION_TYPE,
            actor_path=actor_node.path,
            target_path=target_node.path,
            **info,
        )

    return Verdict.allow(ReasonCode.ADMINISTRATIVE_ALLOWED, STEP_ACTION_TYPE, **info)


def _functional(s: _Subjects) -> Verdict:
    if s.permission.bypass_hierarchy:
        return Verdict.allow(ReasonCode.HIERARCHY_BYPASSED, STEP_ACTION_TYPE, bypass_source="permission")
    if s.permission.override_bypass:
        return Verdict.allow(ReasonCode.HIERARCHY_BYPASSED, STEP_ACTION_TYPE, bypass_source="override")

    if is_executive_department(s.actor.department_code):
        return Verdict.allow(ReasonCode.EXECUTIVE_ACCESS, STEP_ACTION_TYPE)

    info = {"actor_department": s.actor.department_code, "target_department": s.target.department_code}
    if s.actor.department_code != s.target.department_code:
        return Verdict.deny(ReasonCode.FUNCTIONAL_DEPARTMENT_MISMATCH, STEP_ACTION_TYPE, **info)
    return Verdict.allow(ReasonCode.FUNCTIONAL_ALLOWED, STEP_ACTION_TYPE, **info)


def _informational(s: _Subjects) -> Verdict:
    return Verdict.allow(ReasonCode.INFORMATIONAL_ALLOWED, STEP_ACTION_TYPE)


_HANDLERS: dict[ActionType, Callable[[_Subjects], Verdict]] = {
    ActionType.ADMINISTRATIVE: _administrative,
    ActionType.FUNCTIONAL: _functional,
    ActionType.INFORMATIONAL: _informational,
}

_missing_handlers = set(ActionType) - set(_HANDLERS)
if _missing_handlers:
    raise RuntimeError(f"No hierarchy guard handler for action types: {sorted(t.value for t in _missing_handlers)}")


# ---- Protocol --------------------------------------------------------------------------


def _evaluate(
    db: Session, actor_id: int, target_id: int, permission_action: str, resource_type: str | None
) -> Verdict:
    # Step 1
    permission = get_effective_permissions(db, actor_id).find(permission_action, resource_type)
    if permission is None:
        return Verdict.deny(ReasonCode.NO_PERMISSION, STEP_PERMISSION, resource_type=resource_type)

    # Step 2
    actor = get_active_assignment(db, actor_id)
    target = actor if target_id == actor_id else get_active_assignment(db, target_id)
    if actor is None or target is None:
        return Verdict.deny(
            ReasonCode.NO_ASSIGNMENT,
            STEP_ASSIGNMENT,
            missing="actor" if actor is None else "target",
        )
    for side, assignment in (("actor", actor), ("target", target)):
        if assignment.org_node is None or not assignment.org_node.is_active:
            return Verdict.deny(ReasonCode.NO_ORGUNIT, STEP_ASSIGNMENT, missing=side)

    # Step 3
    if actor_id == target_id:
        if permission.hierarchy_scope == HierarchyScope.SELF.value:
            return Verdict.allow(ReasonCode.SELF_ACTION_ALLOWED, STEP_SELF_ACTION)
        return Verdict.deny(ReasonCode.SELF_ACTION_DENIED, STEP_SELF_ACTION, hierarchy_scope=permission.hierarchy_scope)

    # Step 4
    try:
        action_type = ActionType(permission.action_type)
    except ValueError:
        return Verdict.deny(ReasonCode.UNKNOWN_ACTION_TYPE, STEP_ACTION_TYPE, action_type=permission.action_type)
    return _HANDLERS[action_type](_Subjects(permission=permission, actor=actor, target=target))


def can_perform_action(
    db: Session,
    actor_id: int,
    target_id: int,
    permission_action: str,
    resource_type: str | None = None,
) -> Verdict:
    """Run the power-gap protocol; see module docstring for the step order."""

    verdict = _evaluate(db, actor_id, target_id, permission_action, resource_type)
    if verdict.allowed:
        logger.debug(
            "Authz allow actor=%s target=%s action=%s reason=%s step=%s",
            actor_id,
            target_id,
            permission_action,
            verdict.reason_code.value,
            verdict.step,
        )
    else:
        logger.info(
            "Authz deny actor=%s target=%s action=%s reason=%s step=%s details=%s",
            actor_id,
            target_id,
            permission_action,
            verdict.reason_code.value,
            verdict.step,
            verdict.details,
        )
    return verdict


authorize = can_perform_action
