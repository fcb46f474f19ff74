"""Read-only hierarchy insights built on the org tree and assignment stores."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from orgauthz.constants import EXECUTIVE_LEVELS, is_executive_department, power_rank_name
from orgauthz.models.org import OrgNode
from orgauthz.models.security import Assignment
from orgauthz.services import org_tree
from orgauthz.services.assignments import get_active_assignment

logger = logging.getLogger(__name__)


def _influence_modifier(subordinate_count: int) -> float:
    if subordinate_count > 100:
        return -0.5
    if subordinate_count > 50:
        return -0.3
    if subordinate_count > 20:
        return -0.1
    return 0.0


def _subordinate_assignments(db: Session, assignment: Assignment) -> list[Assignment]:
    # Colleagues on the same node count, as do holders anywhere below it.
    node = assignment.org_node
    stmt = (
        select(Assignment)
        .join(OrgNode, OrgNode.id == Assignment.org_node_id)
        .where(
            Assignment.is_active.is_(True),
            Assignment.employee_id != assignment.employee_id,
            OrgNode.is_active.is_(True),
            or_(OrgNode.id == node.id, org_tree.subtree_condition(node)),
        )
        .options(selectinload(Assignment.employee), selectinload(Assignment.role), selectinload(Assignment.org_node))
        .order_by(OrgNode.level, OrgNode.path, Assignment.employee_id)
    )
    return list(db.scalars(stmt).all())


def calculate_power_rank(db: Session, employee_id: int) -> dict[str, Any]:
    """
    Level-based rank (0 = most senior), nudged down for large spans of control.

    The modifier never pushes the rank below 0.
    """

    assignment = get_active_assignment(db, employee_id)
    if assignment is None or assignment.org_node is None:
        return {
            "rank": None,
            "rank_name": "NO_ASSIGNMENT",
            "level": None,
            "is_executive": False,
            "subordinate_count": 0,
        }

    node = assignment.org_node
    subordinate_count = len(_subordinate_assignments(db, assignment))
    modifier = _influence_modifier(subordinate_count)
    return {
        "rank": max(0.0, node.level + modifier),
        "rank_name": power_rank_name(node.level),
        "level": node.level,
        "is_executive": node.level in EXECUTIVE_LEVELS or is_executive_department(assignment.department_code),
        "subordinate_count": subordinate_count,
        "influence_modifier": modifier,
        "org_node_name": node.name,
        "org_node_path": node.path,
        "department_code": assignment.department_code,
        "role_category": assignment.role.category if assignment.role is not None else None,
    }


def get_subordinates(db: Session, employee_id: int) -> list[dict[str, Any]]:
    assignment = get_active_assignment(db, employee_id)
    if assignment is None or assignment.org_node is None:
        return []

    return [
        {
            "employee_id": sub.employee_id,
            "full_name": sub.employee.full_name if sub.employee is not None else None,
            "role": sub.role.name if sub.role is not None else None,
            "org_node_id": sub.org_node_id,
            "org_node_path": sub.org_node.path,
            "department_code": sub.department_code,
            "level": sub.org_node.level,
        }
        for sub in _subordinate_assignments(db, assignment)
    ]


def get_common_ancestor(db: Session, employee_a: int, employee_b: int) -> OrgNode | None:
    """Lowest node that is on both employees' root paths (None without assignments)."""

    first = get_active_assignment(db, employee_a)
    second = get_active_assignment(db, employee_b)
    if first is None or second is None:
        return None

    path_a = list(reversed(org_tree.get_path_to_root(db, first.org_node_id)))
    path_b = list(reversed(org_tree.get_path_to_root(db, second.org_node_id)))

    common: OrgNode | None = None
    for node_a, node_b in zip(path_a, path_b):
        if node_a.id != node_b.id:
            break
        common = node_a
    return common


def get_authority_range(db: Session, employee_id: int) -> list[dict[str, Any]]:
    """Active nodes strictly below the employee's node: where administrative actions can land."""

    assignment = get_active_assignment(db, employee_id)
    if assignment is None or assignment.org_node is None:
        return []
    return [
        {"id": n.id, "name": n.name, "path": n.path, "level": n.level, "node_type": n.node_type}
        for n in org_tree.get_descendants(db, assignment.org_node_id)
    ]


def describe_relationship(db: Session, ancestor_employee_id: int, other_employee_id: int) -> dict[str, Any]:
    first = get_active_assignment(db, ancestor_employee_id)
    second = get_active_assignment(db, other_employee_id)
    if first is None or second is None:
        return {"is_ancestor": False, "relationship": "NO_ASSIGNMENT", "distance": None}
    if first.org_node is None or second.org_node is None:
        return {"is_ancestor": False, "relationship": "NO_ORGUNIT", "distance": None}

    a, b = first.org_node, second.org_node
    relation = org_tree.relation(a, b)
    if relation is org_tree.Relation.SELF:
        return {"is_ancestor": False, "relationship": "SELF", "distance": 0}

    if relation is org_tree.Relation.ANCESTOR:
        distance = b.level - a.level
        name = {1: "DIRECT_PARENT", 2: "GRANDPARENT"}.get(distance, "DISTANT_ANCESTOR")
        return {
            "is_ancestor": True,
            "relationship": name,
            "distance": distance,
            "ancestor_path": a.path,
            "descendant_path": b.path,
        }

    if a.level == b.level:
        return {"is_ancestor": False, "relationship": "PEER", "distance": 0}
    if a.level > b.level:
        return {"is_ancestor": False, "relationship": "SUBORDINATE", "distance": a.level - b.level}
    return {"is_ancestor": False, "relationship": "DIFFERENT_BRANCH", "distance": None}


def validate_hierarchy_move(db: Session, employee_id: int, new_node_id: int) -> dict[str, Any]:
    """Would placing `employee_id` on `new_node_id` put them under one of their own subordinates?"""

    new_node = db.get(OrgNode, new_node_id)
    if new_node is None or not new_node.is_active:
        return {"valid": False, "reason": "Target org node not found or inactive"}

    assignment = get_active_assignment(db, employee_id)
    if assignment is not None and assignment.org_node is not None:
        for sub in _subordinate_assignments(db, assignment):
            if sub.org_node.is_ancestor_of(new_node):
                return {
                    "valid": False,
                    "reason": f"Cannot move under subordinate {sub.employee_id} ({sub.org_node.path})",
                    "conflicting_employee_id": sub.employee_id,
                }

    return {"valid": True, "new_level": new_node.level, "new_path": new_node.path}
