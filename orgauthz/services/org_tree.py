"""
Org Tree Store.

Nodes carry a materialized `path` (`Chairman.Board.CEO.Finance`), so:
- subtree membership is an exact, case-sensitive prefix match on `path`, never a recursive walk
- ancestor lists come from walking parent links, which doubles as an integrity check
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from orgauthz.constants import ALL, AuditEvent, NodeType, is_valid_department
from orgauthz.errors import HierarchyIntegrityError, NotFoundError, OrgTreeError
from orgauthz.models.org import PATH_SEPARATOR, OrgNode
from orgauthz.models.security import Assignment
from orgauthz.services import audit, permission_cache

logger = logging.getLogger(__name__)


class Relation(str, Enum):
    SELF = "SELF"
    ANCESTOR = "ANCESTOR"
    DESCENDANT = "DESCENDANT"
    UNRELATED = "UNRELATED"


def get_node(db: Session, node_id: int) -> OrgNode:
    node = db.get(OrgNode, node_id)
    if node is None:
        raise NotFoundError(f"Org node {node_id} not found", code="ORG_NODE_NOT_FOUND")
    return node


def get_root(db: Session) -> OrgNode | None:
    return db.scalars(select(OrgNode).where(OrgNode.parent_id.is_(None)).order_by(OrgNode.id)).first()


def get_node_by_path(db: Session, path: str) -> OrgNode | None:
    return db.scalars(select(OrgNode).where(OrgNode.path == path)).first()


def _validate_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise OrgTreeError("Node name must not be empty")
    if PATH_SEPARATOR in cleaned:
        raise OrgTreeError(f"Node name must not contain {PATH_SEPARATOR!r}: {cleaned!r}")
    return cleaned


def create_node(
    db: Session,
    *,
    name: str,
    node_type: NodeType | str = NodeType.CELL,
    department_code: str = ALL,
    parent_id: int | None = None,
    description: str | None = None,
) -> OrgNode:
    name = _validate_name(name)
    try:
        node_type_value = NodeType(node_type).value
    except ValueError as exc:
        raise OrgTreeError(f"Unknown node type: {node_type!r}") from exc
    if not is_valid_department(department_code):
        raise OrgTreeError(f"Unknown department code: {department_code!r}")

    if parent_id is None:
        existing_root = get_root(db)
        if existing_root is not None:
            raise OrgTreeError(f"Organization already has a root node ({existing_root.path!r})")
        path, level = name, 0
    else:
        parent = db.get(OrgNode, parent_id)
        if parent is None:
            raise OrgTreeError(f"Parent node {parent_id} not found")
        if not parent.is_active:
            raise OrgTreeError(f"Parent node {parent.path!r} is inactive")
        path, level = f"{parent.path}{PATH_SEPARATOR}{name}", parent.level + 1

    if get_node_by_path(db, path) is not None:
        raise OrgTreeError(f"A node with path {path!r} already exists")

    node = OrgNode(
        name=name,
        node_type=node_type_value,
        department_code=department_code,
        parent_id=parent_id,
        path=path,
        level=level,
        description=description,
    )
    db.add(node)
    db.commit()
    logger.info("Org node created id=%s path=%s level=%s", node.id, node.path, node.level)
    return node


def get_path_to_root(db: Session, node_id: int) -> list[OrgNode]:
    """
    Nodes from `node_id` up to the root, in that order.

    A dangling parent link or a cycle is a corrupted hierarchy and raises
    `HierarchyIntegrityError`; the walk is never silently truncated.
    """

    node = get_node(db, node_id)
    chain = [node]
    seen = {node.id}

    while node.parent_id is not None:
        parent = db.get(OrgNode, node.parent_id)
        if parent is None:
            logger.error("Broken hierarchy: node id=%s path=%s has missing parent id=%s", node.id, node.path, node.parent_id)
            raise HierarchyIntegrityError(f"Parent {node.parent_id} of node {node.id} does not exist")
        if parent.id in seen:
            logger.error("Broken hierarchy: cycle at node id=%s", parent.id)
            raise HierarchyIntegrityError(f"Cycle detected in hierarchy at node {parent.id}")
        chain.append(parent)
        seen.add(parent.id)
        node = parent

    return chain


def subtree_condition(node: OrgNode):
    """SQL condition selecting strict descendants of `node`."""
    # LIKE is case-insensitive on SQLite; compare the prefix byte for byte instead.
    prefix = node.path + PATH_SEPARATOR
    return func.substr(OrgNode.path, 1, len(prefix)) == prefix


def get_descendants(db: Session, node_id: int, *, include_inactive: bool = False) -> list[OrgNode]:
    node = get_node(db, node_id)
    stmt = select(OrgNode).where(subtree_condition(node)).order_by(OrgNode.level, OrgNode.path)
    if not include_inactive:
        stmt = stmt.where(OrgNode.is_active.is_(True))
    return list(db.scalars(stmt).all())


def relation(a: OrgNode, b: OrgNode) -> Relation:
    if a.id == b.id or a.path == b.path:
        return Relation.SELF
    if a.is_ancestor_of(b):
        return Relation.ANCESTOR
    if b.is_ancestor_of(a):
        return Relation.DESCENDANT
    return Relation.UNRELATED


def is_ancestor_of(db: Session, ancestor_id: int, node_id: int) -> bool:
    return relation(get_node(db, ancestor_id), get_node(db, node_id)) is Relation.ANCESTOR


def move_node(db: Session, node_id: int, new_parent_id: int, *, actor_id: int | None = None) -> OrgNode:
    """Re-parent a node and rewrite the path/level of its whole subtree."""

    node = get_node(db, node_id)
    new_parent = get_node(db, new_parent_id)

    if node.parent_id is None:
        raise OrgTreeError("The root node cannot be moved")
    if new_parent.id == node.id or node.is_ancestor_of(new_parent):
        raise OrgTreeError(f"Cannot move {node.path!r} under its own subtree ({new_parent.path!r})")
    if not new_parent.is_active:
        raise OrgTreeError(f"Target parent {new_parent.path!r} is inactive")
    if new_parent.id == node.parent_id:
        return node

    old_parent_id = node.parent_id
    old_path = node.path
    new_path = f"{new_parent.path}{PATH_SEPARATOR}{node.name}"
    if get_node_by_path(db, new_path) is not None:
        raise OrgTreeError(f"A node with path {new_path!r} already exists")

    # Ancestors on both sides lose or gain inherited permissions.
    permission_cache.invalidate_for_nodes(db, [old_parent_id])

    level_delta = new_parent.level + 1 - node.level
    descendants = get_descendants(db, node.id, include_inactive=True)

    node.parent_id = new_parent.id
    node.path = new_path
    node.level += level_delta
    for descendant in descendants:
        descendant.path = new_path + descendant.path[len(old_path) :]
        descendant.level += level_delta

    db.commit()
    permission_cache.invalidate_for_nodes(db, [new_parent.id])

    logger.info(
        "Org node moved id=%s %s -> %s (%s descendants rewritten)", node.id, old_path, new_path, len(descendants)
    )
    audit.record_event(
        db,
        AuditEvent.ORG_NODE_MOVED,
        actor_id=actor_id,
        target_id=node.id,
        details={"from": old_path, "to": new_path, "descendants": len(descendants)},
    )
    return node


def deactivate_node(db: Session, node_id: int) -> OrgNode:
    node = get_node(db, node_id)

    active_children = db.scalar(
        select(func.count()).select_from(OrgNode).where(OrgNode.parent_id == node.id, OrgNode.is_active.is_(True))
    )
    if active_children:
        raise OrgTreeError(f"Node {node.path!r} still has {active_children} active children")

    holders = db.scalar(
        select(func.count()).select_from(Assignment).where(Assignment.org_node_id == node.id, Assignment.is_active.is_(True))
    )
    if holders:
        raise OrgTreeError(f"Node {node.path!r} still has {holders} active assignments")

    node.is_active = False
    db.commit()
    permission_cache.invalidate_for_nodes(db, [node.parent_id])
    logger.info("Org node deactivated id=%s path=%s", node.id, node.path)
    return node


def get_tree(db: Session, root_id: int | None = None) -> dict[str, Any] | None:
    """Nested `{id, name, path, ..., children: [...]}` built from one query."""

    root = get_node(db, root_id) if root_id is not None else get_root(db)
    if root is None:
        return None

    nodes = [root, *get_descendants(db, root.id)]
    by_id: dict[int, dict[str, Any]] = {}
    for node in nodes:
        by_id[node.id] = {
            "id": node.id,
            "name": node.name,
            "node_type": node.node_type,
            "department_code": node.department_code,
            "path": node.path,
            "level": node.level,
            "children": [],
        }
    for node in nodes:
        if node.id != root.id and node.parent_id in by_id:
            by_id[node.parent_id]["children"].append(by_id[node.id])
    return by_id[root.id]


def verify_tree(db: Session) -> list[str]:
    """Return a human-readable list of path/level/root invariant violations (empty when healthy)."""

    violations: list[str] = []
    nodes = {node.id: node for node in db.scalars(select(OrgNode)).all()}

    roots = [n for n in nodes.values() if n.parent_id is None]
    if len(roots) != 1:
        violations.append(f"expected exactly one root, found {len(roots)}")

    for node in nodes.values():
        if node.parent_id is None:
            if node.level != 0:
                violations.append(f"root {node.id} has level {node.level}")
            if node.path != node.name:
                violations.append(f"root {node.id} path {node.path!r} != name {node.name!r}")
            continue

        parent = nodes.get(node.parent_id)
        if parent is None:
            violations.append(f"node {node.id} references missing parent {node.parent_id}")
            continue
        expected_path = f"{parent.path}{PATH_SEPARATOR}{node.name}"
        if node.path != expected_path:
            violations.append(f"node {node.id} path {node.path!r} != {expected_path!r}")
        if node.level != parent.level + 1:
            violations.append(f"node {node.id} level {node.level} != {parent.level + 1}")

    return violations
