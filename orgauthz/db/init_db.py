from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz.catalog import OrgCatalog, load_catalog, ordered_nodes, resolve_role_permissions
from orgauthz.db.base import Base
from orgauthz.db.session import SessionLocal, engine
from orgauthz.models.hr import Employee
from orgauthz.models.security import Permission, Role
from orgauthz.services import org_tree
from orgauthz.services.assignments import create_or_replace_assignment
from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)


def init_db(catalog_path: Path | None = None) -> None:
    """
    Create tables and seed the org catalog into an empty database.

    Seeding is skipped once any permission exists, so restarts keep live data.
    """

    Base.metadata.create_all(bind=engine)

    path = catalog_path or get_settings().resolved_catalog_path()
    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        if not path.exists():
            logger.warning("Org catalog not found at %s; database left empty", path)
            return
        seed(db, load_catalog(path))


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Permission.id).limit(1)).first() is not None


def seed(db: Session, catalog: OrgCatalog) -> dict[str, int]:
    """Insert catalog content; returns the number of rows created per kind."""

    permissions: dict[str, Permission] = {}
    for definition in catalog.permissions.values():
        permission = Permission(
            name=definition.name,
            action=definition.action,
            description=definition.description,
            action_type=definition.action_type,
            hierarchy_scope=definition.hierarchy_scope,
            status_scope=list(definition.status_scope),
            resource_type=definition.resource_type,
            category=definition.category,
            bypass_hierarchy=definition.bypass_hierarchy,
            is_system=definition.is_system,
        )
        permissions[definition.name] = permission
    db.add_all(permissions.values())

    role_permissions = resolve_role_permissions(catalog)
    roles: dict[str, Role] = {}
    for definition in catalog.roles.values():
        role = Role(name=definition.name, category=definition.category, description=definition.description)
        role.permissions = [permissions[name] for name in sorted(role_permissions[definition.name])]
        roles[definition.name] = role
    db.add_all(roles.values())

    employees: dict[str, Employee] = {}
    for definition in catalog.employees:
        employee = Employee(employee_code=definition.code, full_name=definition.full_name, email=definition.email)
        employees[definition.code] = employee
    db.add_all(employees.values())
    db.commit()

    # Nodes go through the tree store so paths and levels are computed in one place.
    node_ids: dict[str, int] = {}
    for definition in ordered_nodes(catalog):
        node = org_tree.create_node(
            db,
            name=definition.name,
            node_type=definition.node_type,
            department_code=definition.department,
            parent_id=node_ids[definition.parent] if definition.parent is not None else None,
            description=definition.description,
        )
        node_ids[definition.key] = node.id

    for definition in catalog.employees:
        create_or_replace_assignment(
            db,
            employee_id=employees[definition.code].id,
            role_id=roles[definition.role].id if definition.role is not None else None,
            org_node_id=node_ids[definition.node],
            department_code=definition.department,
            override_ids=[permissions[name].id for name in definition.overrides],
            notes="seeded from catalog",
        )

    counts = {
        "permissions": len(permissions),
        "roles": len(roles),
        "org_nodes": len(node_ids),
        "employees": len(employees),
    }
    logger.info("Catalog seeded %s", counts)
    return counts
