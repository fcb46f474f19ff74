"""
Org catalog YAML loader.

The catalog is the seed description of an organization: permissions, roles
(with single-parent `extends` inheritance), the org tree and a few employees
with their placements. `init_db` uses it to populate an empty database.

Expected shape (simplified):

    catalog:
      permissions:
        employee.suspend:
          action_type: ADMINISTRATIVE
          hierarchy_scope: DESCENDANT
          status_scope: [ALL]
          resource_type: EMPLOYEE
          is_system: true

      roles:
        hr_manager:
          category: Management
          extends: hr_officer
          permissions: [employee.suspend]

      org:
        - key: chairman
          name: Chairman
          node_type: ORG_ROOT
          department: ALL
        - key: hr
          name: HR
          parent: chairman
          node_type: DEPARTMENT
          department: HR

      employees:
        - code: E-0001
          full_name: Ada Chair
          email: ada@example.com
          role: chairman
          node: chairman
          department: ALL

Validation mirrors the database invariants: one root, parents that exist, no
cycles (in `extends` or in `parent`), known departments and enum values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from orgauthz.constants import ALL, ActionType, DepartmentCode, HierarchyScope, NodeType, ResourceType
from orgauthz.errors import CatalogConfigError

logger = logging.getLogger(__name__)


# ---- Data structures -----------------------------------------------------------------


@dataclass(frozen=True)
class PermissionDef:
    name: str
    action: str
    action_type: str
    hierarchy_scope: str
    status_scope: tuple[str, ...]
    resource_type: str
    category: str = "System"
    description: str | None = None
    bypass_hierarchy: bool = False
    is_system: bool = False


@dataclass(frozen=True)
class RoleDef:
    name: str
    permissions: frozenset[str]
    extends: str | None = None
    category: str = "Staff"
    description: str | None = None


@dataclass(frozen=True)
class NodeDef:
    key: str
    name: str
    node_type: str
    department: str
    parent: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class EmployeeDef:
    code: str
    full_name: str
    email: str
    role: str | None
    node: str
    department: str
    overrides: tuple[str, ...] = ()


@dataclass(frozen=True)
class OrgCatalog:
    permissions: Mapping[str, PermissionDef]
    roles: Mapping[str, RoleDef]
    nodes: tuple[NodeDef, ...]
    employees: tuple[EmployeeDef, ...]


# ---- Helpers -------------------------------------------------------------------------


_DEPARTMENTS = frozenset(d.value for d in DepartmentCode)


def _enum_value(enum_cls, raw: Any, where: str) -> str:
    try:
        return enum_cls(str(raw)).value
    except ValueError as exc:
        raise CatalogConfigError(f"{where}: invalid value {raw!r}") from exc


def _department(raw: Any, where: str) -> str:
    value = str(raw) if raw is not None else ALL
    if value not in _DEPARTMENTS:
        raise CatalogConfigError(f"{where}: unknown department {value!r}")
    return value


def _mapping(raw: Any, what: str) -> dict:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise CatalogConfigError(f"{what} must be a mapping")
    return raw


def _sequence(raw: Any, what: str) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise CatalogConfigError(f"{what} must be a list")
    return raw


# ---- Parsing -------------------------------------------------------------------------


def _parse_permissions(raw: dict) -> dict[str, PermissionDef]:
    permissions: dict[str, PermissionDef] = {}
    for name, val in raw.items():
        val = _mapping(val, f"permission {name!r}")
        where = f"permission {name!r}"
        scope = tuple(_department(d, f"{where}.status_scope") for d in _sequence(val.get("status_scope", [ALL]), f"{where}.status_scope"))
        if ALL in scope and len(scope) > 1:
            raise CatalogConfigError(f"{where}: 'ALL' cannot be combined with specific departments")
        permissions[name] = PermissionDef(
            name=name,
            action=str(val.get("action") or name),
            action_type=_enum_value(ActionType, val.get("action_type", ActionType.FUNCTIONAL.value), f"{where}.action_type"),
            hierarchy_scope=_enum_value(
                HierarchyScope, val.get("hierarchy_scope", HierarchyScope.SELF.value), f"{where}.hierarchy_scope"
            ),
            status_scope=scope,
            resource_type=_enum_value(ResourceType, val.get("resource_type", ALL), f"{where}.resource_type"),
            category=str(val.get("category") or "System"),
            description=val.get("description"),
            bypass_hierarchy=bool(val.get("bypass_hierarchy", False)),
            is_system=bool(val.get("is_system", False)),
        )
    return permissions


def _parse_roles(raw: dict, permissions: Mapping[str, PermissionDef]) -> dict[str, RoleDef]:
    roles: dict[str, RoleDef] = {}
    for name, val in raw.items():
        val = _mapping(val, f"role {name!r}")
        extends = val.get("extends")
        if extends is not None:
            extends = str(extends).strip() or None
        perms = frozenset(str(p) for p in _sequence(val.get("permissions"), f"role {name!r}.permissions"))
        unknown = perms.difference(permissions)
        if unknown:
            raise CatalogConfigError(f"role {name!r} references unknown permissions: {sorted(unknown)}")
        roles[name] = RoleDef(
            name=name,
            permissions=perms,
            extends=extends,
            category=str(val.get("category") or "Staff"),
            description=val.get("description"),
        )

    for role in roles.values():
        if role.extends and role.extends not in roles:
            raise CatalogConfigError(f"role {role.name!r} extends unknown role {role.extends!r}")
    return roles


def _parse_nodes(raw: list) -> tuple[NodeDef, ...]:
    nodes: dict[str, NodeDef] = {}
    for index, val in enumerate(raw):
        val = _mapping(val, f"org[{index}]")
        key = str(val.get("key") or val.get("name") or "").strip()
        name = str(val.get("name") or key).strip()
        if not key or not name:
            raise CatalogConfigError(f"org[{index}] requires a key or name")
        if "." in name:
            raise CatalogConfigError(f"org node {key!r}: name must not contain '.'")
        if key in nodes:
            raise CatalogConfigError(f"duplicate org node key {key!r}")
        parent = val.get("parent")
        nodes[key] = NodeDef(
            key=key,
            name=name,
            node_type=_enum_value(NodeType, val.get("node_type", NodeType.CELL.value), f"org node {key!r}.node_type"),
            department=_department(val.get("department"), f"org node {key!r}"),
            parent=str(parent) if parent is not None else None,
            description=val.get("description"),
        )

    roots = [n.key for n in nodes.values() if n.parent is None]
    if nodes and len(roots) != 1:
        raise CatalogConfigError(f"org must have exactly one root node, found {roots}")
    for node in nodes.values():
        if node.parent is not None and node.parent not in nodes:
            raise CatalogConfigError(f"org node {node.key!r} has unknown parent {node.parent!r}")
    return tuple(nodes.values())


def _parse_employees(raw: list, roles: Mapping[str, RoleDef], node_keys: set[str], permissions: Mapping) -> tuple[EmployeeDef, ...]:
    employees: list[EmployeeDef] = []
    for index, val in enumerate(raw):
        val = _mapping(val, f"employees[{index}]")
        code = str(val.get("code") or "").strip()
        if not code:
            raise CatalogConfigError(f"employees[{index}] requires a code")
        role = val.get("role")
        if role is not None and role not in roles:
            raise CatalogConfigError(f"employee {code!r} references unknown role {role!r}")
        node = str(val.get("node") or "")
        if node not in node_keys:
            raise CatalogConfigError(f"employee {code!r} references unknown org node {node!r}")
        overrides = tuple(str(p) for p in _sequence(val.get("overrides"), f"employee {code!r}.overrides"))
        unknown = set(overrides).difference(permissions)
        if unknown:
            raise CatalogConfigError(f"employee {code!r} overrides unknown permissions: {sorted(unknown)}")
        employees.append(
            EmployeeDef(
                code=code,
                full_name=str(val.get("full_name") or code),
                email=str(val.get("email") or f"{code.lower()}@example.com"),
                role=role,
                node=node,
                department=_department(val.get("department"), f"employee {code!r}"),
                overrides=overrides,
            )
        )
    return tuple(employees)


def load_catalog(path: Path) -> OrgCatalog:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "catalog" not in raw:
        raise CatalogConfigError(f"Missing top-level 'catalog' key in config: {path}")
    body = _mapping(raw["catalog"], "catalog")

    permissions = _parse_permissions(_mapping(body.get("permissions"), "permissions"))
    roles = _parse_roles(_mapping(body.get("roles"), "roles"), permissions)
    nodes = _parse_nodes(_sequence(body.get("org"), "org"))
    employees = _parse_employees(
        _sequence(body.get("employees"), "employees"), roles, {n.key for n in nodes}, permissions
    )

    catalog = OrgCatalog(permissions=permissions, roles=roles, nodes=nodes, employees=employees)
    # Surface cycles at load time rather than during seeding.
    resolve_role_permissions(catalog)
    ordered_nodes(catalog)
    logger.debug(
        "Catalog loaded path=%s permissions=%s roles=%s nodes=%s employees=%s",
        path,
        len(permissions),
        len(roles),
        len(nodes),
        len(employees),
    )
    return catalog


# ---- Resolution ----------------------------------------------------------------------


def resolve_role_permissions(catalog: OrgCatalog) -> dict[str, frozenset[str]]:
    """
    Resolve `extends` chains into a flat permission set per role.

    Raises `CatalogConfigError` on an inheritance cycle.
    """

    effective: dict[str, frozenset[str]] = {}
    visiting: set[str] = set()

    def dfs(role_name: str) -> frozenset[str]:
        if role_name in effective:
            return effective[role_name]
        if role_name in visiting:
            raise CatalogConfigError(f"cycle detected in role inheritance at {role_name!r}")
        visiting.add(role_name)
        role = catalog.roles[role_name]
        perms = set(role.permissions)
        if role.extends:
            perms.update(dfs(role.extends))
        result = frozenset(perms)
        effective[role_name] = result
        visiting.remove(role_name)
        return result

    for name in catalog.roles:
        dfs(name)
    return effective


def ordered_nodes(catalog: OrgCatalog) -> list[NodeDef]:
    """Nodes ordered parents-first; a `parent` cycle raises `CatalogConfigError`."""

    by_key = {n.key: n for n in catalog.nodes}
    ordered: list[NodeDef] = []
    done: set[str] = set()
    visiting: set[str] = set()

    def visit(key: str) -> None:
        if key in done:
            return
        if key in visiting:
            raise CatalogConfigError(f"cycle detected in org tree at {key!r}")
        visiting.add(key)
        node = by_key[key]
        if node.parent is not None:
            visit(node.parent)
        visiting.remove(key)
        done.add(key)
        ordered.append(node)

    for key in by_key:
        visit(key)
    return ordered
