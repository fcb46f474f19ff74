"""
Pytest fixtures for the test suite.

Tests use an in-memory SQLite engine and a session joined to an outer
transaction that is rolled back after each test. Services commit their own
units of work, so the session runs in "create_savepoint" mode: their commits
and rollbacks only touch a SAVEPOINT inside the outer transaction.
"""
from __future__ import annotations

from collections.abc import Iterable

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from orgauthz.constants import ALL, ActionType, HierarchyScope, NodeType
from orgauthz.models.hr import Employee
from orgauthz.models.org import OrgNode
from orgauthz.models.security import Permission, Role
from orgauthz.services import notifications, org_tree, permission_cache
from orgauthz.services.assignments import create_or_replace_assignment

TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine; one shared connection so every thread sees the same DB."""
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    import orgauthz.models  # noqa: F401  (register mappers)
    from orgauthz.db.base import Base

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """Session bound to the test DB; everything is rolled back after the test."""
    connection = tables.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture(autouse=True)
def _isolated_globals():
    """Process-wide cache and notification sender are reset around every test."""
    permission_cache.reset_permission_cache(0)
    notifications.set_notification_sender(notifications.LoggingNotificationSender())
    yield
    permission_cache.reset_permission_cache(0)
    notifications.set_notification_sender(None)


class RecordingSender:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    def send(self, event: str, payload: dict) -> None:
        self.sent.append((event, payload))


@pytest.fixture
def sent_notifications() -> RecordingSender:
    sender = RecordingSender()
    notifications.set_notification_sender(sender)
    return sender


class OrgBuilder:
    """Small helper for building org trees, permissions, roles and placed employees in tests."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.nodes: dict[str, OrgNode] = {}
        self.permissions: dict[str, Permission] = {}
        self.roles: dict[str, Role] = {}
        self.employees: dict[str, Employee] = {}

    def node(
        self,
        key: str,
        parent: str | None = None,
        *,
        department: str = ALL,
        node_type: NodeType = NodeType.CELL,
    ) -> OrgNode:
        node = org_tree.create_node(
            self.db,
            name=key,
            node_type=node_type,
            department_code=department,
            parent_id=self.nodes[parent].id if parent else None,
        )
        self.nodes[key] = node
        return node

    def permission(
        self,
        action: str,
        action_type: ActionType = ActionType.FUNCTIONAL,
        *,
        scope: HierarchyScope = HierarchyScope.DEPARTMENT,
        status_scope: Iterable[str] = (ALL,),
        resource_type: str = ALL,
        bypass: bool = False,
        is_system: bool = False,
    ) -> Permission:
        permission = Permission(
            name=action,
            action=action,
            action_type=ActionType(action_type).value,
            hierarchy_scope=HierarchyScope(scope).value,
            status_scope=list(status_scope),
            resource_type=resource_type,
            bypass_hierarchy=bypass,
            is_system=is_system,
        )
        self.db.add(permission)
        self.db.commit()
        self.permissions[action] = permission
        return permission

    def role(self, name: str, *actions: str, category: str = "Staff") -> Role:
        role = Role(name=name, category=category)
        role.permissions = [self.permissions[a] for a in actions]
        self.db.add(role)
        self.db.commit()
        self.roles[name] = role
        return role

    def employee(
        self,
        key: str,
        *,
        node: str | None = None,
        role: str | None = None,
        department: str | None = None,
        overrides: Iterable[str] = (),
    ) -> Employee:
        employee = Employee(
            employee_code=key.upper()[:20],
            full_name=key.replace("_", " ").title(),
            email=f"{key}@example.com",
        )
        self.db.add(employee)
        self.db.commit()
        self.employees[key] = employee

        if node is not None:
            create_or_replace_assignment(
                self.db,
                employee_id=employee.id,
                role_id=self.roles[role].id if role else None,
                org_node_id=self.nodes[node].id,
                department_code=department or self.nodes[node].department_code,
                override_ids=[self.permissions[a].id for a in overrides],
            )
        return employee

    def id(self, key: str) -> int:
        return self.employees[key].id


@pytest.fixture
def builder(db_session) -> OrgBuilder:
    return OrgBuilder(db_session)


@pytest.fixture
def org(builder) -> OrgBuilder:
    """
    A small company:

        Chairman (ALL, L0)
        └── Board (ALL, L1)
            └── CEO (ALL, L2)
                ├── HR (HR, L3)
                │   └── HROps (HR, L4)
                │       └── HRDesk (HR, L5)
                └── Finance (Finance, L3)
                    └── Payroll (Finance, L4)
    """

    b = builder
    b.node("Chairman", department=ALL, node_type=NodeType.ORG_ROOT)
    b.node("Board", "Chairman", department=ALL, node_type=NodeType.BOARD)
    b.node("CEO", "Board", department=ALL, node_type=NodeType.EXECUTIVE)
    b.node("HR", "CEO", department="HR", node_type=NodeType.DIVISION)
    b.node("HROps", "HR", department="HR", node_type=NodeType.DEPARTMENT)
    b.node("HRDesk", "HROps", department="HR", node_type=NodeType.DESK)
    b.node("Finance", "CEO", department="Finance", node_type=NodeType.DIVISION)
    b.node("Payroll", "Finance", department="Finance", node_type=NodeType.DEPARTMENT)

    admin = ActionType.ADMINISTRATIVE
    b.permission("employee.view", ActionType.INFORMATIONAL, resource_type="EMPLOYEE")
    b.permission("employee.suspend", admin, scope=HierarchyScope.DESCENDANT, resource_type="EMPLOYEE", is_system=True)
    b.permission("employee.block", admin, scope=HierarchyScope.DESCENDANT, resource_type="EMPLOYEE", is_system=True)
    b.permission("employee.terminate", admin, scope=HierarchyScope.DESCENDANT, resource_type="EMPLOYEE", is_system=True)
    b.permission("employee.restore", admin, scope=HierarchyScope.DESCENDANT, resource_type="EMPLOYEE", is_system=True)
    b.permission("leave.approve", admin, scope=HierarchyScope.DESCENDANT, resource_type="LEAVE")
    b.permission("leave.apply", scope=HierarchyScope.SELF, resource_type="LEAVE")
    b.permission("hr.records.update", status_scope=["HR"], resource_type="EMPLOYEE")
    b.permission("salary.process", status_scope=["Finance"], resource_type="SALARY")
    b.permission("salary.view_all", status_scope=["Finance"], resource_type="SALARY", bypass=True)

    b.role(
        "ceo",
        "employee.view",
        "employee.suspend",
        "employee.block",
        "employee.terminate",
        "employee.restore",
        "leave.approve",
        "leave.apply",
        category="Executive",
    )
    b.role(
        "hr_manager",
        "employee.view",
        "employee.suspend",
        "employee.restore",
        "leave.approve",
        "leave.apply",
        "hr.records.update",
        category="Management",
    )
    b.role("hr_officer", "employee.view", "leave.apply", "hr.records.update")
    b.role("staff", "leave.apply")
    b.role("finance_manager", "employee.view", "leave.approve", "leave.apply", "salary.process", "salary.view_all")
    b.role("finance_officer", "leave.apply", "salary.process")

    b.employee("chair", node="Chairman", role="ceo")
    b.employee("ceo", node="CEO", role="ceo")
    b.employee("hr_mgr", node="HR", role="hr_manager")
    b.employee("hr_officer", node="HROps", role="hr_officer")
    b.employee("hr_clerk", node="HRDesk", role="staff")
    b.employee("fin_mgr", node="Finance", role="finance_manager")
    b.employee("payroll", node="Payroll", role="finance_officer")
    return b
