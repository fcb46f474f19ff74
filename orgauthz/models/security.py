from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Table, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauthz.constants import ALL, ActionType, HierarchyScope
from orgauthz.db.base import Base, utcnow


role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", ForeignKey("roles.id"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id"), primary_key=True),
)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    action_type: Mapped[str] = mapped_column(String(20), default=ActionType.FUNCTIONAL.value, nullable=False, index=True)
    hierarchy_scope: Mapped[str] = mapped_column(String(20), default=HierarchyScope.SELF.value, nullable=False)
    # Departments this permission is meaningful for; ["ALL"] means everywhere.
    status_scope: Mapped[list[str]] = mapped_column(JSON, default=lambda: [ALL], nullable=False)
    resource_type: Mapped[str] = mapped_column(String(30), default=ALL, nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(30), default="System", nullable=False)

    bypass_hierarchy: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    roles: Mapped[list["Role"]] = relationship(secondary=role_permissions, back_populates="permissions")


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(30), default="Staff", nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    permissions: Mapped[list[Permission]] = relationship(
        secondary=role_permissions,
        back_populates="roles",
    )

    def permission_ids(self) -> list[int]:
        return sorted(p.id for p in self.permissions)


class Assignment(Base):
    """
    The binding of one employee to a role, an org node and a department.

    At most one row per employee may be active; the partial unique index is the
    final arbiter, not application code.
    """

    __tablename__ = "assignments"
    __table_args__ = (
        Index(
            "uq_assignments_one_active_per_employee",
            "employee_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)
    # Null while the employee is blocked or terminated.
    role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id"), nullable=True, index=True)
    org_node_id: Mapped[int] = mapped_column(ForeignKey("org_nodes.id"), nullable=False, index=True)
    department_code: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_from: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    effective_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    assigned_by_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    employee: Mapped["Employee"] = relationship(foreign_keys=[employee_id], back_populates="assignments")
    role: Mapped[Role | None] = relationship()
    org_node: Mapped["OrgNode"] = relationship()
    overrides: Mapped[list["AssignmentPermissionOverride"]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
    )

    def override_ids(self) -> list[int]:
        return sorted(o.permission_id for o in self.overrides)


class AssignmentPermissionOverride(Base):
    """A permission granted to one assignment on top of its role's permissions."""

    __tablename__ = "assignment_permission_overrides"

    assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id"), primary_key=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey("permissions.id"), primary_key=True)
    bypass_hierarchy: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    assignment: Mapped[Assignment] = relationship(back_populates="overrides")
    permission: Mapped[Permission] = relationship()
