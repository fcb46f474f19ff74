from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauthz.constants import NORMAL_DECISIONS, DecisionStatus, LeaveState
from orgauthz.db.base import Base, utcnow


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    decision_status: Mapped[str] = mapped_column(
        String(20), default=DecisionStatus.APPROVED.value, nullable=False, index=True
    )
    # Window of the current suspension / block / termination.
    status_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_effective_from: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    status_effective_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    assignments: Mapped[list["Assignment"]] = relationship(
        foreign_keys="Assignment.employee_id",
        back_populates="employee",
    )
    snapshot: Mapped["StatusSnapshot | None"] = relationship(
        back_populates="employee",
        uselist=False,
        foreign_keys="StatusSnapshot.employee_id",
    )
    leaves: Mapped[list["LeaveRecord"]] = relationship(
        foreign_keys="LeaveRecord.employee_id",
        back_populates="employee",
        order_by="LeaveRecord.id",
    )

    @property
    def in_normal_status(self) -> bool:
        return self.decision_status in NORMAL_DECISIONS


class LeaveRecord(Base):
    """
    A leave request and, once accepted, the delegation it carries.

    Only one leave per employee may be open (PENDING or ACCEPTED); closed rows are history.
    """

    __tablename__ = "leave_records"
    __table_args__ = (
        Index(
            "uq_leave_records_one_open_per_employee",
            "employee_id",
            unique=True,
            sqlite_where=text("state IN ('PENDING', 'ACCEPTED')"),
            postgresql_where=text("state IN ('PENDING', 'ACCEPTED')"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), nullable=False, index=True)

    leave_type: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    state: Mapped[str] = mapped_column(String(20), default=LeaveState.PENDING.value, nullable=False, index=True)
    delegate_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True, index=True)
    decided_by_id: Mapped[int | None] = mapped_column(ForeignKey("employees.id"), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_by: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id], back_populates="leaves")
    delegate: Mapped[Employee | None] = relationship(foreign_keys=[delegate_id])

    @property
    def is_open(self) -> bool:
        return self.state in (LeaveState.PENDING.value, LeaveState.ACCEPTED.value)


class StatusSnapshot(Base):
    """
    Role/permission state captured before a reversible transition.

    A row exists exactly while the employee is suspended, blocked, terminated,
    on accepted leave, or standing in as a leave delegate.
    """

    __tablename__ = "status_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    previous_role_id: Mapped[int | None] = mapped_column(ForeignKey("roles.id"), nullable=True)
    previous_role_permission_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    previous_override_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    previous_override_bypass_ids: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
    previous_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)

    leave_id: Mapped[int | None] = mapped_column(ForeignKey("leave_records.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id], back_populates="snapshot")
