"""Assignment store: one active assignment per employee, overrides."""
from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from orgauthz.errors import NotFoundError, PreconditionError
from orgauthz.models.security import Assignment
from orgauthz.services import assignments


def _active_count(db, employee_id):
    return db.scalar(
        select(func.count()).select_from(Assignment).where(
            Assignment.employee_id == employee_id, Assignment.is_active.is_(True)
        )
    )


def test_replace_keeps_exactly_one_active(org, db_session):
    employee_id = org.id("payroll")
    new = assignments.create_or_replace_assignment(
        db_session,
        employee_id=employee_id,
        role_id=org.roles["finance_manager"].id,
        org_node_id=org.nodes["Finance"].id,
        department_code="Finance",
    )

    assert _active_count(db_session, employee_id) == 1
    assert assignments.get_active_assignment(db_session, employee_id).id == new.id
    history = db_session.scalars(select(Assignment).where(Assignment.employee_id == employee_id)).all()
    assert len(history) == 2
    assert all(a.effective_until is not None for a in history if not a.is_active)


def test_partial_unique_index_rejects_second_active_row(org, db_session):
    db_session.add(
        Assignment(
            employee_id=org.id("payroll"),
            role_id=org.roles["staff"].id,
            org_node_id=org.nodes["Payroll"].id,
            department_code="Finance",
        )
    )
    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()


def test_assignment_preconditions(org, db_session):
    with pytest.raises(NotFoundError):
        assignments.create_or_replace_assignment(
            db_session, employee_id=999_999, role_id=None, org_node_id=org.nodes["HR"].id, department_code="HR"
        )
    with pytest.raises(PreconditionError):
        assignments.create_or_replace_assignment(
            db_session,
            employee_id=org.id("payroll"),
            role_id=None,
            org_node_id=org.nodes["HR"].id,
            department_code="Legal",
        )
    with pytest.raises(NotFoundError):
        assignments.create_or_replace_assignment(
            db_session,
            employee_id=org.id("payroll"),
            role_id=None,
            org_node_id=org.nodes["HR"].id,
            department_code="HR",
            override_ids=[999_999],
        )


def test_require_active_assignment(org, db_session):
    unplaced = org.employee("unplaced")
    assert assignments.get_active_assignment(db_session, unplaced.id) is None
    with pytest.raises(PreconditionError):
        assignments.require_active_assignment(db_session, unplaced.id)


def test_overrides_add_and_remove(org, db_session):
    employee_id = org.id("hr_clerk")
    permission = org.permissions["employee.view"]

    assignment = assignments.add_override(db_session, employee_id, permission.id, bypass_hierarchy=True)
    assert assignment.override_ids() == [permission.id]
    assert assignment.overrides[0].bypass_hierarchy is True

    assignment = assignments.remove_override(db_session, employee_id, permission.id)
    assert assignment.override_ids() == []


def test_list_active_assignments_by_department(org, db_session):
    finance = assignments.list_active_assignments(db_session, department_code="Finance")
    assert {a.employee_id for a in finance} == {org.id("fin_mgr"), org.id("payroll")}
