from __future__ import annotations

from sqlalchemy import select

from orgauthz.constants import ReasonCode
from orgauthz.models.security import Assignment
from orgauthz.security import department_guard


def test_executive_is_unrestricted(org, db_session):
    decision = department_guard.evaluate(db_session, org.id("ceo"), "Finance")
    assert decision.allowed
    assert decision.reason_code is ReasonCode.EXECUTIVE_ACCESS
    assert decision.context.unrestricted


def test_same_department_allowed(org, db_session):
    decision = department_guard.evaluate(db_session, org.id("hr_officer"), "HR")
    assert decision.reason_code is ReasonCode.DEPARTMENT_ALLOWED
    assert decision.context.department_code == "HR"


def test_organization_wide_data_allowed(org, db_session):
    assert department_guard.can_access_department(db_session, org.id("hr_officer"), "ALL")


def test_cross_department_denied(org, db_session):
    decision = department_guard.evaluate(db_session, org.id("hr_officer"), "Finance")
    assert not decision.allowed
    assert decision.reason_code is ReasonCode.CROSS_DEPARTMENT_DENIED


def test_required_department_mismatch(org, db_session):
    decision = department_guard.evaluate(db_session, org.id("hr_officer"), required_department="Compliance")
    assert decision.reason_code is ReasonCode.DEPARTMENT_MISMATCH


def test_no_assignment(org, db_session):
    nobody = org.employee("nobody")
    decision = department_guard.evaluate(db_session, nobody.id)
    assert decision.reason_code is ReasonCode.NO_ASSIGNMENT


def test_invalid_department_on_assignment(org, db_session):
    assignment = db_session.scalars(
        select(Assignment).where(Assignment.employee_id == org.id("payroll"), Assignment.is_active.is_(True))
    ).one()
    assignment.department_code = "Legal"
    db_session.commit()

    decision = department_guard.evaluate(db_session, org.id("payroll"))
    assert decision.reason_code is ReasonCode.INVALID_DEPARTMENT


def _employees_seen(db, actor_id):
    stmt = select(Assignment.employee_id).where(Assignment.is_active.is_(True))
    return set(db.scalars(department_guard.department_filter(db, actor_id, stmt)).all())


def test_department_filter_narrows_listing(org, db_session):
    assert _employees_seen(db_session, org.id("payroll")) == {org.id("fin_mgr"), org.id("payroll")}
    assert len(_employees_seen(db_session, org.id("ceo"))) == len(org.employees)


def test_department_filter_without_assignment_returns_nothing(org, db_session):
    nobody = org.employee("nobody")
    assert _employees_seen(db_session, nobody.id) == set()
