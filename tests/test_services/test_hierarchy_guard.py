"""Power-gap protocol: step ordering and every reason code."""
from __future__ import annotations

import pytest

from orgauthz.constants import ReasonCode
from orgauthz.services import assignments
from orgauthz.services.hierarchy_guard import (
    STEP_ACTION_TYPE,
    STEP_ASSIGNMENT,
    STEP_PERMISSION,
    STEP_SELF_ACTION,
    authorize,
)


@pytest.fixture
def finance_exec(org):
    """Level-2 actor scoped to Finance (sits on the CEO node)."""
    org.role("finance_exec", "employee.suspend", "leave.apply")
    return org.employee("finance_exec", node="CEO", role="finance_exec", department="Finance")


def test_example_admin_allowed_same_department_in_subtree(org, db_session, finance_exec):
    verdict = authorize(db_session, finance_exec.id, org.id("payroll"), "employee.suspend")
    assert verdict.allowed
    assert verdict.reason_code is ReasonCode.ADMINISTRATIVE_ALLOWED
    assert verdict.step == STEP_ACTION_TYPE


def test_example_admin_denied_other_department(org, db_session, finance_exec):
    outsider = org.employee("hr_on_payroll", node="Payroll", role="staff", department="HR")
    verdict = authorize(db_session, finance_exec.id, outsider.id, "employee.suspend")
    assert not verdict.allowed
    assert verdict.reason_code is ReasonCode.DEPARTMENT_VIOLATION


def test_example_same_level_denied_regardless_of_department(org, db_session):
    peer = org.employee("hr_peer", node="HR", role="staff")
    same_dept = authorize(db_session, org.id("hr_mgr"), peer.id, "employee.suspend")
    other_dept = authorize(db_session, org.id("hr_mgr"), org.id("fin_mgr"), "employee.suspend")

    assert same_dept.reason_code is ReasonCode.HIERARCHY_LEVEL_VIOLATION
    assert other_dept.reason_code is ReasonCode.HIERARCHY_LEVEL_VIOLATION


def test_junior_cannot_act_on_senior(org, db_session):
    verdict = authorize(db_session, org.id("ceo"), org.id("chair"), "employee.suspend")
    assert verdict.reason_code is ReasonCode.HIERARCHY_LEVEL_VIOLATION


def test_admin_denied_outside_subtree(org, db_session):
    # Same department, deeper level, but in another branch.
    stray = org.employee("hr_in_finance", node="Payroll", role="staff", department="HR")
    verdict = authorize(db_session, org.id("hr_mgr"), stray.id, "employee.suspend")
    assert verdict.reason_code is ReasonCode.SUBTREE_VIOLATION


def test_executive_admin_reaches_any_department(org, db_session):
    assert authorize(db_session, org.id("ceo"), org.id("hr_clerk"), "employee.suspend").allowed
    assert authorize(db_session, org.id("ceo"), org.id("payroll"), "employee.suspend").allowed


def test_self_action(org, db_session):
    allowed = authorize(db_session, org.id("hr_mgr"), org.id("hr_mgr"), "leave.apply")
    denied = authorize(db_session, org.id("hr_mgr"), org.id("hr_mgr"), "employee.suspend")

    assert allowed.allowed and allowed.reason_code is ReasonCode.SELF_ACTION_ALLOWED
    assert allowed.step == STEP_SELF_ACTION
    assert not denied.allowed and denied.reason_code is ReasonCode.SELF_ACTION_DENIED


def test_missing_permission_stops_at_step_one(org, db_session):
    verdict = authorize(db_session, org.id("payroll"), org.id("hr_clerk"), "employee.suspend")
    assert verdict.reason_code is ReasonCode.NO_PERMISSION
    assert verdict.step == STEP_PERMISSION


def test_target_without_assignment(org, db_session):
    nobody = org.employee("nobody")
    verdict = authorize(db_session, org.id("hr_mgr"), nobody.id, "employee.suspend")
    assert verdict.reason_code is ReasonCode.NO_ASSIGNMENT
    assert verdict.step == STEP_ASSIGNMENT
    assert verdict.details["missing"] == "target"


def test_inactive_org_node(org, db_session):
    org.nodes["HRDesk"].is_active = False
    db_session.commit()
    verdict = authorize(db_session, org.id("hr_mgr"), org.id("hr_clerk"), "employee.suspend")
    assert verdict.reason_code is ReasonCode.NO_ORGUNIT


def test_functional_same_department(org, db_session):
    verdict = authorize(db_session, org.id("payroll"), org.id("fin_mgr"), "salary.process")
    assert verdict.reason_code is ReasonCode.FUNCTIONAL_ALLOWED


def test_functional_other_department_denied(org, db_session):
    verdict = authorize(db_session, org.id("payroll"), org.id("hr_clerk"), "salary.process")
    assert verdict.reason_code is ReasonCode.FUNCTIONAL_DEPARTMENT_MISMATCH


def test_functional_bypass_from_permission(org, db_session):
    verdict = authorize(db_session, org.id("fin_mgr"), org.id("hr_clerk"), "salary.view_all")
    assert verdict.reason_code is ReasonCode.HIERARCHY_BYPASSED
    assert verdict.details["bypass_source"] == "permission"


def test_functional_bypass_from_override(org, db_session):
    assignments.add_override(
        db_session, org.id("payroll"), org.permissions["salary.process"].id, bypass_hierarchy=True
    )
    verdict = authorize(db_session, org.id("payroll"), org.id("hr_clerk"), "salary.process")
    assert verdict.reason_code is ReasonCode.HIERARCHY_BYPASSED
    assert verdict.details["bypass_source"] == "override"


def test_functional_executive(org, db_session):
    verdict = authorize(db_session, org.id("ceo"), org.id("payroll"), "hr.records.update")
    assert verdict.reason_code is ReasonCode.EXECUTIVE_ACCESS


def test_informational_needs_only_possession(org, db_session):
    verdict = authorize(db_session, org.id("hr_officer"), org.id("fin_mgr"), "employee.view")
    assert verdict.reason_code is ReasonCode.INFORMATIONAL_ALLOWED


def test_unknown_action_type_denied(org, db_session):
    org.permissions["employee.view"].action_type = "SUPERVISORY"
    db_session.commit()
    verdict = authorize(db_session, org.id("hr_mgr"), org.id("hr_clerk"), "employee.view")
    assert not verdict.allowed
    assert verdict.reason_code is ReasonCode.UNKNOWN_ACTION_TYPE


def test_resource_type_wildcard(org, db_session):
    org.permission("any.audit", resource_type="ALL")
    org.role("auditor", "any.audit")
    auditor = org.employee("auditor", node="HROps", role="auditor")

    for resource in ("EMPLOYEE", "SALARY", None):
        assert authorize(db_session, auditor.id, org.id("hr_clerk"), "any.audit", resource).allowed


def test_resource_type_mismatch_is_no_permission(org, db_session):
    verdict = authorize(db_session, org.id("payroll"), org.id("fin_mgr"), "salary.process", "LEDGER")
    assert verdict.reason_code is ReasonCode.NO_PERMISSION


def test_verdict_serialization(org, db_session):
    data = authorize(db_session, org.id("payroll"), org.id("hr_clerk"), "employee.suspend").as_dict()
    assert data == {"allowed": False, "reason_code": "NO_PERMISSION", "step": 1, "details": {"resource_type": None}}
