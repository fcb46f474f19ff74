"""Read-only hierarchy insights: power rank, subordinates, relationships."""
from __future__ import annotations

import pytest

from orgauthz.services import hierarchy


def test_power_rank_for_executive(org, db_session):
    rank = hierarchy.calculate_power_rank(db_session, org.id("ceo"))
    assert rank["level"] == 2
    assert rank["rank"] == 2.0
    assert rank["rank_name"] == "SENIOR"
    assert rank["is_executive"] is True
    assert rank["subordinate_count"] == 5
    assert rank["influence_modifier"] == 0.0


def test_power_rank_for_operational_staff(org, db_session):
    rank = hierarchy.calculate_power_rank(db_session, org.id("hr_clerk"))
    assert rank["rank_name"] == "OPERATIONAL"
    assert rank["is_executive"] is False
    assert rank["subordinate_count"] == 0


def test_power_rank_without_assignment(builder, db_session):
    floater = builder.employee("floater")
    rank = hierarchy.calculate_power_rank(db_session, floater.id)
    assert rank["rank"] is None
    assert rank["rank_name"] == "NO_ASSIGNMENT"


@pytest.mark.parametrize("count, modifier", [(0, 0.0), (20, 0.0), (21, -0.1), (51, -0.3), (101, -0.5)])
def test_influence_modifier_thresholds(count, modifier):
    assert hierarchy._influence_modifier(count) == modifier


def test_subordinates_listed_by_level(org, db_session):
    subs = hierarchy.get_subordinates(db_session, org.id("hr_mgr"))
    assert [s["employee_id"] for s in subs] == [org.id("hr_officer"), org.id("hr_clerk")]
    assert subs[0]["role"] == "hr_officer"
    assert subs[1]["org_node_path"] == "Chairman.Board.CEO.HR.HROps.HRDesk"


def test_common_ancestor(org, db_session):
    assert hierarchy.get_common_ancestor(db_session, org.id("hr_clerk"), org.id("payroll")).name == "CEO"
    assert hierarchy.get_common_ancestor(db_session, org.id("hr_officer"), org.id("hr_clerk")).name == "HROps"


def test_authority_range_is_strictly_below(org, db_session):
    names = {n["name"] for n in hierarchy.get_authority_range(db_session, org.id("hr_mgr"))}
    assert names == {"HROps", "HRDesk"}
    assert hierarchy.get_authority_range(db_session, org.id("hr_clerk")) == []


@pytest.mark.parametrize(
    "first, second, relationship, distance",
    [
        ("hr_mgr", "hr_officer", "DIRECT_PARENT", 1),
        ("hr_mgr", "hr_clerk", "GRANDPARENT", 2),
        ("chair", "hr_clerk", "DISTANT_ANCESTOR", 5),
        ("hr_mgr", "fin_mgr", "PEER", 0),
        ("hr_clerk", "fin_mgr", "SUBORDINATE", 2),
        ("fin_mgr", "hr_clerk", "DIFFERENT_BRANCH", None),
        ("payroll", "payroll", "SELF", 0),
    ],
)
def test_describe_relationship(org, db_session, first, second, relationship, distance):
    result = hierarchy.describe_relationship(db_session, org.id(first), org.id(second))
    assert result["relationship"] == relationship
    assert result["distance"] == distance


def test_move_under_own_subordinate_is_invalid(org, db_session):
    result = hierarchy.validate_hierarchy_move(db_session, org.id("hr_mgr"), org.nodes["HRDesk"].id)
    assert result["valid"] is False
    assert result["conflicting_employee_id"] == org.id("hr_officer")


def test_sideways_move_is_valid(org, db_session):
    result = hierarchy.validate_hierarchy_move(db_session, org.id("hr_clerk"), org.nodes["Finance"].id)
    assert result == {"valid": True, "new_level": 3, "new_path": "Chairman.Board.CEO.Finance"}
