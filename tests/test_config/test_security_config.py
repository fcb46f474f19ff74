"""Route security config: YAML validation and (path, method) matching."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from orgauthz.security.config import load_security_config

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "security_config.yaml"


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "security.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path):
    return load_security_config(
        _write(
            tmp_path,
            """
            security:
              default:
                auth_required: false
              routes:
                - path: /employees/me
                  methods: [GET]
                - path: /employees/{employee_id}
                  methods: [GET]
                  required_permissions: [employee.view]
                - path: /employees/{employee_id}
                  methods: [post]
                  auth_required: false
                - path: /audit
                  required_department: Compliance
                - path: /listing
                  filter_by_department: true
            """,
        )
    )


def test_exact_path_wins_over_template(config):
    rule = config.match("/employees/me", "GET")
    assert rule.required_permissions == frozenset()
    assert rule.auth_required is False


def test_template_match(config):
    rule = config.match("/employees/42", "get")
    assert rule.required_permissions == {"employee.view"}
    assert rule.auth_required is True


def test_template_does_not_cross_segments(config):
    rule = config.match("/employees/42/extra", "GET")
    assert rule.required_permissions == frozenset()
    assert rule.auth_required is False


def test_method_is_part_of_the_match(config):
    assert config.match("/employees/42", "POST").auth_required is False
    assert config.match("/employees/42", "DELETE").required_permissions == frozenset()


def test_required_department_and_filter_imply_auth(config):
    audit = config.match("/audit", "GET")
    assert audit.required_department == "Compliance"
    assert audit.auth_required is True

    listing = config.match("/listing", "GET")
    assert listing.filter_by_department is True
    assert listing.auth_required is True


def test_unknown_required_department_rejected(tmp_path):
    path = _write(
        tmp_path,
        """
        security:
          routes:
            - path: /audit
              required_department: Marketing
        """,
    )
    with pytest.raises(ValidationError):
        load_security_config(path)


def test_missing_security_key(tmp_path):
    with pytest.raises(ValueError, match="security"):
        load_security_config(_write(tmp_path, "catalog: {}\n"))


def test_repo_config_routes():
    config = load_security_config(REPO_CONFIG)
    assert config.match("/health", "GET").auth_required is False
    assert config.match("/org/nodes", "POST").required_permissions == {"org.manage"}
    assert config.match("/employees", "GET").filter_by_department is True
    assert config.match("/audit", "GET").required_department == "Compliance"
    assert config.auth.bearer_prefix == "Bearer"
