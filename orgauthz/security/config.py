from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from orgauthz.constants import DepartmentCode


class AuthConfig(BaseModel):
    provider: str = "demo"
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


class DefaultRule(BaseModel):
    auth_required: bool = True
    required_permissions: list[str] = Field(default_factory=list)
    filter_by_department: bool = False


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    # Any-of: the caller needs at least one of these effective permission actions.
    required_permissions: list[str] = Field(default_factory=list)
    filter_by_department: bool | None = None
    # Only holders in this department (or an executive department) may call the route.
    required_department: str | None = None

    @field_validator("required_department")
    @classmethod
    def _known_department(cls, value: str | None) -> str | None:
        if value is not None and value not in {d.value for d in DepartmentCode}:
            raise ValueError(f"unknown department {value!r}")
        return value

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class SecurityConfigModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """Rule for one request with defaults applied."""

    auth_required: bool
    required_permissions: frozenset[str]
    filter_by_department: bool
    required_department: str | None = None


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/org/nodes/{node_id}/path" -> r"^/org/nodes/[^/]+/path$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class SecurityConfig:
    """Validated route rules plus (path, method) matching."""

    def __init__(self, model: SecurityConfigModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = [(_path_template_to_regex(r.path), r) for r in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    def match(self, path: str, method: str) -> EffectiveRule:
        """Exact path first, then templates in file order, then the defaults."""

        method = method.upper()
        default = self.model.default

        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        return EffectiveRule(
            auth_required=default.auth_required,
            required_permissions=frozenset(default.required_permissions),
            filter_by_department=default.filter_by_department,
        )


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # Any security requirement on a rule implies authentication.
    inferred_auth_required = (
        default.auth_required
        or bool(rule.required_permissions)
        or bool(rule.filter_by_department)
        or rule.required_department is not None
    )

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        required_permissions=frozenset(rule.required_permissions or default.required_permissions),
        filter_by_department=default.filter_by_department if rule.filter_by_department is None else rule.filter_by_department,
        required_department=rule.required_department,
    )


def load_security_config(path: Path) -> SecurityConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "security" not in raw:
        raise ValueError(f"Missing top-level 'security' key in config: {path}")

    model = SecurityConfigModel.model_validate(raw["security"])
    return SecurityConfig(model)
