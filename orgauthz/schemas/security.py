from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PermissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    action: str
    description: str | None = None
    action_type: str
    hierarchy_scope: str
    status_scope: list[str]
    resource_type: str
    category: str
    bypass_hierarchy: bool
    is_system: bool
    is_active: bool = True


class PermissionCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    action: str = Field(min_length=1, max_length=100)
    description: str | None = None
    action_type: str = "FUNCTIONAL"
    hierarchy_scope: str = "SELF"
    status_scope: list[str] = Field(default_factory=lambda: ["ALL"])
    resource_type: str = "ALL"
    category: str = "System"
    bypass_hierarchy: bool = False


class PermissionUpdateIn(BaseModel):
    name: str | None = None
    action: str | None = None
    description: str | None = None
    action_type: str | None = None
    hierarchy_scope: str | None = None
    status_scope: list[str] | None = None
    resource_type: str | None = None
    category: str | None = None
    bypass_hierarchy: bool | None = None
    is_active: bool | None = None


class RolePermissionsIn(BaseModel):
    permission_ids: list[int]


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: str


class PermissionViewOut(BaseModel):
    """One entry of an effective permission set (role, override or inherited)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    action: str
    action_type: str
    hierarchy_scope: str
    status_scope: list[str]
    resource_type: str
    source: str
    bypass_hierarchy: bool
    override_bypass: bool


class EffectivePermissionsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: int
    department_code: str | None
    is_executive: bool
    level: int | None
    direct: list[PermissionViewOut]
    inherited: list[PermissionViewOut]
    effective: list[PermissionViewOut]


class AuthorizeIn(BaseModel):
    actor_id: int | None = None
    target_id: int
    action: str
    resource_type: str | None = None


class VerdictOut(BaseModel):
    allowed: bool
    reason_code: str
    step: int
    details: dict[str, Any] = Field(default_factory=dict)


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    role_id: int | None
    org_node_id: int
    department_code: str
    is_active: bool
    effective_from: datetime
    effective_until: datetime | None
    notes: str | None


class AssignmentIn(BaseModel):
    employee_id: int
    role_id: int | None
    org_node_id: int
    department_code: str
    override_ids: list[int] = Field(default_factory=list)
    notes: str | None = None


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_type: str
    actor_id: int | None
    target_id: int | None
    details: dict[str, Any]
    created_at: datetime
