from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class OrgNodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    node_type: str
    department_code: str
    parent_id: int | None
    path: str
    level: int
    is_active: bool


class OrgTreeOut(BaseModel):
    id: int
    name: str
    node_type: str
    department_code: str
    path: str
    level: int
    children: list[OrgTreeOut] = Field(default_factory=list)


class OrgNodeCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    node_type: str = "CELL"
    department_code: str = "ALL"
    parent_id: int | None = None
    description: str | None = None


class OrgNodeMoveIn(BaseModel):
    new_parent_id: int
