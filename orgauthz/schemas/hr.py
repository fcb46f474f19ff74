from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EmployeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_code: str
    full_name: str
    email: str
    decision_status: str
    status_reason: str | None
    status_effective_until: datetime | None
    is_active: bool
    created_at: datetime


class LeaveOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    leave_type: str
    reason: str | None
    start_date: date
    end_date: date
    state: str
    delegate_id: int | None
    rejection_reason: str | None
    created_at: datetime
    closed_at: datetime | None


class LeaveApplyIn(BaseModel):
    leave_type: str = Field(min_length=1, max_length=50)
    start_date: date
    end_date: date
    reason: str | None = None

    @model_validator(mode="after")
    def _window(self) -> LeaveApplyIn:
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeaveAcceptIn(BaseModel):
    delegate_id: int | None = None


class LeaveRejectIn(BaseModel):
    reason: str | None = None


class StatusChangeIn(BaseModel):
    reason: str | None = None
    effective_from: datetime | None = None
    effective_until: datetime | None = None


class TransitionOut(BaseModel):
    employee_id: int
    transition: str
    changed: bool
    state: str
    details: dict[str, Any] = Field(default_factory=dict)
