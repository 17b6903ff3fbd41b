"""Pydantic request schemas for the planning routes."""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ams.backend.schemas import ScopeLevel


class _Period(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self) -> _Period:
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class DepartmentValidationRequest(_Period):
    """Schema for checking departments against overlapping audits."""

    audit_id: str | None = None
    department_ids: list[str] = Field(default_factory=list)
    selected_criteria_ids: list[str] = Field(default_factory=list)


class ConflictCheckRequest(_Period):
    """Schema for the pre-submit conflict check of a new plan."""

    scope_level: ScopeLevel = ScopeLevel.DEPARTMENT
    department_ids: list[str] = Field(default_factory=list)
    selected_criteria_ids: list[str] = Field(default_factory=list)
    selected_template_ids: list[str] = Field(default_factory=list)


class AssignmentValidationRequest(_Period):
    auditor_id: str


class ScopeEvaluationRequest(_Period):
    """Schema for splitting the selected departments into conflict buckets."""

    audit_id: str | None = None
    department_ids: list[str] = Field(default_factory=list)
    # Current selection map, department id (or pseudo-key) -> criteria ids.
    selection: dict[str, list[str]] = Field(default_factory=dict)
    use_shared_standards: bool = False


class PlanDecisionRequest(BaseModel):
    comment: str | None = None


class ActionFeedbackRequest(BaseModel):
    feedback: str | None = None


class ChecklistItemsRequest(BaseModel):
    """Checklist items in backend (camelCase) shape."""

    items: list[dict[str, Any]] = Field(default_factory=list)
