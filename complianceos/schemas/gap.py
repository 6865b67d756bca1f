"""Pydantic schemas for gap assessments and project tasks."""

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

CurrentStatus = Literal["implemented", "partial", "not_implemented", "not_applicable"]
TargetStatus = Literal["required", "not_required"]
TaskStatus = Literal["todo", "in_progress", "review", "done"]


class GapAssessmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    framework: str = Field(min_length=1, max_length=100)
    scope: Optional[str] = None


class GapAssessmentResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    name: str
    framework: str
    status: str
    scope: Optional[str]
    executive_summary: Optional[str]
    report_details: dict
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GapResponseUpsert(BaseModel):
    current_status: Optional[CurrentStatus] = None
    target_status: Optional[TargetStatus] = None
    notes: Optional[str] = None
    evidence_links: Optional[list[str]] = None


class GapResponseOut(BaseModel):
    id: uuid.UUID
    assessment_id: uuid.UUID
    control_code: str
    current_status: Optional[str]
    target_status: Optional[str]
    notes: Optional[str]
    evidence_links: list
    priority_score: Optional[int]
    gap_severity: Optional[str]
    remediation_plan: Optional[str]
    updated_at: datetime

    model_config = {"from_attributes": True}


class GapAssessmentDetail(GapAssessmentResponse):
    responses: list[GapResponseOut] = Field(default_factory=list)


class ReportUpdate(BaseModel):
    executive_summary: Optional[str] = None
    scope: Optional[str] = None
    report_details: Optional[dict] = None


class GapSummary(BaseModel):
    total: int
    by_status: dict[str, int]
    by_severity: dict[str, int]
    readiness_pct: int


class TaskUpdate(BaseModel):
    status: Optional[TaskStatus] = None
    assignee: Optional[str] = Field(default=None, max_length=255)
    due_date: Optional[date] = None


class TaskResponse(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    title: str
    description: Optional[str]
    status: str
    priority: str
    assignee: Optional[str]
    due_date: Optional[date]
    source_type: Optional[str]
    source_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
