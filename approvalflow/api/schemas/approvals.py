"""Approval instance schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SubmitRequest(BaseModel):
    module_id: int
    request_id: str = Field(..., min_length=1, max_length=255)


class ActionRequest(BaseModel):
    comment: Optional[str] = Field(None, max_length=4000)


class DecisionResponse(BaseModel):
    sequence: int
    step_order: int
    approver_id: Optional[str]
    action: str
    comment: Optional[str]
    from_status: str
    to_status: str
    timestamp: datetime


class InstanceResponse(BaseModel):
    id: UUID
    module_id: int
    request_id: str
    flow_id: int
    flow_name: Optional[str]
    total_steps: int
    status: str
    current_step_order: int
    current_approver_id: Optional[str]
    eligible_approver_ids: List[str]
    version: int
    created_by: str
    created_at: datetime
    step_entered_at: Optional[datetime]
    due_at: Optional[datetime]
    decided_at: Optional[datetime]
    is_halted: bool
    halted_reason: Optional[str]
    decisions: List[DecisionResponse] = []


class InstanceListResponse(BaseModel):
    items: List[InstanceResponse]
    page: int
    per_page: int
