"""Flow catalog schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class RuleResponse(BaseModel):
    field: str
    operator: str
    value: str
    order: int


class StepResponse(BaseModel):
    step_order: int
    approver_type: str
    approver_ref: Optional[str]
    is_active: bool


class FlowResponse(BaseModel):
    id: int
    module_id: int
    name: str
    description: Optional[str]
    match_policy: str
    is_default: bool
    is_active: bool
    timeout_seconds: Optional[int]
    rules: List[RuleResponse]
    steps: List[StepResponse]


class FlowValidationResponse(BaseModel):
    flow_id: int
    valid: bool
    issues: List[str]


class ResolvePreviewRequest(BaseModel):
    module_id: int
    data: Dict[str, Any]


class CandidateResponse(BaseModel):
    flow_id: int
    flow_name: str
    match_policy: str
    matched: bool
    rules: List[Dict[str, Any]] = []
    error: Optional[str] = None


class ResolvePreviewResponse(BaseModel):
    flow_id: int
    flow_name: str
    used_default: bool
    steps: List[Dict[str, Any]]
    candidates: List[CandidateResponse]


class ModuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    is_active: bool
