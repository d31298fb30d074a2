"""Database models for the approval flow engine."""

from approvalflow.db.models.module import Module
from approvalflow.db.models.flow import ApprovalFlow, ApprovalFlowRule, ApprovalFlowStep
from approvalflow.db.models.instance import (
    ApprovalInstance,
    ApprovalInstanceApprover,
    ApprovalDecision,
)

__all__ = [
    "Module",
    "ApprovalFlow",
    "ApprovalFlowRule",
    "ApprovalFlowStep",
    "ApprovalInstance",
    "ApprovalInstanceApprover",
    "ApprovalDecision",
]
