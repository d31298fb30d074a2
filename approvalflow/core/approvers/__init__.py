"""Approver specifications and resolution to concrete identities."""

from .specs import (
    ApproverType,
    ApproverSpec,
    FixedUser,
    RoleHolders,
    ImmediateSuperior,
    DepartmentHead,
    parse_approver,
    approver_to_dict,
)
from .resolver import ApproverResolver, ResolvedApprovers

__all__ = [
    "ApproverType",
    "ApproverSpec",
    "FixedUser",
    "RoleHolders",
    "ImmediateSuperior",
    "DepartmentHead",
    "parse_approver",
    "approver_to_dict",
    "ApproverResolver",
    "ResolvedApprovers",
]
