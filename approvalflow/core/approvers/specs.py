"""Approver specifications.

A step's approver is one of four variants. Each variant carries only the
payload it needs, so resolution never deals with a loosely-typed ref.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from approvalflow.core.errors import InvalidFlowConfiguration


class ApproverType(str, Enum):
    """How a step's approver is determined."""

    FIXED_USER = "fixed_user"
    ROLE = "role"
    IMMEDIATE_SUPERIOR = "immediate_superior"
    DEPARTMENT_HEAD = "department_head"


@dataclass(frozen=True)
class FixedUser:
    user_id: str

    approver_type = ApproverType.FIXED_USER


@dataclass(frozen=True)
class RoleHolders:
    role_id: str

    approver_type = ApproverType.ROLE


@dataclass(frozen=True)
class ImmediateSuperior:
    approver_type = ApproverType.IMMEDIATE_SUPERIOR


@dataclass(frozen=True)
class DepartmentHead:
    approver_type = ApproverType.DEPARTMENT_HEAD


ApproverSpec = Union[FixedUser, RoleHolders, ImmediateSuperior, DepartmentHead]


def parse_approver(approver_type: str, approver_ref: Optional[str], *, flow_id: Optional[int] = None) -> ApproverSpec:
    """
    Build an approver spec from a step's stored type and ref.

    Raises:
        InvalidFlowConfiguration: unknown type, or missing ref for a type
            that needs one
    """
    try:
        kind = ApproverType(approver_type)
    except ValueError:
        raise InvalidFlowConfiguration(
            f"Unknown approver type {approver_type!r}", flow_id=flow_id
        ) from None

    ref = approver_ref.strip() if approver_ref else None

    if kind == ApproverType.FIXED_USER:
        if not ref:
            raise InvalidFlowConfiguration("fixed_user step requires an approver_ref", flow_id=flow_id)
        return FixedUser(user_id=ref)
    if kind == ApproverType.ROLE:
        if not ref:
            raise InvalidFlowConfiguration("role step requires an approver_ref", flow_id=flow_id)
        return RoleHolders(role_id=ref)
    if kind == ApproverType.IMMEDIATE_SUPERIOR:
        return ImmediateSuperior()
    return DepartmentHead()


def approver_to_dict(spec: ApproverSpec) -> Dict[str, Any]:
    """Serialize a spec back to its stored (type, ref) form."""
    if isinstance(spec, FixedUser):
        ref = spec.user_id
    elif isinstance(spec, RoleHolders):
        ref = spec.role_id
    else:
        ref = None
    return {"approver_type": spec.approver_type.value, "approver_ref": ref}
