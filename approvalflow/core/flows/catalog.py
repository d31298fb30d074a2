"""Flow catalog administration.

Read and maintain approval flow templates: validation, activation
toggles and the single-default invariant. Methods flush; callers commit.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session, selectinload

from approvalflow.core.approvers import parse_approver
from approvalflow.core.errors import (
    FlowDefinitionNotFound,
    InvalidFlowConfiguration,
    ModuleNotFound,
)
from approvalflow.core.rules import MatchPolicy, RuleOperator, parse_number
from approvalflow.db.models import ApprovalFlow, Module

from .resolver import FlowResolver, Resolution

logger = logging.getLogger(__name__)


def validate_flow(flow: ApprovalFlow) -> List[str]:
    """
    Check a flow template for configuration errors.

    Returns:
        Human-readable issues; empty when the flow is usable
    """
    issues: List[str] = []

    if flow.match_policy not in (MatchPolicy.ALL.value, MatchPolicy.ANY.value):
        issues.append(f"Unknown match policy {flow.match_policy!r}")

    if flow.timeout_seconds is not None and flow.timeout_seconds <= 0:
        issues.append("timeout_seconds must be positive when set")

    for rule in flow.rules:
        try:
            operator = RuleOperator.parse(rule.operator)
        except ValueError:
            issues.append(f"Rule {rule.field!r}: unknown operator {rule.operator!r}")
            continue
        if not rule.field:
            issues.append("Rule with empty field name")
        if operator == RuleOperator.BETWEEN:
            bounds = [b.strip() for b in rule.value.split(",")]
            if len(bounds) != 2 or any(parse_number(b) is None for b in bounds):
                issues.append(f"Rule {rule.field!r}: BETWEEN value {rule.value!r} is not 'lo,hi'")
        elif operator == RuleOperator.IN:
            if not [v for v in rule.value.split(",") if v.strip()]:
                issues.append(f"Rule {rule.field!r}: IN value list is empty")
        elif operator in (
            RuleOperator.GREATER_THAN,
            RuleOperator.GREATER_THAN_OR_EQUAL,
            RuleOperator.LESS_THAN,
            RuleOperator.LESS_THAN_OR_EQUAL,
        ) and parse_number(rule.value) is None:
            issues.append(f"Rule {rule.field!r}: {operator.value} value {rule.value!r} is not numeric")

    active = sorted((s for s in flow.steps if s.is_active), key=lambda s: s.step_order)
    if not active:
        issues.append("Flow has no active steps")
    orders = [s.step_order for s in active]
    if len(set(orders)) != len(orders):
        issues.append(f"Duplicate step orders {orders}")
    elif orders and orders != list(range(1, len(orders) + 1)):
        issues.append(f"Active step orders {orders} are not contiguous from 1")

    for step in flow.steps:
        try:
            parse_approver(step.approver_type, step.approver_ref, flow_id=flow.id)
        except InvalidFlowConfiguration as e:
            issues.append(f"Step {step.step_order}: {e.message}")

    return issues


class FlowCatalog:
    """Administrative access to modules and flow templates."""

    def __init__(self, db: Session):
        self.db = db

    def get_module(self, module_id: int) -> Module:
        module = self.db.get(Module, module_id)
        if module is None:
            raise ModuleNotFound(module_id)
        return module

    def list_modules(self) -> List[Module]:
        return self.db.query(Module).order_by(Module.id.asc()).all()

    def get_flow(self, flow_id: int) -> ApprovalFlow:
        flow = (
            self.db.query(ApprovalFlow)
            .options(selectinload(ApprovalFlow.rules), selectinload(ApprovalFlow.steps))
            .filter(ApprovalFlow.id == flow_id)
            .first()
        )
        if flow is None:
            raise FlowDefinitionNotFound(flow_id)
        return flow

    def list_flows(self, module_id: Optional[int] = None, *, active_only: bool = False) -> List[ApprovalFlow]:
        query = self.db.query(ApprovalFlow).options(
            selectinload(ApprovalFlow.rules), selectinload(ApprovalFlow.steps)
        )
        if module_id is not None:
            query = query.filter(ApprovalFlow.module_id == module_id)
        if active_only:
            query = query.filter(ApprovalFlow.is_active == True)
        return query.order_by(ApprovalFlow.id.asc()).all()

    def validate(self, flow_id: int) -> List[str]:
        return validate_flow(self.get_flow(flow_id))

    def set_module_active(self, module_id: int, active: bool, *, actor_id: Optional[str] = None) -> Module:
        module = self.get_module(module_id)
        module.is_active = active
        self.db.flush()
        logger.info(f"Module {module_id} {'activated' if active else 'deactivated'} by {actor_id}")
        return module

    def set_flow_active(self, flow_id: int, active: bool, *, actor_id: Optional[str] = None) -> ApprovalFlow:
        flow = self.get_flow(flow_id)
        if active and flow.is_default:
            self._check_no_other_default(flow)
        flow.is_active = active
        self.db.flush()
        logger.info(f"Flow {flow_id} {'activated' if active else 'deactivated'} by {actor_id}")
        return flow

    def set_default(self, flow_id: int) -> ApprovalFlow:
        """Make a flow the module default, clearing the flag on its siblings."""
        flow = self.get_flow(flow_id)
        siblings = self.db.query(ApprovalFlow).filter(
            ApprovalFlow.module_id == flow.module_id,
            ApprovalFlow.id != flow.id,
            ApprovalFlow.is_default == True,
        ).all()
        for sibling in siblings:
            sibling.is_default = False
        flow.is_default = True
        self.db.flush()
        logger.info(f"Flow {flow_id} is now the default for module {flow.module_id}")
        return flow

    def ensure_single_default(self, module_id: int) -> None:
        """
        Raises:
            InvalidFlowConfiguration: more than one active default flow
        """
        count = self.db.query(ApprovalFlow).filter(
            ApprovalFlow.module_id == module_id,
            ApprovalFlow.is_active == True,
            ApprovalFlow.is_default == True,
        ).count()
        if count > 1:
            raise InvalidFlowConfiguration(
                f"Module {module_id} has {count} active default flows", module_id=module_id
            )

    def _check_no_other_default(self, flow: ApprovalFlow) -> None:
        other = self.db.query(ApprovalFlow).filter(
            ApprovalFlow.module_id == flow.module_id,
            ApprovalFlow.id != flow.id,
            ApprovalFlow.is_active == True,
            ApprovalFlow.is_default == True,
        ).first()
        if other is not None:
            raise InvalidFlowConfiguration(
                f"Module {flow.module_id} already has active default flow {other.id}",
                flow_id=flow.id,
            )

    def preview_resolution(self, module_id: int, data: Mapping[str, Any]) -> Resolution:
        """Dry-run flow resolution for a module; no instance is created."""
        module = self.get_module(module_id)
        if not module.is_active:
            raise ModuleNotFound(module_id)
        return FlowResolver(self.db).resolve_with_trace(module_id, data)


def flow_to_dict(flow: ApprovalFlow) -> Dict[str, Any]:
    """Convert an ApprovalFlow model to dictionary."""
    return {
        "id": flow.id,
        "module_id": flow.module_id,
        "name": flow.name,
        "description": flow.description,
        "match_policy": flow.match_policy,
        "is_default": bool(flow.is_default),
        "is_active": bool(flow.is_active),
        "timeout_seconds": flow.timeout_seconds,
        "rules": [
            {"field": r.field, "operator": r.operator, "value": r.value, "order": r.order}
            for r in flow.rules
        ],
        "steps": [
            {
                "step_order": s.step_order,
                "approver_type": s.approver_type,
                "approver_ref": s.approver_ref,
                "is_active": bool(s.is_active),
            }
            for s in flow.steps
        ],
    }
