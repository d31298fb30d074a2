"""Immutable copies of flow templates.

An instance stores the snapshot taken at creation in its
``flow_snapshot`` column and never consults the live template again.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from approvalflow.core.approvers import ApproverSpec, approver_to_dict, parse_approver
from approvalflow.core.errors import InvalidFlowConfiguration
from approvalflow.core.rules import MatchPolicy, Rule, RuleOperator


@dataclass(frozen=True)
class StepSnapshot:
    step_order: int
    approver: ApproverSpec

    def to_dict(self) -> Dict[str, Any]:
        return {"step_order": self.step_order, **approver_to_dict(self.approver)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepSnapshot":
        return cls(
            step_order=int(data["step_order"]),
            approver=parse_approver(data["approver_type"], data.get("approver_ref")),
        )


@dataclass(frozen=True)
class FlowSnapshot:
    """A flow, its rules and its active steps, frozen."""
    flow_id: int
    module_id: int
    name: str
    match_policy: MatchPolicy
    is_default: bool
    timeout_seconds: Optional[int]
    rules: Tuple[Rule, ...]
    steps: Tuple[StepSnapshot, ...]

    @property
    def timeout_period(self) -> Optional[timedelta]:
        if not self.timeout_seconds:
            return None
        return timedelta(seconds=self.timeout_seconds)

    @property
    def last_step_order(self) -> int:
        return len(self.steps)

    def step(self, step_order: int) -> StepSnapshot:
        """Return the step at ``step_order``; a missing order is a configuration error."""
        if 1 <= step_order <= len(self.steps):
            step = self.steps[step_order - 1]
            if step.step_order == step_order:
                return step
        raise InvalidFlowConfiguration(
            f"Flow {self.flow_id} has no active step {step_order}", flow_id=self.flow_id
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "module_id": self.module_id,
            "name": self.name,
            "match_policy": self.match_policy.value,
            "is_default": self.is_default,
            "timeout_seconds": self.timeout_seconds,
            "rules": [r.to_dict() for r in self.rules],
            "steps": [s.to_dict() for s in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowSnapshot":
        return cls(
            flow_id=int(data["flow_id"]),
            module_id=int(data["module_id"]),
            name=data["name"],
            match_policy=MatchPolicy(data["match_policy"]),
            is_default=bool(data.get("is_default", False)),
            timeout_seconds=data.get("timeout_seconds"),
            rules=tuple(Rule.from_dict(r) for r in data.get("rules", [])),
            steps=tuple(StepSnapshot.from_dict(s) for s in data.get("steps", [])),
        )

    @classmethod
    def from_model(cls, flow) -> "FlowSnapshot":
        """
        Copy an ``ApprovalFlow`` row.

        Inactive steps are dropped. The remaining step orders must run
        1..n without gaps or duplicates; anything else fails fast.

        Raises:
            InvalidFlowConfiguration: bad policy, operator, approver or step order
        """
        try:
            match_policy = MatchPolicy(flow.match_policy)
        except ValueError:
            raise InvalidFlowConfiguration(
                f"Flow {flow.id} has unknown match policy {flow.match_policy!r}", flow_id=flow.id
            ) from None

        active = sorted((s for s in flow.steps if s.is_active), key=lambda s: s.step_order)
        orders = [s.step_order for s in active]
        if orders != list(range(1, len(orders) + 1)):
            raise InvalidFlowConfiguration(
                f"Flow {flow.id} active step orders {orders} are not contiguous from 1",
                flow_id=flow.id,
            )

        steps = tuple(
            StepSnapshot(
                step_order=s.step_order,
                approver=parse_approver(s.approver_type, s.approver_ref, flow_id=flow.id),
            )
            for s in active
        )

        return cls(
            flow_id=flow.id,
            module_id=flow.module_id,
            name=flow.name,
            match_policy=match_policy,
            is_default=bool(flow.is_default),
            timeout_seconds=flow.timeout_seconds or None,
            rules=parse_rules(flow.rules, flow_id=flow.id),
            steps=steps,
        )


def parse_rules(rule_rows: Iterable, *, flow_id: Optional[int] = None) -> Tuple[Rule, ...]:
    """
    Convert ``ApprovalFlowRule`` rows into evaluator rules, preserving order.

    Raises:
        InvalidFlowConfiguration: a rule has an unknown operator
    """
    rules = []
    for row in sorted(rule_rows, key=lambda r: (r.order, r.id or 0)):
        try:
            operator = RuleOperator.parse(row.operator)
        except ValueError:
            raise InvalidFlowConfiguration(
                f"Rule {row.id} has unknown operator {row.operator!r}", flow_id=flow_id
            ) from None
        rules.append(Rule(field=row.field, operator=operator, value=row.value, order=row.order))
    return tuple(rules)
