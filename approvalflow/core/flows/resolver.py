"""Flow resolution.

Selects the approval flow for a module and a request-data dictionary:

1. Active flows of the module that carry at least one rule are tried in
   id order; the first whose rules satisfy its match policy wins.
2. Otherwise the module's active default flow is used.
3. Otherwise resolution fails with ``FlowNotFound``.

The resolver reads the catalog on every call and caches nothing.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from sqlalchemy.orm import Session, selectinload

from approvalflow.core.errors import FlowNotFound, InvalidFlowConfiguration
from approvalflow.core.rules import MatchPolicy, RuleResult, evaluate, explain
from approvalflow.db.models import ApprovalFlow

from .snapshot import FlowSnapshot, parse_rules

logger = logging.getLogger(__name__)


@dataclass
class CandidateTrace:
    """How one rule-bearing flow fared during resolution."""
    flow_id: int
    flow_name: str
    match_policy: str
    matched: bool
    rule_results: List[RuleResult] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class Resolution:
    """Selected flow plus the evaluation trace that led to it."""
    snapshot: FlowSnapshot
    used_default: bool
    candidates: List[CandidateTrace] = field(default_factory=list)


class FlowResolver:
    """Resolves approval flows from the catalog."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, module_id: int, data: Mapping[str, Any]) -> FlowSnapshot:
        """
        Pick the flow for a request.

        Returns:
            Snapshot of the selected flow

        Raises:
            FlowNotFound: no rule-bearing flow matched and no default exists
            InvalidFlowConfiguration: the selected flow is misconfigured, or
                the module has more than one active default
        """
        return self.resolve_with_trace(module_id, data).snapshot

    def resolve_with_trace(self, module_id: int, data: Mapping[str, Any]) -> Resolution:
        """Resolve and keep the per-candidate evaluation trace."""
        candidates = self._rule_bearing_flows(module_id)
        traces: List[CandidateTrace] = []

        for flow in candidates:
            trace = CandidateTrace(
                flow_id=flow.id,
                flow_name=flow.name,
                match_policy=flow.match_policy,
                matched=False,
            )
            traces.append(trace)
            try:
                rules = parse_rules(flow.rules, flow_id=flow.id)
                policy = MatchPolicy(flow.match_policy)
            except (InvalidFlowConfiguration, ValueError) as e:
                # Fail closed: an unreadable rule set never matches
                trace.error = str(e)
                logger.error(f"Skipping flow {flow.id} during resolution for module {module_id}: {e}")
                continue

            trace.rule_results = explain(rules, data)
            trace.matched = evaluate(rules, policy, data)
            if trace.matched:
                logger.info(f"Module {module_id}: resolved flow {flow.id} ({flow.name}) by rules")
                return Resolution(FlowSnapshot.from_model(flow), used_default=False, candidates=traces)

        default = self._default_flow(module_id)
        if default is not None:
            logger.info(f"Module {module_id}: no rule-bearing flow matched, using default flow {default.id}")
            return Resolution(FlowSnapshot.from_model(default), used_default=True, candidates=traces)

        logger.error(f"Module {module_id}: no matching flow and no default flow configured")
        raise FlowNotFound(module_id)

    def _rule_bearing_flows(self, module_id: int) -> List[ApprovalFlow]:
        return (
            self.db.query(ApprovalFlow)
            .options(selectinload(ApprovalFlow.rules), selectinload(ApprovalFlow.steps))
            .filter(
                ApprovalFlow.module_id == module_id,
                ApprovalFlow.is_active == True,
                ApprovalFlow.rules.any(),
            )
            .order_by(ApprovalFlow.id.asc())
            .all()
        )

    def _default_flow(self, module_id: int) -> Optional[ApprovalFlow]:
        defaults = (
            self.db.query(ApprovalFlow)
            .options(selectinload(ApprovalFlow.steps))
            .filter(
                ApprovalFlow.module_id == module_id,
                ApprovalFlow.is_active == True,
                ApprovalFlow.is_default == True,
            )
            .order_by(ApprovalFlow.id.asc())
            .all()
        )
        if len(defaults) > 1:
            raise InvalidFlowConfiguration(
                f"Module {module_id} has {len(defaults)} active default flows",
                module_id=module_id,
            )
        return defaults[0] if defaults else None
