"""Factory functions for creating test database records.

Each factory creates a model instance, adds it to the session, and flushes
so that database-generated fields (id, created_at, etc.) are populated.
All fields have sensible defaults but can be overridden via keyword arguments.

Usage::

    from tests.factories import create_module, create_flow

    def test_something(db_session):
        module = create_module(db_session, name="Travel Request")
        flow = create_flow(
            db_session,
            module=module,
            rules=[("amount", ">", "5000")],
            steps=[("immediate_superior", None), ("role", "vp")],
        )
        assert flow.steps[1].approver_ref == "vp"
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session

from approvalflow.db.models import (
    ApprovalFlow,
    ApprovalFlowRule,
    ApprovalFlowStep,
    Module,
)


_counter = 0

StepSpec = Union[Tuple[str, Optional[str]], Dict[str, Any]]


def _next_id() -> int:
    """Return a monotonically increasing integer for unique default values."""
    global _counter
    _counter += 1
    return _counter


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


def create_module(
    session: Session,
    *,
    name: Optional[str] = None,
    is_active: bool = True,
) -> Module:
    n = _next_id()
    module = Module(name=name or f"Module {n}", is_active=is_active)
    session.add(module)
    session.flush()
    return module


# ---------------------------------------------------------------------------
# ApprovalFlow
# ---------------------------------------------------------------------------


def create_flow(
    session: Session,
    *,
    module: Optional[Module] = None,
    name: Optional[str] = None,
    match_policy: str = "ALL",
    is_default: bool = False,
    is_active: bool = True,
    timeout_seconds: Optional[int] = None,
    rules: Iterable[Tuple[str, str, str]] = (),
    steps: Sequence[StepSpec] = (("immediate_superior", None),),
) -> ApprovalFlow:
    """
    Create a flow.

    ``rules`` are (field, operator, value) tuples in evaluation order.
    ``steps`` are (approver_type, approver_ref) tuples numbered from 1, or
    dicts with explicit ``step_order`` / ``is_active`` for malformed flows.
    """
    if module is None:
        module = create_module(session)
    n = _next_id()
    flow = ApprovalFlow(
        module_id=module.id,
        name=name or f"Flow {n}",
        match_policy=match_policy,
        is_default=is_default,
        is_active=is_active,
        timeout_seconds=timeout_seconds,
    )
    for order, (field, operator, value) in enumerate(rules):
        flow.rules.append(ApprovalFlowRule(field=field, operator=operator, value=value, order=order))
    for position, step in enumerate(steps, start=1):
        if isinstance(step, dict):
            flow.steps.append(ApprovalFlowStep(
                step_order=step.get("step_order", position),
                approver_type=step["approver_type"],
                approver_ref=step.get("approver_ref"),
                is_active=step.get("is_active", True),
            ))
        else:
            approver_type, approver_ref = step
            flow.steps.append(ApprovalFlowStep(
                step_order=position,
                approver_type=approver_type,
                approver_ref=approver_ref,
                is_active=True,
            ))
    session.add(flow)
    session.flush()
    return flow


def add_rule(
    session: Session,
    flow: ApprovalFlow,
    field: str,
    operator: str,
    value: str,
    *,
    order: int = 0,
) -> ApprovalFlowRule:
    rule = ApprovalFlowRule(field=field, operator=operator, value=value, order=order)
    flow.rules.append(rule)
    session.flush()
    return rule
