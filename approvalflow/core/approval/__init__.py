"""Approval instance orchestration.

Implements the instance state machine and the orchestrator that creates,
advances and terminates approval instances.
"""

from .states import (
    InstanceStatus,
    ApprovalAction,
    ActorKind,
    VALID_TRANSITIONS,
    TERMINAL_STATES,
    can_transition,
    get_transition_rule,
)
from .machine import ApprovalStateMachine, Transition, TransitionError
from .service import ApprovalOrchestrator, InstanceView

__all__ = [
    "InstanceStatus",
    "ApprovalAction",
    "ActorKind",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "can_transition",
    "get_transition_rule",
    "ApprovalStateMachine",
    "Transition",
    "TransitionError",
    "ApprovalOrchestrator",
    "InstanceView",
]
