"""Approval instance states and transitions.

State Machine Diagram:

    ┌──────────────┐  approve (not last step)
    │ PENDING(n)   │──────────────────────────┐
    └──────┬───────┘◄─────────────────────────┘  n → n+1
           │
           ├── approve (last step) ──► APPROVED
           ├── reject ───────────────► REJECTED
           ├── cancel ───────────────► CANCELLED   (requester or administrator)
           └── expire ───────────────► EXPIRED     (timeout sweep)

Terminal states have no outgoing transitions.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set


class InstanceStatus(str, Enum):
    """Status of an approval instance."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ApprovalAction(str, Enum):
    """Actions that trigger transitions."""

    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    EXPIRE = "expire"


class ActorKind(str, Enum):
    """Who may trigger a transition."""

    APPROVER = "approver"      # eligible for the current step
    REQUESTER = "requester"    # original requester or an administrator
    SYSTEM = "system"          # timeout sweep


class TransitionRule(NamedTuple):
    """Defines a valid state transition."""
    from_state: InstanceStatus
    action: ApprovalAction
    to_state: InstanceStatus
    actor: ActorKind


# APPROVE targets PENDING; on the last step the machine promotes it to APPROVED
TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(InstanceStatus.PENDING, ApprovalAction.APPROVE, InstanceStatus.PENDING, ActorKind.APPROVER),
    TransitionRule(InstanceStatus.PENDING, ApprovalAction.REJECT, InstanceStatus.REJECTED, ActorKind.APPROVER),
    TransitionRule(InstanceStatus.PENDING, ApprovalAction.CANCEL, InstanceStatus.CANCELLED, ActorKind.REQUESTER),
    TransitionRule(InstanceStatus.PENDING, ApprovalAction.EXPIRE, InstanceStatus.EXPIRED, ActorKind.SYSTEM),
]

VALID_TRANSITIONS: Dict[InstanceStatus, Set[ApprovalAction]] = {}
TRANSITION_TARGETS: Dict[tuple[InstanceStatus, ApprovalAction], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.action)
    TRANSITION_TARGETS[(rule.from_state, rule.action)] = rule


TERMINAL_STATES: Set[InstanceStatus] = {
    InstanceStatus.APPROVED,
    InstanceStatus.REJECTED,
    InstanceStatus.CANCELLED,
    InstanceStatus.EXPIRED,
}

# Actions a human approver submits through act()
ACTOR_ACTIONS: Set[ApprovalAction] = {ApprovalAction.APPROVE, ApprovalAction.REJECT}


def can_transition(from_state: InstanceStatus, action: ApprovalAction) -> bool:
    """Check if an action is valid from the given state."""
    return action in VALID_TRANSITIONS.get(from_state, set())


def get_transition_rule(from_state: InstanceStatus, action: ApprovalAction) -> Optional[TransitionRule]:
    """Get the transition rule for a state/action combination."""
    return TRANSITION_TARGETS.get((from_state, action))
