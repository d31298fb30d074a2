"""Approval state machine.

Pure computation: given an instance's status, current step and step
count, decide what an action does. Persistence and authorization live in
the orchestrator.
"""

from dataclasses import dataclass
from typing import Any

from approvalflow.core.errors import AlreadyDecided, ApprovalFlowError

from .states import (
    ApprovalAction,
    InstanceStatus,
    TERMINAL_STATES,
    can_transition,
    get_transition_rule,
)


class TransitionError(ApprovalFlowError):
    """Raised when an action is not valid from the current state."""

    code = "invalid_transition"

    def __init__(self, message: str, from_state: InstanceStatus, action: Any):
        super().__init__(message, from_state=from_state.value, action=action)
        self.from_state = from_state
        self.action = action


@dataclass(frozen=True)
class Transition:
    """The computed effect of an action."""
    action: ApprovalAction
    from_status: InstanceStatus
    to_status: InstanceStatus
    from_step: int
    to_step: int

    @property
    def advances(self) -> bool:
        """True when the instance moves on to another pending step."""
        return self.to_status == InstanceStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.to_status in TERMINAL_STATES


class ApprovalStateMachine:
    """
    State machine for one approval instance.

    ``current_step_order`` only grows by one per approval and is frozen
    once a terminal state is reached.
    """

    def __init__(
        self,
        entity_id: Any,
        current_state: InstanceStatus,
        current_step_order: int,
        last_step_order: int,
    ):
        self.entity_id = entity_id
        self._state = current_state
        self._step_order = current_step_order
        self.last_step_order = last_step_order

    @property
    def state(self) -> InstanceStatus:
        return self._state

    @property
    def step_order(self) -> int:
        return self._step_order

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal (no further transitions)."""
        return self._state in TERMINAL_STATES

    def can_perform(self, action: ApprovalAction) -> bool:
        return can_transition(self._state, action)

    def transition(self, action: ApprovalAction) -> Transition:
        """
        Apply an action.

        Returns:
            The transition that was applied

        Raises:
            AlreadyDecided: the instance is in a terminal state
            TransitionError: the action is unknown or not valid here
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise TransitionError(f"Unknown action {action!r}", self._state, action) from None

        if self.is_terminal:
            raise AlreadyDecided(self.entity_id, self._state.value)

        rule = get_transition_rule(self._state, action)
        if rule is None:
            raise TransitionError(
                f"Cannot perform {action.value} from state {self._state.value}",
                self._state,
                action,
            )

        to_state = rule.to_state
        to_step = self._step_order
        if action == ApprovalAction.APPROVE:
            if self._step_order >= self.last_step_order:
                to_state = InstanceStatus.APPROVED
            else:
                to_step = self._step_order + 1

        transition = Transition(
            action=action,
            from_status=self._state,
            to_status=to_state,
            from_step=self._step_order,
            to_step=to_step,
        )
        self._state = to_state
        self._step_order = to_step
        return transition
