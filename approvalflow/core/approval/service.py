"""Approval orchestrator.

Creates approval instances and drives them through the state machine.

Every transition (act, cancel, expire) follows the same cycle:

1. read the instance and end the read transaction
2. decide: authorize the actor, compute the transition, resolve the next
   step's approvers (directory I/O happens here, with nothing held)
3. write: append the decision log entry and compare-and-swap the instance
   row on ``version`` in one database transaction

A writer whose swap finds the row changed re-reads it. If the status or
step moved on, it surfaces ``AlreadyDecided``; otherwise it retries, up to
``transition_max_retries`` times.

The orchestrator commits its own transactions.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from approvalflow.common.clock import utcnow
from approvalflow.core.approvers import ApproverResolver, ResolvedApprovers
from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import (
    AlreadyDecided,
    ApprovalFlowError,
    ConfigurationError,
    EmptyFlow,
    ExpiryNotDue,
    InstanceNotFound,
    IntegrityViolation,
    ModuleNotFound,
    Unauthorized,
)
from approvalflow.core.flows import FlowResolver, FlowSnapshot
from approvalflow.db.models import (
    ApprovalDecision,
    ApprovalInstance,
    ApprovalInstanceApprover,
    Module,
)
from approvalflow.services.directory import DirectorySnapshot, IdentityDirectory
from approvalflow.services.intake import RequestIntake

from .machine import ApprovalStateMachine, Transition, TransitionError
from .states import ACTOR_ACTIONS, ApprovalAction, InstanceStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceView:
    """Plain-data copy of an instance taken at read time."""
    id: UUID
    status: InstanceStatus
    step_order: int
    version: int
    created_by: str
    flow: FlowSnapshot
    eligible: Tuple[str, ...]
    decision_count: int
    due_at: Optional[datetime]
    is_halted: bool
    halted_reason: Optional[str]


Decision = Tuple[Transition, Optional[ResolvedApprovers]]


class ApprovalOrchestrator:
    """
    Creates and advances approval instances.

    Handles:
    - Submission: flow resolution and step-1 approver resolution
    - Approver actions (approve / reject) with eligibility checks
    - Cancellation by the requester or an administrator
    - Timeout expiry, individually or as a sweep
    - Integrity checking of the decision log against instance state
    """

    def __init__(
        self,
        db: Session,
        directory: IdentityDirectory,
        intake: Optional[RequestIntake] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            db: Database session; the orchestrator commits on it
            directory: Identity & Directory client
            intake: Request Intake client, needed by ``submit``
            settings: Engine settings
            clock: Source of naive UTC "now"
        """
        self.db = db
        self.directory = directory
        self.intake = intake
        self.settings = settings or get_settings()
        self.clock = clock
        self.resolver = FlowResolver(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def submit(self, module_id: int, request_id: str, requested_by: str) -> Dict[str, Any]:
        """
        Resolve a flow for a submitted request and create its instance.

        Raises:
            ModuleNotFound: unknown or inactive module
            RequestNotFound / IntakeUnavailable: request data unavailable
            FlowNotFound: no matching and no default flow
            EmptyFlow, InvalidFlowConfiguration, InvalidApprover,
            NoSuperior, NoDepartmentHead: broken template or directory data
        """
        if self.intake is None:
            raise RuntimeError("ApprovalOrchestrator.submit requires a RequestIntake")

        module = self.db.get(Module, module_id)
        if module is None or not module.is_active:
            raise ModuleNotFound(module_id)

        data = self.intake.get_request_data(request_id)
        try:
            flow = self.resolver.resolve(module_id, data)
        finally:
            self.db.rollback()
        return self.create(request_id, flow, created_by=requested_by)

    def create(self, request_id: str, flow: FlowSnapshot, created_by: str) -> Dict[str, Any]:
        """
        Create an instance at pending(1) from a pinned flow snapshot.

        Raises:
            EmptyFlow: the flow has no active steps
            ConfigurationError: step 1 approver cannot be resolved
        """
        if not flow.steps:
            logger.error(f"Flow {flow.flow_id} ({flow.name}) has no active steps")
            raise EmptyFlow(flow.flow_id)

        approvers = self._resolve_step(flow, 1, created_by)

        now = self.clock()
        instance = ApprovalInstance(
            id=uuid.uuid4(),
            module_id=flow.module_id,
            request_id=request_id,
            flow_id=flow.flow_id,
            flow_snapshot=flow.to_dict(),
            status=InstanceStatus.PENDING.value,
            current_step_order=1,
            current_approver_id=approvers.approver_id,
            version=1,
            created_by=created_by,
            created_at=now,
            step_entered_at=now,
            due_at=self._due_at(flow, now),
        )
        try:
            self.db.add(instance)
            for user_id in approvers.user_ids:
                self.db.add(ApprovalInstanceApprover(
                    instance_id=instance.id,
                    step_order=1,
                    user_id=user_id,
                    created_at=now,
                ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(
            f"Created approval instance {instance.id} for request {request_id} "
            f"using flow {flow.flow_id} ({flow.name}), {len(flow.steps)} step(s)"
        )
        return self.get_instance(instance.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def act(
        self,
        instance_id: Any,
        actor_id: str,
        action: Any,
        comment: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Approve or reject the current step.

        Approving the last step approves the instance; approving an earlier
        step resolves the next step's approvers and advances. Rejecting at
        any step terminates the instance.

        Raises:
            AlreadyDecided: instance is terminal, or another action on the
                same step committed first
            Unauthorized: actor is not eligible for the current step
            TransitionError: action is not approve/reject
            ConfigurationError: next step's approver cannot be resolved;
                nothing is committed
        """
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise TransitionError(f"Unknown action {action!r}", InstanceStatus.PENDING, action) from None
        if action not in ACTOR_ACTIONS:
            raise TransitionError(
                f"{action.value} cannot be submitted by an approver", InstanceStatus.PENDING, action
            )

        def decide(view: InstanceView) -> Decision:
            machine = self._machine(view)
            if machine.is_terminal:
                raise AlreadyDecided(view.id, view.status.value)
            if actor_id not in view.eligible:
                raise Unauthorized(actor_id, f"Actor is not an approver for step {view.step_order}")
            transition = machine.transition(action)
            next_approvers = None
            if transition.advances:
                next_approvers = self._resolve_step(view.flow, transition.to_step, view.created_by)
            return transition, next_approvers

        return self._run_transition(instance_id, decide, actor_id=actor_id, comment=comment)

    def cancel(self, instance_id: Any, actor_id: str, comment: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a pending instance.

        Raises:
            AlreadyDecided: instance is not pending
            Unauthorized: actor is neither the requester nor an administrator
        """
        def decide(view: InstanceView) -> Decision:
            machine = self._machine(view)
            if machine.is_terminal:
                raise AlreadyDecided(view.id, view.status.value)
            if actor_id != view.created_by and not self.is_administrator(actor_id):
                raise Unauthorized(actor_id, "Only the requester or an administrator may cancel")
            return machine.transition(ApprovalAction.CANCEL), None

        return self._run_transition(instance_id, decide, actor_id=actor_id, comment=comment)

    def expire(
        self,
        instance_id: Any,
        *,
        now: Optional[datetime] = None,
        expected_step_order: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Expire an instance whose current step deadline has passed.

        Args:
            expected_step_order: the step the caller saw as overdue; if the
                instance has moved on, the expiry is refused

        Raises:
            AlreadyDecided: instance is terminal or has left the expected step
            ExpiryNotDue: no deadline, or deadline not yet reached
        """
        def decide(view: InstanceView) -> Decision:
            machine = self._machine(view)
            if machine.is_terminal:
                raise AlreadyDecided(view.id, view.status.value)
            if expected_step_order is not None and view.step_order != expected_step_order:
                raise AlreadyDecided(view.id, view.status.value)
            current = now or self.clock()
            if view.due_at is None or view.due_at > current:
                raise ExpiryNotDue(view.id)
            return machine.transition(ApprovalAction.EXPIRE), None

        return self._run_transition(
            instance_id,
            decide,
            actor_id=None,
            comment="Step deadline passed without a decision",
        )

    def expire_overdue(self, *, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[str]:
        """
        Sweep pending instances past their step deadline.

        Each expiry is an ordinary compare-and-swap transition, so an
        instance decided by a human in the meantime is skipped.

        Returns:
            Ids of the instances that were expired
        """
        now = now or self.clock()
        limit = limit or self.settings.expiry_sweep_batch_size

        overdue = (
            self.db.query(ApprovalInstance.id, ApprovalInstance.current_step_order)
            .filter(
                ApprovalInstance.status == InstanceStatus.PENDING.value,
                ApprovalInstance.is_halted == False,
                ApprovalInstance.due_at.isnot(None),
                ApprovalInstance.due_at <= now,
            )
            .order_by(ApprovalInstance.due_at.asc())
            .limit(limit)
            .all()
        )
        self.db.rollback()

        expired = []
        for instance_id, step_order in overdue:
            try:
                self.expire(instance_id, now=now, expected_step_order=step_order)
                expired.append(str(instance_id))
            except (AlreadyDecided, ExpiryNotDue) as e:
                logger.info(f"Expiry sweep skipped instance {instance_id}: {e}")
            except IntegrityViolation as e:
                logger.critical(f"Expiry sweep skipped halted instance {instance_id}: {e}")

        if expired:
            logger.info(f"Expiry sweep expired {len(expired)} instance(s)")
        return expired

    def reconcile(self, instance_id: Any, actor_id: str) -> Dict[str, Any]:
        """
        Clear the halted flag once log and state agree again.

        Raises:
            Unauthorized: actor is not an administrator
            IntegrityViolation: the instance is still inconsistent
        """
        if not self.is_administrator(actor_id):
            raise Unauthorized(actor_id, "Only an administrator may reconcile an instance")

        instance = self._load(instance_id)
        problem = self._integrity_problem(instance)
        if problem:
            self.db.rollback()
            raise IntegrityViolation(instance.id, problem)

        if instance.is_halted:
            try:
                result = self.db.execute(
                    update(ApprovalInstance)
                    .where(
                        ApprovalInstance.id == instance.id,
                        ApprovalInstance.version == instance.version,
                    )
                    .values(is_halted=False, halted_reason=None, version=instance.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    self.db.rollback()
                    raise AlreadyDecided(instance.id, instance.status)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise
            logger.warning(f"Approval instance {instance.id} reconciled by {actor_id}")
        else:
            self.db.rollback()

        return self.get_instance(instance_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_instance(self, instance_id: Any) -> Dict[str, Any]:
        """Get an instance with its decision log and eligible approvers."""
        return self._instance_to_dict(self._load(instance_id))

    def get_decisions(self, instance_id: Any) -> List[Dict[str, Any]]:
        """Get the ordered decision log of an instance."""
        return [self._decision_to_dict(d) for d in self._load(instance_id).decisions]

    def list_pending(self, actor_id: str, *, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        """Instances whose current step the actor may act on, oldest first."""
        query = (
            self.db.query(ApprovalInstance)
            .join(
                ApprovalInstanceApprover,
                and_(
                    ApprovalInstanceApprover.instance_id == ApprovalInstance.id,
                    ApprovalInstanceApprover.step_order == ApprovalInstance.current_step_order,
                ),
            )
            .options(selectinload(ApprovalInstance.decisions), selectinload(ApprovalInstance.approvers))
            .filter(
                ApprovalInstanceApprover.user_id == actor_id,
                ApprovalInstance.status == InstanceStatus.PENDING.value,
                ApprovalInstance.is_halted == False,
            )
            .order_by(ApprovalInstance.created_at.asc(), ApprovalInstance.id.asc())
            .offset(offset)
            .limit(limit)
        )
        return [self._instance_to_dict(i) for i in query.all()]

    def list_requested(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Instances created by a requester, newest first."""
        query = (
            self.db.query(ApprovalInstance)
            .options(selectinload(ApprovalInstance.decisions), selectinload(ApprovalInstance.approvers))
            .filter(ApprovalInstance.created_by == user_id)
        )
        if status:
            query = query.filter(ApprovalInstance.status == InstanceStatus(status).value)
        query = query.order_by(ApprovalInstance.created_at.desc(), ApprovalInstance.id.asc())
        return [self._instance_to_dict(i) for i in query.offset(offset).limit(limit).all()]

    def is_administrator(self, user_id: Optional[str]) -> bool:
        """Check the directory for an active user holding an administrator role."""
        if not user_id:
            return False
        user = self.directory.get_user(user_id)
        return bool(user and user.active and user.role_id in self.settings.administrator_role_ids_list)

    # ------------------------------------------------------------------
    # Read / decide / write
    # ------------------------------------------------------------------

    def _run_transition(
        self,
        instance_id: Any,
        decide: Callable[[InstanceView], Decision],
        *,
        actor_id: Optional[str],
        comment: Optional[str],
    ) -> Dict[str, Any]:
        view = self._read(instance_id)
        for attempt in range(self.settings.transition_max_retries + 1):
            if view.is_halted:
                raise IntegrityViolation(view.id, view.halted_reason or "instance is halted")

            transition, next_approvers = decide(view)
            if self._commit(view, transition, actor_id, comment, next_approvers):
                logger.info(
                    f"Approval instance {view.id}: {transition.action.value} by {actor_id or 'system'} "
                    f"{transition.from_status.value}({transition.from_step}) -> "
                    f"{transition.to_status.value}({transition.to_step})"
                )
                return self.get_instance(view.id)

            latest = self._read(view.id)
            if (latest.status, latest.step_order) != (view.status, view.step_order):
                logger.info(
                    f"Approval instance {view.id}: {transition.action.value} by {actor_id or 'system'} "
                    f"lost to a concurrent transition (now {latest.status.value}({latest.step_order}))"
                )
                raise AlreadyDecided(view.id, latest.status.value)
            logger.info(f"Approval instance {view.id}: version moved, retrying (attempt {attempt + 1})")
            view = latest

        raise AlreadyDecided(view.id, view.status.value)

    def _read(self, instance_id: Any) -> InstanceView:
        instance = self._load(instance_id)
        problem = self._integrity_problem(instance)
        if problem and not instance.is_halted:
            self._halt(instance, problem)
            raise IntegrityViolation(instance.id, problem)

        view = InstanceView(
            id=instance.id,
            status=InstanceStatus(instance.status),
            step_order=instance.current_step_order,
            version=instance.version,
            created_by=instance.created_by,
            flow=FlowSnapshot.from_dict(instance.flow_snapshot) if not problem else None,
            eligible=self._eligible(instance),
            decision_count=len(instance.decisions),
            due_at=instance.due_at,
            is_halted=bool(instance.is_halted),
            halted_reason=instance.halted_reason,
        )
        # End the read transaction so nothing is held across directory I/O
        self.db.rollback()
        return view

    def _commit(
        self,
        view: InstanceView,
        transition: Transition,
        actor_id: Optional[str],
        comment: Optional[str],
        next_approvers: Optional[ResolvedApprovers],
    ) -> bool:
        """Append the log entry and swap the instance row atomically; False if the swap lost."""
        now = self.clock()
        values: Dict[str, Any] = {
            "status": transition.to_status.value,
            "current_step_order": transition.to_step,
            "version": view.version + 1,
        }
        if transition.advances:
            values.update(
                current_approver_id=next_approvers.approver_id,
                step_entered_at=now,
                due_at=self._due_at(view.flow, now),
            )
        else:
            values.update(decided_at=now, due_at=None)

        try:
            self.db.add(ApprovalDecision(
                instance_id=view.id,
                sequence=view.decision_count + 1,
                step_order=transition.from_step,
                approver_id=actor_id,
                action=transition.action.value,
                comment=comment,
                from_status=transition.from_status.value,
                to_status=transition.to_status.value,
                created_at=now,
            ))
            if next_approvers is not None:
                for user_id in next_approvers.user_ids:
                    self.db.add(ApprovalInstanceApprover(
                        instance_id=view.id,
                        step_order=transition.to_step,
                        user_id=user_id,
                        created_at=now,
                    ))
            self.db.flush()

            result = self.db.execute(
                update(ApprovalInstance)
                .where(
                    ApprovalInstance.id == view.id,
                    ApprovalInstance.version == view.version,
                    ApprovalInstance.status == view.status.value,
                    ApprovalInstance.current_step_order == view.step_order,
                    ApprovalInstance.is_halted == False,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                return False
            self.db.commit()
        except IntegrityError:
            # Another writer appended the same log sequence first
            self.db.rollback()
            return False
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return True

    def _halt(self, instance: ApprovalInstance, reason: str) -> None:
        logger.critical(f"Approval instance {instance.id} halted: {reason}")
        try:
            self.db.execute(
                update(ApprovalInstance)
                .where(ApprovalInstance.id == instance.id)
                .values(is_halted=True, halted_reason=reason, version=ApprovalInstance.version + 1)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, instance_id: Any) -> ApprovalInstance:
        key = _as_uuid(instance_id)
        instance = None
        if key is not None:
            instance = (
                self.db.query(ApprovalInstance)
                .options(selectinload(ApprovalInstance.decisions), selectinload(ApprovalInstance.approvers))
                .filter(ApprovalInstance.id == key)
                .populate_existing()
                .first()
            )
        if instance is None:
            raise InstanceNotFound(instance_id)
        return instance

    def _machine(self, view: InstanceView) -> ApprovalStateMachine:
        return ApprovalStateMachine(
            entity_id=view.id,
            current_state=view.status,
            current_step_order=view.step_order,
            last_step_order=view.flow.last_step_order,
        )

    def _resolve_step(self, flow: FlowSnapshot, step_order: int, requester_id: str) -> ResolvedApprovers:
        resolver = ApproverResolver(DirectorySnapshot(self.directory))
        try:
            return resolver.resolve(flow.step(step_order).approver, requester_id)
        except ConfigurationError as e:
            logger.error(
                f"Flow {flow.flow_id} ({flow.name}) step {step_order}: "
                f"cannot resolve approver for requester {requester_id}: {e}"
            )
            raise

    def _due_at(self, flow: FlowSnapshot, entered_at: datetime) -> Optional[datetime]:
        timeout = flow.timeout_period
        return entered_at + timeout if timeout else None

    @staticmethod
    def _eligible(instance: ApprovalInstance) -> Tuple[str, ...]:
        return tuple(
            a.user_id for a in instance.approvers if a.step_order == instance.current_step_order
        )

    @staticmethod
    def _integrity_problem(instance: ApprovalInstance) -> Optional[str]:
        """Describe how the decision log disagrees with the instance state, if it does."""
        decisions = list(instance.decisions)
        if [d.sequence for d in decisions] != list(range(1, len(decisions) + 1)):
            return "decision log sequence is not contiguous"

        try:
            status = InstanceStatus(instance.status)
            FlowSnapshot.from_dict(instance.flow_snapshot)
        except (KeyError, TypeError, ValueError, ApprovalFlowError) as e:
            return f"unreadable instance state: {e}"

        step = instance.current_step_order
        approvals = decisions[:-1] if status != InstanceStatus.PENDING else decisions
        for entry in approvals:
            if entry.action != ApprovalAction.APPROVE.value or entry.step_order != entry.sequence:
                return f"log entry #{entry.sequence} ({entry.action}) does not advance step {entry.step_order}"

        if status == InstanceStatus.PENDING:
            if len(decisions) != step - 1:
                return f"pending at step {step} with {len(decisions)} log entries"
            if not any(a.step_order == step for a in instance.approvers):
                return f"no eligible approvers recorded for step {step}"
            return None

        if not decisions:
            return f"{status.value} without a decision log entry"
        last = decisions[-1]
        if last.to_status != status.value or last.step_order != step or len(decisions) != step:
            return f"last log entry ({last.action} -> {last.to_status}) does not match {status.value}({step})"
        return None

    def _instance_to_dict(self, instance: ApprovalInstance) -> Dict[str, Any]:
        """Convert an ApprovalInstance model to dictionary."""
        snapshot = instance.flow_snapshot or {}
        pending = instance.status == InstanceStatus.PENDING.value
        return {
            "id": str(instance.id),
            "module_id": instance.module_id,
            "request_id": instance.request_id,
            "flow_id": instance.flow_id,
            "flow_name": snapshot.get("name"),
            "total_steps": len(snapshot.get("steps", [])),
            "status": instance.status,
            "current_step_order": instance.current_step_order,
            "current_approver_id": instance.current_approver_id,
            "eligible_approver_ids": list(self._eligible(instance)) if pending else [],
            "version": instance.version,
            "created_by": instance.created_by,
            "created_at": instance.created_at.isoformat() if instance.created_at else None,
            "step_entered_at": instance.step_entered_at.isoformat() if instance.step_entered_at else None,
            "due_at": instance.due_at.isoformat() if instance.due_at else None,
            "decided_at": instance.decided_at.isoformat() if instance.decided_at else None,
            "is_halted": bool(instance.is_halted),
            "halted_reason": instance.halted_reason,
            "decisions": [self._decision_to_dict(d) for d in instance.decisions],
        }

    @staticmethod
    def _decision_to_dict(decision: ApprovalDecision) -> Dict[str, Any]:
        return {
            "sequence": decision.sequence,
            "step_order": decision.step_order,
            "approver_id": decision.approver_id,
            "action": decision.action,
            "comment": decision.comment,
            "from_status": decision.from_status,
            "to_status": decision.to_status,
            "timestamp": decision.created_at.isoformat() if decision.created_at else None,
        }


def _as_uuid(value: Any) -> Optional[UUID]:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None
