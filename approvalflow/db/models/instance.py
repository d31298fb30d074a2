"""Approval instance runtime models.

An instance is one execution of a flow against one request. It is owned
by the orchestrator and updated only through compare-and-swap on
``version``. Its decision log is append-only.
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, Boolean, ForeignKey, Text, Uuid,
    UniqueConstraint, event,
)
from sqlalchemy.orm import relationship

from approvalflow.common.clock import utcnow
from approvalflow.db.base import Base


class ApprovalInstance(Base):
    """
    One live execution of a resolved flow.

    ``flow_snapshot`` pins the flow, its rules and its active steps as they
    were at creation so later template edits never reach in-flight instances.
    """
    __tablename__ = "approval_instances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
    request_id = Column(String(255), nullable=False, index=True)
    flow_id = Column(Integer, ForeignKey("approval_flows.id"), nullable=False, index=True)
    flow_snapshot = Column(JSON, nullable=False)

    # Workflow state
    status = Column(String(20), nullable=False, default="pending", index=True)
    current_step_order = Column(Integer, nullable=False, default=1)
    current_approver_id = Column(String(255), nullable=True)  # set when exactly one actor is eligible

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Request tracking
    created_by = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Step deadline
    step_entered_at = Column(DateTime, nullable=False, default=utcnow)
    due_at = Column(DateTime, nullable=True, index=True)

    decided_at = Column(DateTime, nullable=True)

    # Integrity
    is_halted = Column(Boolean, nullable=False, default=False)
    halted_reason = Column(Text, nullable=True)

    # Relationships
    flow = relationship("ApprovalFlow")
    module = relationship("Module")
    decisions = relationship(
        "ApprovalDecision",
        back_populates="instance",
        order_by="ApprovalDecision.sequence",
    )
    approvers = relationship(
        "ApprovalInstanceApprover",
        back_populates="instance",
        order_by="ApprovalInstanceApprover.id",
    )

    def __repr__(self) -> str:
        return f"<ApprovalInstance {self.id} [{self.status}:{self.current_step_order}] v{self.version}>"


class ApprovalInstanceApprover(Base):
    """An identity eligible to act on a given step of an instance."""
    __tablename__ = "approval_instance_approvers"
    __table_args__ = (
        UniqueConstraint("instance_id", "step_order", "user_id", name="uq_instance_step_approver"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(Uuid, ForeignKey("approval_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    user_id = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    instance = relationship("ApprovalInstance", back_populates="approvers")

    def __repr__(self) -> str:
        return f"<ApprovalInstanceApprover step={self.step_order} user={self.user_id}>"


class ApprovalDecision(Base):
    """
    One immutable entry in an instance's decision log.

    ``sequence`` is unique per instance, so two writers racing to append
    the same entry cannot both commit.
    """
    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("instance_id", "sequence", name="uq_approval_decisions_sequence"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    instance_id = Column(Uuid, ForeignKey("approval_instances.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    step_order = Column(Integer, nullable=False)
    approver_id = Column(String(255), nullable=True)  # None for machine-initiated expiry
    action = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)

    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    instance = relationship("ApprovalInstance", back_populates="decisions")

    def __repr__(self) -> str:
        return f"<ApprovalDecision #{self.sequence} {self.action} step={self.step_order}>"


@event.listens_for(ApprovalDecision, "before_update")
def _prevent_decision_update(mapper, connection, target):
    raise ValueError(f"Decision log entries are immutable (id={target.id})")


@event.listens_for(ApprovalDecision, "before_delete")
def _prevent_decision_delete(mapper, connection, target):
    raise ValueError(f"Decision log entries cannot be deleted (id={target.id})")
