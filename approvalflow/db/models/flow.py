"""Approval flow template models.

Templates are configuration data: administrators edit them, the engine
only reads them and pins a snapshot onto each instance it creates.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from approvalflow.common.clock import utcnow
from approvalflow.db.base import Base


class ApprovalFlow(Base):
    """
    A reusable routing definition scoped to one module.

    At most one active flow per module may be the default.
    """
    __tablename__ = "approval_flows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    module_id = Column(Integer, ForeignKey("modules.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    match_policy = Column(String(3), nullable=False, default="ALL")  # ALL / ANY
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    timeout_seconds = Column(Integer, nullable=True)  # per-step deadline

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    module = relationship("Module", back_populates="flows")
    rules = relationship(
        "ApprovalFlowRule",
        back_populates="flow",
        order_by=lambda: [ApprovalFlowRule.order, ApprovalFlowRule.id],
        cascade="all, delete-orphan",
    )
    steps = relationship(
        "ApprovalFlowStep",
        back_populates="flow",
        order_by="ApprovalFlowStep.step_order",
        cascade="all, delete-orphan",
    )

    @property
    def timeout_period(self) -> Optional[timedelta]:
        if not self.timeout_seconds:
            return None
        return timedelta(seconds=self.timeout_seconds)

    def __repr__(self) -> str:
        return f"<ApprovalFlow {self.id} {self.name} [{self.match_policy}]>"


class ApprovalFlowRule(Base):
    """A condition belonging to exactly one flow."""
    __tablename__ = "approval_flow_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    flow_id = Column(Integer, ForeignKey("approval_flows.id", ondelete="CASCADE"), nullable=False, index=True)
    field = Column(String(255), nullable=False)  # literal request-data key
    operator = Column(String(16), nullable=False)
    value = Column(Text, nullable=False)  # string-encoded, operator-dependent
    order = Column("rule_order", Integer, nullable=False, default=0)

    flow = relationship("ApprovalFlow", back_populates="rules")

    def __repr__(self) -> str:
        return f"<ApprovalFlowRule {self.field} {self.operator} {self.value}>"


class ApprovalFlowStep(Base):
    """An ordered approver position within a flow."""
    __tablename__ = "approval_flow_steps"
    __table_args__ = (
        UniqueConstraint("flow_id", "step_order", name="uq_approval_flow_steps_flow_order"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    flow_id = Column(Integer, ForeignKey("approval_flows.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    approver_type = Column(String(32), nullable=False)  # fixed_user, role, immediate_superior, department_head
    approver_ref = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    flow = relationship("ApprovalFlow", back_populates="steps")

    def __repr__(self) -> str:
        return f"<ApprovalFlowStep {self.step_order} {self.approver_type}:{self.approver_ref}>"
