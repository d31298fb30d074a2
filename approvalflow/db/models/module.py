from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship

from approvalflow.common.clock import utcnow
from approvalflow.db.base import Base


class Module(Base):
    """A business domain whose requests may require approval."""
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    flows = relationship("ApprovalFlow", back_populates="module", order_by="ApprovalFlow.id")

    def __repr__(self) -> str:
        return f"<Module {self.name} active={self.is_active}>"
