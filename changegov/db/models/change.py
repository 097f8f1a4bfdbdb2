import math
import uuid
from typing import Any, Optional
from sqlalchemy import Column, String, DateTime, JSON, Text, Numeric, Integer, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from changegov.db.base import Base, utcnow


def _to_amount(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class ChangeRequest(Base):
    """
    Change request governed on two axes.

    decision_status: draft / submitted / approved / rejected / rework
    delivery_status: intake / analysis / review / in_progress / implemented / closed

    updated_at doubles as the optimistic concurrency token and is written
    only through ConcurrencyGuard, never by an ORM onupdate hook.
    """
    __tablename__ = "change_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    # Content
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    proposed_change = Column(Text, nullable=True)
    justification = Column(Text, nullable=True)
    change_type = Column(String(50), nullable=True)
    priority = Column(String(20), nullable=True)
    requester_name = Column(String(255), nullable=True)
    impact_analysis = Column(JSON, nullable=True)  # {"cost": ..., "days": ..., ...}
    links = Column(JSON, nullable=True)            # {"wbs_ids": [...], "schedule_ids": [...], "risk_ids": [...]}
    estimated_cost = Column(Numeric(14, 2, asdecimal=False), nullable=True)
    budget_delta = Column(Numeric(14, 2, asdecimal=False), nullable=True)

    # Governance
    decision_status = Column(String(20), nullable=False, default="draft", index=True)
    delivery_status = Column(String(20), nullable=False, default="intake", index=True)
    decision_rationale = Column(Text, nullable=True)
    decision_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    decision_at = Column(DateTime, nullable=True)
    decision_role = Column(String(30), nullable=True)
    submitted_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    approval_chain_id = Column(Uuid, nullable=True)

    # Derived scoring
    ai_cost = Column(Integer, nullable=True)
    ai_schedule = Column(Integer, nullable=True)
    ai_scope = Column(Integer, nullable=True)
    ai_score = Column(Integer, nullable=True)
    ai_computed_at = Column(DateTime, nullable=True)

    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    project = relationship("Project", back_populates="change_requests")

    @property
    def amount(self) -> float:
        """Monetary amount used to select approval rule bands."""
        impact = self.impact_analysis if isinstance(self.impact_analysis, dict) else {}
        for candidate in (impact.get("cost"), self.estimated_cost, self.budget_delta):
            value = _to_amount(candidate)
            if value is not None:
                return value
        return 0.0

    def __repr__(self) -> str:
        return f"<ChangeRequest {self.id} [{self.decision_status}/{self.delivery_status}]>"
