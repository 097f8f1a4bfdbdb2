"""Change request audit and timeline tables.

Both are append-only. Rows are written after the governing transition has
committed, in their own transaction, so a failed write never affects the
change request itself.
"""

import uuid
from typing import Any, Dict, Optional
from sqlalchemy import Column, String, DateTime, JSON, Text, Uuid

from changegov.db.base import Base, utcnow


class ChangeAuditEvent(Base):
    """Structured audit record of a governance action."""
    __tablename__ = "change_request_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # No foreign keys: audit rows outlive the change request they describe
    project_id = Column(Uuid, nullable=False, index=True)
    change_id = Column(Uuid, nullable=False, index=True)
    actor_id = Column(Uuid, nullable=True)
    actor_role = Column(String(30), nullable=True)
    event_type = Column(String(50), nullable=False, index=True)
    from_value = Column(String(50), nullable=True)
    to_value = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ChangeAuditEvent {self.event_type} on {self.change_id}>"

    @classmethod
    def create_entry(
        cls,
        project_id: uuid.UUID,
        change_id: uuid.UUID,
        event_type: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
        actor_role: Optional[str] = None,
        from_value: Optional[str] = None,
        to_value: Optional[str] = None,
        note: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "ChangeAuditEvent":
        return cls(
            project_id=project_id,
            change_id=change_id,
            event_type=event_type,
            actor_id=actor_id,
            actor_role=actor_role,
            from_value=from_value,
            to_value=to_value,
            note=note,
            payload=payload,
        )


class ChangeTimelineEvent(Base):
    """User-facing timeline entry shown on a change request."""
    __tablename__ = "change_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, nullable=False, index=True)
    change_id = Column(Uuid, nullable=False, index=True)
    event_type = Column(String(30), nullable=False)
    from_status = Column(String(50), nullable=True)
    to_status = Column(String(50), nullable=True)
    actor_id = Column(Uuid, nullable=True)
    actor_role = Column(String(30), nullable=True)
    comment = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ChangeTimelineEvent {self.event_type} on {self.change_id}>"
