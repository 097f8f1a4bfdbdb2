"""Best-effort audit and timeline recording for change request transitions.

Two independent sinks receive each transition: a structured audit event and
a user-facing timeline event. Both run after the transition has committed.
A sink failure is logged and returned as a SideEffectWarning; it never
propagates to the caller.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from changegov.core.config import get_settings
from changegov.db.models import ChangeAuditEvent, ChangeTimelineEvent

from .outcome import SideEffectWarning

logger = logging.getLogger(__name__)


class TimelineEventType(str, Enum):
    CREATED = "created"
    EDITED = "edited"
    STATUS_CHANGED = "status_changed"
    COMMENT = "comment"


@dataclass
class AuditEvent:
    project_id: UUID
    change_id: UUID
    event_type: str
    actor_id: Optional[UUID] = None
    actor_role: Optional[str] = None
    from_value: Optional[str] = None
    to_value: Optional[str] = None
    note: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TimelineEvent:
    project_id: UUID
    change_id: UUID
    event_type: TimelineEventType
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor_id: Optional[UUID] = None
    actor_role: Optional[str] = None
    comment: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def write_audit(self, event: AuditEvent) -> None: ...


class TimelineSink(Protocol):
    def write_timeline(self, event: TimelineEvent) -> None: ...


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None
    return text[:limit]


class DatabaseAuditSink:
    """Writes audit and timeline rows, each in its own short transaction."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, row) -> None:
        try:
            self.db.add(row)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def write_audit(self, event: AuditEvent) -> None:
        self._commit(
            ChangeAuditEvent.create_entry(
                event.project_id,
                event.change_id,
                event.event_type,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                from_value=event.from_value,
                to_value=event.to_value,
                note=event.note,
                payload=event.payload or None,
            )
        )

    def write_timeline(self, event: TimelineEvent) -> None:
        self._commit(
            ChangeTimelineEvent(
                project_id=event.project_id,
                change_id=event.change_id,
                event_type=event.event_type.value,
                from_status=event.from_status,
                to_status=event.to_status,
                actor_id=event.actor_id,
                actor_role=event.actor_role,
                comment=event.comment,
                payload=event.payload or None,
            )
        )


class AuditLog:
    """
    Fan-out to the audit and timeline sinks.

    Notes are truncated to ``note_max_length`` and comments to
    ``comment_max_length`` before they reach a sink.
    """

    def __init__(self, audit_sink: AuditSink, timeline_sink: Optional[TimelineSink] = None):
        settings = get_settings()
        self.audit_sink = audit_sink
        self.timeline_sink = timeline_sink if timeline_sink is not None else audit_sink
        self.note_limit = settings.note_max_length
        self.comment_limit = settings.comment_max_length

    @classmethod
    def for_session(cls, db: Session) -> "AuditLog":
        sink = DatabaseAuditSink(db)
        return cls(sink, sink)

    def record(
        self,
        audit: Optional[AuditEvent] = None,
        timeline: Optional[TimelineEvent] = None,
    ) -> List[SideEffectWarning]:
        """Send each event to its sink; return warnings for the ones that failed."""
        warnings: List[SideEffectWarning] = []

        if audit is not None:
            audit.note = _truncate(audit.note, self.note_limit)
            try:
                self.audit_sink.write_audit(audit)
            except Exception as exc:
                logger.warning(
                    "Audit event %s for change %s was not recorded: %s",
                    audit.event_type, audit.change_id, exc, exc_info=True,
                )
                warnings.append(SideEffectWarning("audit", str(exc) or type(exc).__name__))

        if timeline is not None:
            timeline.comment = _truncate(timeline.comment, self.comment_limit)
            try:
                self.timeline_sink.write_timeline(timeline)
            except Exception as exc:
                logger.warning(
                    "Timeline event %s for change %s was not recorded: %s",
                    timeline.event_type.value, timeline.change_id, exc, exc_info=True,
                )
                warnings.append(SideEffectWarning("timeline", str(exc) or type(exc).__name__))

        return warnings
