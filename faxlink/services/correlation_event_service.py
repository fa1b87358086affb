"""
Service for the correlation audit trail.

Events are immutable; only insert. No update/delete of event content.
"""

from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from faxlink.constants.context import MatchMethod
from faxlink.models.correlation_event import CorrelationEvent

CONTEXT_RESOLVED = "context_resolved"
DISAMBIGUATION_ISSUED = "disambiguation_issued"
NO_CONTEXT = "no_context"
EXPIRED_CONTEXT_REFERENCED = "expired_context_referenced"
CONSUMED_CONTEXT_REFERENCED = "consumed_context_referenced"
CLAIM_CONFLICT = "claim_conflict"


class CorrelationEventService:
    """Create and read correlation events. No update/delete (immutable)."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def record(
        self,
        user_id: UUID,
        event_type: str,
        method: MatchMethod | str = MatchMethod.NONE,
        context_id: Optional[UUID] = None,
        reference_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> CorrelationEvent:
        """Persist one correlation decision."""
        event = CorrelationEvent(
            user_id=user_id,
            event_type=event_type,
            method=str(method),
            context_id=context_id,
            reference_id=reference_id,
            details=details or {},
        )
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)
        return event

    def get_events(
        self,
        user_id: UUID,
        event_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[CorrelationEvent]:
        """Fetch a user's events, oldest first, optionally of one type."""
        q = (
            self.db.query(CorrelationEvent)
            .filter(CorrelationEvent.user_id == user_id)
            .order_by(CorrelationEvent.created_at.asc())
        )
        if event_type is not None:
            q = q.filter(CorrelationEvent.event_type == event_type)
        return q.offset(skip).limit(limit).all()
