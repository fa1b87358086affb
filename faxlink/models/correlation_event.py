"""
CorrelationEvent model: audit trail of how inbound documents were correlated.

Immutable events only (insert). Query by user_id ordered by created_at.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Column, Index, String, Uuid

from faxlink.db import Base
from faxlink.models.conversation_context import JSONType
from faxlink.models.mixins import TimestampMixin


class CorrelationEvent(Base, TimestampMixin):
    """Single correlation decision (resolved, disambiguation, no context, ...)."""

    __tablename__ = "correlation_events"

    __table_args__ = (
        Index("ix_correlation_events_user_created", "user_id", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    event_type = Column(String(64), nullable=False)
    method = Column(String(32), nullable=False, default="none")
    context_id = Column(Uuid(as_uuid=True), nullable=True)
    reference_id = Column(String(32), nullable=True)
    details = Column(JSONType, nullable=True, default=dict)
