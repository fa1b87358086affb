"""ConversationContext model: one row per outstanding reply-expecting interaction."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB

from faxlink.db import Base
from faxlink.models.mixins import TimestampMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ConversationContext(Base, TimestampMixin):
    """
    Outstanding conversation awaiting a physical reply.

    context_data is opaque here; only the handler for context_type decodes it.
    Rows are never deleted so a reference_id is never handed out twice.
    """

    __tablename__ = "conversation_contexts"

    __table_args__ = (
        Index(
            "ix_conversation_contexts_user_status_expires",
            "user_id",
            "status",
            "expires_at",
        ),
        CheckConstraint(
            "expires_at > created_at", name="ck_conversation_contexts_expiry"
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    reference_id = Column(String(32), unique=True, nullable=False, index=True)
    context_type = Column(String(32), nullable=False)
    context_data = Column(JSONType, nullable=False, default=dict)
    status = Column(String(32), nullable=False, default="active")
    summary = Column(String(256), nullable=True)
    template_fingerprint = Column(JSONType, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
