"""Pydantic schemas for ConversationContext."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from faxlink.constants.context import ContextStatus, ContextType, MarkingFamily
from faxlink.schemas.extraction import BoundingBox


class TemplateFingerprint(BaseModel):
    """Structural signature of the reply form printed on an outbound fax."""

    family: MarkingFamily
    option_markers: list[str] = Field(default_factory=list)
    max_selections: Optional[int] = Field(default=None, ge=1)
    zones: list[BoundingBox] = Field(default_factory=list)


class ConversationContextCreate(BaseModel):
    """Schema for creating a context when an outbound artifact expects a reply."""

    user_id: UUID
    context_type: ContextType
    context_data: dict[str, Any] = Field(default_factory=dict)
    summary: Optional[str] = Field(default=None, max_length=256)
    template_fingerprint: Optional[TemplateFingerprint] = None
    ttl_seconds: Optional[int] = Field(default=None, ge=1)


class ConversationContextRead(BaseModel):
    """Context as returned by the API."""

    id: UUID
    user_id: UUID
    reference_id: str
    context_type: ContextType
    context_data: dict[str, Any]
    status: ContextStatus
    summary: Optional[str] = None
    template_fingerprint: Optional[TemplateFingerprint] = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    consumed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
