"""
Per-type context payloads.

The correlation engine stores context_data as an opaque dict; the downstream
handler that owns a context type decodes it with parse_context_data().
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from faxlink.constants.context import ContextType


class EmailContextData(BaseModel):
    """An email was faxed to the user; a reply fax answers it."""

    kind: Literal["email"] = "email"
    thread_id: Optional[str] = None
    message_id: Optional[str] = None
    from_address: str
    subject: Optional[str] = None
    quick_replies: list[str] = Field(default_factory=list)


class ProductOption(BaseModel):
    marker: str
    product_id: str
    title: str
    price: Optional[float] = None


class ShoppingContextData(BaseModel):
    """Product search results faxed as a lettered selection form."""

    kind: Literal["shopping"] = "shopping"
    query: str
    options: list[ProductOption] = Field(default_factory=list)


class AppointmentSlot(BaseModel):
    marker: str
    slot_id: str
    starts_at: datetime
    duration_minutes: int = 60


class AppointmentContextData(BaseModel):
    """Available slots faxed as a lettered selection form."""

    kind: Literal["appointment"] = "appointment"
    service_name: str
    provider: Optional[str] = None
    slots: list[AppointmentSlot] = Field(default_factory=list)


class InquiryContextData(BaseModel):
    """A general question answered by fax; follow-ups continue the conversation."""

    kind: Literal["inquiry"] = "inquiry"
    question: str
    conversation_id: Optional[str] = None


class DisambiguationChoice(BaseModel):
    marker: str
    context_id: UUID
    reference_id: str
    descriptor: str


class DisambiguationContextData(BaseModel):
    """Clarification round trip: which of these contexts did the reply mean."""

    kind: Literal["disambiguation"] = "disambiguation"
    source_method: str
    choices: list[DisambiguationChoice]


ContextData = Annotated[
    Union[
        EmailContextData,
        ShoppingContextData,
        AppointmentContextData,
        InquiryContextData,
        DisambiguationContextData,
    ],
    Field(discriminator="kind"),
]

_context_data_adapter: TypeAdapter[ContextData] = TypeAdapter(ContextData)


def parse_context_data(context_type: str, data: dict[str, Any]) -> ContextData:
    """Decode a stored payload for its context type (kind defaults to the type)."""
    payload = {"kind": ContextType(context_type).value, **(data or {})}
    return _context_data_adapter.validate_python(payload)
