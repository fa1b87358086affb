"""Vision interpreter output for one inbound document."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

AnnotationType = Literal["circle", "checkmark", "underline", "arrow", "checkbox"]


class BoundingBox(BaseModel):
    """Region on the page, in fractions of page width/height (0..1)."""

    x: float
    y: float
    width: float = 0.0
    height: float = 0.0

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


class Annotation(BaseModel):
    """A hand-drawn marking detected on the page."""

    type: AnnotationType
    bounding_box: BoundingBox
    associated_text: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class ExtractionResult(BaseModel):
    """Everything the correlation engine gets to see about an inbound document."""

    user_id: UUID
    extracted_text: str = ""
    annotations: list[Annotation] = Field(default_factory=list)
    best_effort_reference_id: Optional[str] = None
