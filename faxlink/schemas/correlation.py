"""Contracts produced by the matchers, the disambiguator and the engine."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from faxlink.constants.context import ContextStatus, ContextType, MatchMethod
from faxlink.schemas.extraction import ExtractionResult
from faxlink.utils.datetime_utils import as_utc


class MatchStatus(StrEnum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


class MatchCandidate(BaseModel):
    """A context proposed by a matcher, with the status it was read in."""

    context_id: UUID
    reference_id: str
    context_type: ContextType
    status: ContextStatus
    updated_at: datetime
    score: float = 1.0

    @classmethod
    def from_context(cls, context, score: float = 1.0) -> "MatchCandidate":
        return cls(
            context_id=context.id,
            reference_id=context.reference_id,
            context_type=context.context_type,
            status=context.status,
            updated_at=as_utc(context.updated_at),
            score=score,
        )


class MatchResult(BaseModel):
    """Outcome of one matcher stage, or of the whole read-only pipeline."""

    status: MatchStatus
    method: MatchMethod = MatchMethod.NONE
    candidates: list[MatchCandidate] = Field(default_factory=list)
    expired_references: list[str] = Field(default_factory=list)
    consumed_references: list[str] = Field(default_factory=list)
    replayed_clarification: Optional[str] = None
    selection: list[str] = Field(default_factory=list)

    @property
    def is_found(self) -> bool:
        return self.status == MatchStatus.FOUND

    @property
    def is_ambiguous(self) -> bool:
        return self.status == MatchStatus.AMBIGUOUS

    @property
    def best(self) -> Optional[MatchCandidate]:
        return self.candidates[0] if self.candidates else None

    @classmethod
    def not_found(
        cls, method: MatchMethod, expired_references: Optional[list[str]] = None
    ) -> "MatchResult":
        return cls(
            status=MatchStatus.NOT_FOUND,
            method=method,
            expired_references=expired_references or [],
        )


class ClarificationChoice(BaseModel):
    descriptor: str
    marker: str


class ClarificationArtifact(BaseModel):
    """What the rendering collaborator turns into a physical clarification form."""

    candidates: list[ClarificationChoice]
    new_reference_id: str
    question: str


class TaskHandoff(BaseModel):
    """What a per-type task handler receives for a claimed context."""

    context_id: UUID
    reference_id: str
    context_type: ContextType
    context_data: dict[str, Any]
    selection: Optional[list[str]] = None
    extraction: ExtractionResult


ResolutionKind = Literal["resolved", "disambiguation", "no_context"]


class ResolutionOutcome(BaseModel):
    """Deterministic terminal result for one inbound document."""

    kind: ResolutionKind
    method: MatchMethod = MatchMethod.NONE
    handoff: Optional[TaskHandoff] = None
    clarification: Optional[ClarificationArtifact] = None
    reason: Optional[str] = None


class CorrelationEventRead(BaseModel):
    id: UUID
    user_id: UUID
    event_type: str
    method: str
    context_id: Optional[UUID] = None
    reference_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}
