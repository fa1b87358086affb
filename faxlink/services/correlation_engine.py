"""
Correlation engine: decides which outstanding context an inbound document answers.

Matching runs a fixed sequence of read-only stages (reference code, reply-form
structure, recency). Resolution adds the single mutating step, an atomic claim,
and turns every outcome into a ResolutionOutcome with an audit event.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Collection, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from faxlink.config import Settings, get_settings
from faxlink.constants.context import ContextType, MatchMethod
from faxlink.core.markings import selected_letters
from faxlink.exceptions import ClaimConflictError
from faxlink.infra.logging_config import get_logger
from faxlink.models.conversation_context import ConversationContext
from faxlink.schemas.correlation import (
    MatchCandidate,
    MatchResult,
    ResolutionOutcome,
    TaskHandoff,
)
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.services.correlation_event_service import (
    CLAIM_CONFLICT,
    CONSUMED_CONTEXT_REFERENCED,
    CONTEXT_RESOLVED,
    DISAMBIGUATION_ISSUED,
    EXPIRED_CONTEXT_REFERENCED,
    NO_CONTEXT,
    CorrelationEventService,
)
from faxlink.services.disambiguation_service import DisambiguationService
from faxlink.services.reference_matcher import ReferenceMatcher
from faxlink.services.template_matcher import TemplateMatcher
from faxlink.services.temporal_matcher import TemporalMatcher
from faxlink.utils.metrics import CONTEXT_CLAIM_CONFLICT_TOTAL, CORRELATION_OUTCOME_TOTAL

logger = get_logger("correlation_engine")

CLAIM_ATTEMPTS = 2


class CorrelationEngine:
    """
    Orchestrates the matchers, the claim and the disambiguation round trip.

    Stage order is fixed: the first stage with a unique match wins. An
    ambiguous reference stage still lets the template stage try; the temporal
    stage only runs when neither earlier stage proposed anything. When no stage
    is unique, the earliest ambiguous stage's candidates are disambiguated.
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        reference_matcher: Optional[ReferenceMatcher] = None,
        template_matcher: Optional[TemplateMatcher] = None,
        temporal_matcher: Optional[TemporalMatcher] = None,
        disambiguation_service: Optional[DisambiguationService] = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.contexts = ConversationContextService(db, self.settings)
        self.events = CorrelationEventService(db)
        self.reference_matcher = reference_matcher or ReferenceMatcher(
            self.contexts, self.settings
        )
        self.template_matcher = template_matcher or TemplateMatcher(
            self.contexts, self.settings
        )
        self.temporal_matcher = temporal_matcher or TemporalMatcher(
            self.contexts, self.settings
        )
        self.disambiguation = disambiguation_service or DisambiguationService(
            self.contexts, self.settings
        )

    # ------------------------------------------------------------------
    # Matching (read only)
    # ------------------------------------------------------------------

    def match(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]] = None,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """Run the matcher stages without claiming anything."""
        now = now or datetime.now(timezone.utc)
        ambiguous: Optional[MatchResult] = None

        reference = self.reference_matcher.match(extraction, context_ids, now)
        if reference.is_found or reference.replayed_clarification:
            return reference
        if reference.is_ambiguous:
            ambiguous = reference

        template = self.template_matcher.match(extraction, context_ids, now)
        if template.is_found:
            return self._with_closed(template, reference)
        if template.is_ambiguous and ambiguous is None:
            ambiguous = template

        if ambiguous is not None:
            return self._with_closed(ambiguous, reference)

        temporal = self.temporal_matcher.match(extraction, context_ids, now)
        if temporal.is_found or temporal.is_ambiguous:
            return self._with_closed(temporal, reference)

        return self._with_closed(MatchResult.not_found(MatchMethod.NONE), reference)

    @staticmethod
    def _with_closed(result: MatchResult, reference: MatchResult) -> MatchResult:
        """Carry the closed codes seen by the reference stage onto a later result."""
        return result.model_copy(
            update={
                "expired_references": list(reference.expired_references),
                "consumed_references": list(reference.consumed_references),
            }
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self, extraction: ExtractionResult, now: Optional[datetime] = None
    ) -> ResolutionOutcome:
        """Match, claim and hand off; or issue a clarification; or report no context."""
        now = now or datetime.now(timezone.utc)
        return self._resolve(extraction, None, now, depth=0, original=extraction)

    def _resolve(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]],
        now: datetime,
        depth: int,
        original: ExtractionResult,
    ) -> ResolutionOutcome:
        user_id = original.user_id
        for attempt in range(CLAIM_ATTEMPTS):
            result = self.match(extraction, context_ids, now)
            if attempt == 0:
                self._audit_closed(user_id, result)

            if result.is_ambiguous:
                return self._issue_disambiguation(
                    user_id, result.candidates, result.method, now
                )
            if result.replayed_clarification:
                logger.info(
                    "Reply to settled clarification %s from user=%s ignored",
                    result.replayed_clarification,
                    user_id,
                )
                return self._no_context(
                    user_id, result.method, "clarification_replayed"
                )
            if not result.is_found:
                return self._no_context(user_id, result.method, "no_match")

            candidate = result.best
            try:
                context = self.contexts.claim(
                    candidate.context_id, candidate.status, now
                )
            except ClaimConflictError as exc:
                self._record_conflict(user_id, candidate, result.method, attempt, exc)
                continue

            if context.context_type == ContextType.DISAMBIGUATION and depth == 0:
                return self._follow_up(context, original, now)
            return self._resolved(context, result, original, depth)

        return self._no_context(user_id, MatchMethod.NONE, "claim_conflict")

    def _follow_up(
        self,
        clarification: ConversationContext,
        extraction: ExtractionResult,
        now: datetime,
    ) -> ResolutionOutcome:
        """Decode the choice on a returned clarification and resolve that candidate."""
        data = self.disambiguation.read_choices(clarification)
        choice = self.disambiguation.select(clarification, extraction)
        if choice is None:
            logger.info(
                "No readable selection on reply to %s for user=%s; asking again",
                clarification.reference_id,
                extraction.user_id,
            )
            remaining = self._still_open(extraction.user_id, data.choices, now)
            if not remaining:
                return self._no_context(
                    extraction.user_id,
                    MatchMethod.DISAMBIGUATION_SELECTION,
                    "selection_unreadable",
                )
            return self._issue_disambiguation(
                extraction.user_id, remaining, data.source_method, now
            )

        logger.info(
            "Reply to %s selected %s (%s)",
            clarification.reference_id,
            choice.marker,
            choice.reference_id,
        )
        scoped = ExtractionResult(
            user_id=extraction.user_id,
            extracted_text="",
            annotations=[],
            best_effort_reference_id=choice.reference_id,
        )
        return self._resolve(
            scoped, {choice.context_id}, now, depth=1, original=extraction
        )

    def _still_open(self, user_id: UUID, choices, now: datetime) -> list[MatchCandidate]:
        ids = [choice.context_id for choice in choices]
        by_id = {
            context.id: context
            for context in self.contexts.find_active_by_user(
                user_id, context_ids=ids, now=now
            )
        }
        return [
            MatchCandidate.from_context(by_id[context_id])
            for context_id in ids
            if context_id in by_id
        ]

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _resolved(
        self,
        context: ConversationContext,
        result: MatchResult,
        extraction: ExtractionResult,
        depth: int,
    ) -> ResolutionOutcome:
        if depth:
            method = MatchMethod.DISAMBIGUATION_SELECTION
            selection = None
        else:
            method = result.method
            selection = result.selection or selected_letters(
                extraction.annotations, self.settings.template_min_mark_confidence
            )
        handoff = TaskHandoff(
            context_id=context.id,
            reference_id=context.reference_id,
            context_type=context.context_type,
            context_data=context.context_data or {},
            selection=selection or None,
            extraction=extraction,
        )
        self.events.record(
            context.user_id,
            CONTEXT_RESOLVED,
            method=method,
            context_id=context.id,
            reference_id=context.reference_id,
            details={
                "context_type": context.context_type,
                "score": result.best.score if result.best else None,
            },
        )
        self._count(method, "resolved")
        logger.info(
            "Resolved inbound document for user=%s to %s context %s via %s",
            context.user_id,
            context.context_type,
            context.reference_id,
            method,
        )
        return ResolutionOutcome(kind="resolved", method=method, handoff=handoff)

    def _issue_disambiguation(
        self,
        user_id: UUID,
        candidates: Sequence[MatchCandidate],
        source_method: MatchMethod | str,
        now: datetime,
    ) -> ResolutionOutcome:
        method = MatchMethod(source_method)
        try:
            clarification, artifact = self.disambiguation.issue(
                user_id, candidates, method, now
            )
        except ValueError:
            # Every candidate closed between matching and issuance.
            return self._no_context(user_id, method, "candidates_closed")

        self.events.record(
            user_id,
            DISAMBIGUATION_ISSUED,
            method=method,
            context_id=clarification.id,
            reference_id=clarification.reference_id,
            details={
                "candidates": [choice.marker for choice in artifact.candidates],
                "candidate_reference_ids": [c.reference_id for c in candidates],
            },
        )
        self._count(method, "disambiguation")
        return ResolutionOutcome(
            kind="disambiguation", method=method, clarification=artifact
        )

    def _no_context(
        self, user_id: UUID, method: MatchMethod | str, reason: str
    ) -> ResolutionOutcome:
        method = MatchMethod(method)
        self.events.record(
            user_id, NO_CONTEXT, method=method, details={"reason": reason}
        )
        self._count(method, "no_context")
        logger.info(
            "No context for inbound document from user=%s (%s)", user_id, reason
        )
        return ResolutionOutcome(kind="no_context", method=method, reason=reason)

    def _audit_closed(self, user_id: UUID, result: MatchResult) -> None:
        closed = [
            (EXPIRED_CONTEXT_REFERENCED, "expired", result.expired_references),
            (CONSUMED_CONTEXT_REFERENCED, "consumed", result.consumed_references),
        ]
        for event_type, reason, reference_ids in closed:
            for reference_id in reference_ids:
                self.events.record(
                    user_id,
                    event_type,
                    method=MatchMethod.REFERENCE_ID,
                    reference_id=reference_id,
                    details={"reason": reason},
                )
                logger.warning(
                    "User=%s referenced %s context %s; falling back",
                    user_id,
                    reason,
                    reference_id,
                )

    def _record_conflict(
        self,
        user_id: UUID,
        candidate: MatchCandidate,
        method: MatchMethod,
        attempt: int,
        exc: ClaimConflictError,
    ) -> None:
        CONTEXT_CLAIM_CONFLICT_TOTAL.inc()
        details: dict[str, Any] = {"attempt": attempt + 1}
        self.events.record(
            user_id,
            CLAIM_CONFLICT,
            method=method,
            context_id=candidate.context_id,
            reference_id=candidate.reference_id,
            details=details,
        )
        logger.warning("%s (attempt %d)", exc, attempt + 1)

    @staticmethod
    def _count(method: MatchMethod | str, outcome: str) -> None:
        CORRELATION_OUTCOME_TOTAL.labels(method=str(method), outcome=outcome).inc()
