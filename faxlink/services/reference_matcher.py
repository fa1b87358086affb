"""Matches an inbound document by the reference code written or printed on it."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Collection, Optional
from uuid import UUID

from faxlink.config import Settings, get_settings
from faxlink.constants.context import ContextStatus, ContextType, MatchMethod
from faxlink.core.reference_id import (
    canonical,
    find_fuzzy_bodies,
    find_reference_ids,
    fuzzy_matches,
    is_valid_reference_id,
)
from faxlink.infra.logging_config import get_logger
from faxlink.schemas.correlation import MatchCandidate, MatchResult, MatchStatus
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService

logger = get_logger("reference_matcher")


class ReferenceMatcher:
    """
    Exact lookup of syntactically valid codes, else a bounded fuzzy pass.

    The fuzzy pass only ever compares against the user's open reference codes,
    never the whole table, and accepts a hit only when it is unique.
    """

    def __init__(
        self,
        context_service: ConversationContextService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.contexts = context_service
        self.settings = settings or get_settings()

    def candidate_tokens(self, extraction: ExtractionResult) -> list[str]:
        """Valid codes: the interpreter's best guess first, then the page text."""
        prefix = self.settings.reference_id_prefix
        tokens: list[str] = []
        best_effort = extraction.best_effort_reference_id
        if is_valid_reference_id(best_effort, prefix):
            tokens.append(canonical(best_effort))
        for token in find_reference_ids(extraction.extracted_text, prefix):
            if token not in tokens:
                tokens.append(token)
        return tokens

    def match(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]] = None,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        now = now or datetime.now(timezone.utc)
        tokens = self.candidate_tokens(extraction)
        if tokens:
            best_effort = extraction.best_effort_reference_id
            preferred = (
                canonical(best_effort)
                if is_valid_reference_id(best_effort, self.settings.reference_id_prefix)
                else None
            )
            return self._match_exact(
                extraction.user_id, tokens, preferred, context_ids, now
            )
        return self._match_fuzzy(extraction, context_ids, now)

    def _match_exact(
        self,
        user_id: UUID,
        tokens: list[str],
        preferred: Optional[str],
        context_ids: Optional[Collection[UUID]],
        now: datetime,
    ) -> MatchResult:
        """
        Exact lookup of every valid code on the page.

        A clarification page also prints the codes of the contexts it offers.
        An open clarification therefore wins over its listed codes, and the
        listed codes of a closed clarification are ignored. A consumed
        clarification marks the page as a replay of a settled round trip.
        """
        expired: list[str] = []
        consumed: list[str] = []
        settled: set[str] = set()
        replayed: Optional[str] = None
        found = []
        for token in tokens:
            context = self.contexts.get_by_reference_id(token, user_id)
            if context is None:
                continue
            if context_ids is not None and context.id not in context_ids:
                continue
            if self.contexts.is_open(context, now):
                found.append(context)
                continue
            if context.status == ContextStatus.CONSUMED:
                consumed.append(token)
            else:
                expired.append(token)
            if context.context_type == ContextType.DISAMBIGUATION:
                settled.update(
                    choice.reference_id
                    for choice in self.contexts.listed_choices(context)
                )
                if context.status == ContextStatus.CONSUMED and replayed is None:
                    replayed = token

        found = [context for context in found if context.reference_id not in settled]
        if expired or consumed:
            logger.info(
                "Reference codes %s for user=%s point at closed contexts",
                ", ".join(expired + consumed),
                user_id,
            )

        clarifications = [
            context
            for context in found
            if context.context_type == ContextType.DISAMBIGUATION
        ]
        preferred_hits = [c for c in found if c.reference_id == preferred]
        if clarifications or preferred_hits or len(found) == 1:
            chosen = (clarifications or preferred_hits or found)[0]
            return MatchResult(
                status=MatchStatus.FOUND,
                method=MatchMethod.REFERENCE_ID,
                candidates=[MatchCandidate.from_context(chosen)],
                expired_references=expired,
                consumed_references=consumed,
            )
        if found:
            logger.info(
                "Page for user=%s carries %d open reference codes",
                user_id,
                len(found),
            )
            return MatchResult(
                status=MatchStatus.AMBIGUOUS,
                method=MatchMethod.REFERENCE_ID,
                candidates=[
                    MatchCandidate.from_context(context)
                    for context in found[: self.settings.max_disambiguation_choices]
                ],
                expired_references=expired,
                consumed_references=consumed,
            )
        return MatchResult(
            status=MatchStatus.NOT_FOUND,
            method=MatchMethod.REFERENCE_ID,
            expired_references=expired,
            consumed_references=consumed,
            replayed_clarification=replayed,
        )

    def _match_fuzzy(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]],
        now: datetime,
    ) -> MatchResult:
        prefix = self.settings.reference_id_prefix
        bodies = find_fuzzy_bodies(extraction.extracted_text, prefix)
        if extraction.best_effort_reference_id:
            for body in find_fuzzy_bodies(extraction.best_effort_reference_id, prefix):
                if body not in bodies:
                    bodies.insert(0, body)
        if not bodies:
            return MatchResult.not_found(MatchMethod.REFERENCE_FUZZY)

        active = {
            context.reference_id: context
            for context in self.contexts.find_active_by_user(
                extraction.user_id, context_ids=context_ids, now=now
            )
        }
        hits = fuzzy_matches(bodies, active.keys(), self.settings.fuzzy_max_distance)
        if not hits:
            return MatchResult.not_found(MatchMethod.REFERENCE_FUZZY)

        best_distance = hits[0].distance
        nearest = {hit.reference_id for hit in hits if hit.distance == best_distance}
        score = 1.0 - best_distance / (self.settings.fuzzy_max_distance + 1)
        candidates = [
            MatchCandidate.from_context(context, score=score)
            for reference_id, context in active.items()
            if reference_id in nearest
        ]
        if len(candidates) == 1:
            logger.info(
                "Fuzzy reference match %s (distance %d) for user=%s",
                candidates[0].reference_id,
                best_distance,
                extraction.user_id,
            )
            return MatchResult(
                status=MatchStatus.FOUND,
                method=MatchMethod.REFERENCE_FUZZY,
                candidates=candidates,
            )
        return MatchResult(
            status=MatchStatus.AMBIGUOUS,
            method=MatchMethod.REFERENCE_FUZZY,
            candidates=candidates,
        )
