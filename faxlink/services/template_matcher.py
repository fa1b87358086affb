"""Matches a reply by the structure of its hand-drawn marks against known reply forms."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Collection, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError

from faxlink.config import Settings, get_settings
from faxlink.constants.context import FAMILY_CONTEXT_TYPES, MarkingFamily, MatchMethod
from faxlink.core.markings import (
    TICK_MARK_TYPES,
    classify_family,
    confident_marks,
    selected_letters,
)
from faxlink.infra.logging_config import get_logger
from faxlink.models.conversation_context import ConversationContext
from faxlink.schemas.conversation_context import TemplateFingerprint
from faxlink.schemas.correlation import MatchCandidate, MatchResult, MatchStatus
from faxlink.schemas.extraction import Annotation, ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService

logger = get_logger("template_matcher")

LETTER_WEIGHT = 0.5
COUNT_WEIGHT = 0.2
ZONE_WEIGHT = 0.3
NEUTRAL = 0.5


class TemplateMatcher:
    """
    Scores same-family open contexts by structural similarity to the marks.

    Candidates are restricted to the context types of the marking family first,
    so a lettered selection can never correlate with an email reply.
    """

    def __init__(
        self,
        context_service: ConversationContextService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.contexts = context_service
        self.settings = settings or get_settings()

    def match(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]] = None,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        now = now or datetime.now(timezone.utc)
        min_confidence = self.settings.template_min_mark_confidence
        family = classify_family(extraction.annotations, min_confidence)
        if family is None:
            return MatchResult.not_found(MatchMethod.TEMPLATE_PATTERN)

        marks = confident_marks(extraction.annotations, min_confidence)
        letters = selected_letters(extraction.annotations, min_confidence)
        candidates = self.contexts.find_active_by_user(
            extraction.user_id,
            context_types=FAMILY_CONTEXT_TYPES[family],
            context_ids=context_ids,
            now=now,
        )

        scored: List[MatchCandidate] = []
        for context in candidates:
            fingerprint = self._fingerprint(context)
            if fingerprint is not None and fingerprint.family != family:
                continue
            score = self.score(family, marks, letters, fingerprint)
            if score > 0:
                scored.append(MatchCandidate.from_context(context, score=round(score, 4)))

        # Stable sort keeps the store's recency order among equal scores.
        scored.sort(key=lambda c: -c.score)
        return self._decide(scored, letters)

    def _decide(self, scored: List[MatchCandidate], letters: List[str]) -> MatchResult:
        if not scored:
            return MatchResult.not_found(MatchMethod.TEMPLATE_PATTERN)

        top = scored[0]
        runner_up = scored[1].score if len(scored) > 1 else 0.0
        if (
            top.score >= self.settings.template_min_score
            and top.score - runner_up >= self.settings.template_min_margin
        ):
            return MatchResult(
                status=MatchStatus.FOUND,
                method=MatchMethod.TEMPLATE_PATTERN,
                candidates=[top],
                selection=letters,
            )
        if len(scored) == 1:
            # One weak structural hit is not evidence; leave it to later stages.
            return MatchResult.not_found(MatchMethod.TEMPLATE_PATTERN)
        return MatchResult(
            status=MatchStatus.AMBIGUOUS,
            method=MatchMethod.TEMPLATE_PATTERN,
            candidates=scored[: self.settings.max_disambiguation_choices],
            selection=letters,
        )

    def score(
        self,
        family: MarkingFamily,
        marks: Sequence[Annotation],
        letters: Sequence[str],
        fingerprint: Optional[TemplateFingerprint],
    ) -> float:
        """Weighted structural similarity in [0, 1]; 0 means incompatible."""
        letter_score = self._letter_validity(family, letters, fingerprint)
        if letter_score == 0:
            return 0.0
        if family == MarkingFamily.LETTERED_OPTIONS:
            selections = len(letters)
        else:
            selections = sum(1 for mark in marks if mark.type in TICK_MARK_TYPES)
        return (
            LETTER_WEIGHT * letter_score
            + COUNT_WEIGHT * self._count_fit(selections, fingerprint)
            + ZONE_WEIGHT * self._zone_proximity(marks, fingerprint)
        )

    def _letter_validity(
        self,
        family: MarkingFamily,
        letters: Sequence[str],
        fingerprint: Optional[TemplateFingerprint],
    ) -> float:
        if fingerprint is None:
            return NEUTRAL
        if family == MarkingFamily.CHECKBOX:
            return 1.0
        if not fingerprint.option_markers:
            return NEUTRAL
        valid = [letter for letter in letters if letter in fingerprint.option_markers]
        return len(valid) / len(letters) if letters else 0.0

    def _count_fit(
        self, selections: int, fingerprint: Optional[TemplateFingerprint]
    ) -> float:
        if fingerprint is None or fingerprint.max_selections is None or selections == 0:
            return 1.0
        if selections <= fingerprint.max_selections:
            return 1.0
        return fingerprint.max_selections / selections

    def _zone_proximity(
        self, marks: Sequence[Annotation], fingerprint: Optional[TemplateFingerprint]
    ) -> float:
        if fingerprint is None or not fingerprint.zones or not marks:
            return NEUTRAL
        radius = self.settings.template_zone_radius
        zone_centers = [zone.center for zone in fingerprint.zones]
        total = 0.0
        for mark in marks:
            mx, my = mark.bounding_box.center
            nearest = min(math.dist((mx, my), center) for center in zone_centers)
            total += max(0.0, 1.0 - nearest / radius)
        return total / len(marks)

    @staticmethod
    def _fingerprint(context: ConversationContext) -> Optional[TemplateFingerprint]:
        if not context.template_fingerprint:
            return None
        try:
            return TemplateFingerprint.model_validate(context.template_fingerprint)
        except ValidationError:
            logger.warning(
                "Ignoring malformed template fingerprint on context %s",
                context.reference_id,
            )
            return None
