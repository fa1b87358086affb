"""Last-resort matcher: the user's recently active contexts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Collection, Optional
from uuid import UUID

from faxlink.config import Settings, get_settings
from faxlink.constants.context import ContextStatus, MatchMethod
from faxlink.schemas.correlation import MatchCandidate, MatchResult, MatchStatus
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService


class TemporalMatcher:
    """
    One active context inside the recency window is an implicit continuation;
    several are ambiguous; none means a brand-new request.

    A context awaiting disambiguation is left out only while an open
    clarification still lists it; that clarification stands in for it. Once
    the clarification is consumed or expired the context is eligible again.
    """

    def __init__(
        self,
        context_service: ConversationContextService,
        settings: Optional[Settings] = None,
        window: Optional[timedelta] = None,
    ) -> None:
        self.contexts = context_service
        self.settings = settings or get_settings()
        self.window = window or timedelta(days=self.settings.temporal_window_days)

    def match(
        self,
        extraction: ExtractionResult,
        context_ids: Optional[Collection[UUID]] = None,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        now = now or datetime.now(timezone.utc)
        recent = self.contexts.find_active_by_user(
            extraction.user_id,
            window=self.window,
            context_ids=context_ids,
            now=now,
        )
        pending = self.contexts.pending_choice_ids(extraction.user_id, now)
        recent = [
            context
            for context in recent
            if context.status != ContextStatus.AWAITING_DISAMBIGUATION
            or context.id not in pending
        ]
        if not recent:
            return MatchResult.not_found(MatchMethod.TEMPORAL_PROXIMITY)
        if len(recent) == 1:
            return MatchResult(
                status=MatchStatus.FOUND,
                method=MatchMethod.TEMPORAL_PROXIMITY,
                candidates=[MatchCandidate.from_context(recent[0])],
            )
        return MatchResult(
            status=MatchStatus.AMBIGUOUS,
            method=MatchMethod.TEMPORAL_PROXIMITY,
            candidates=[
                MatchCandidate.from_context(context)
                for context in recent[: self.settings.max_disambiguation_choices]
            ],
        )
