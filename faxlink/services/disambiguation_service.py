"""Builds and reads clarification round trips when a reply matches several contexts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from faxlink.config import Settings, get_settings
from faxlink.constants.context import (
    OPTION_MARKERS,
    ContextStatus,
    ContextType,
    MarkingFamily,
    MatchMethod,
)
from faxlink.core.markings import selected_letters, written_selection
from faxlink.infra.logging_config import get_logger
from faxlink.models.conversation_context import ConversationContext
from faxlink.schemas.context_data import (
    DisambiguationChoice,
    DisambiguationContextData,
    parse_context_data,
)
from faxlink.schemas.conversation_context import (
    ConversationContextCreate,
    TemplateFingerprint,
)
from faxlink.schemas.correlation import (
    ClarificationArtifact,
    ClarificationChoice,
    MatchCandidate,
)
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.utils.datetime_utils import as_utc

logger = get_logger("disambiguation")

CONTEXT_TYPE_LABELS = {
    ContextType.EMAIL: "Email reply",
    ContextType.SHOPPING: "Shopping order",
    ContextType.APPOINTMENT: "Appointment booking",
    ContextType.INQUIRY: "Question",
    ContextType.DISAMBIGUATION: "Clarification request",
}


class DisambiguationService:
    """Issues clarification contexts and decodes the user's choice on the way back."""

    def __init__(
        self,
        context_service: ConversationContextService,
        settings: Optional[Settings] = None,
    ) -> None:
        self.contexts = context_service
        self.settings = settings or get_settings()

    def issue(
        self,
        user_id: UUID,
        candidates: Sequence[MatchCandidate],
        source_method: MatchMethod | str,
        now: Optional[datetime] = None,
    ) -> Tuple[ConversationContext, ClarificationArtifact]:
        """
        Persist a disambiguation context enumerating the candidates and return
        it with the artifact for the rendering collaborator.
        """
        now = now or datetime.now(timezone.utc)
        contexts = self._load_open(user_id, candidates, now)
        if not contexts:
            raise ValueError("Cannot disambiguate without open candidates")

        choices = [
            DisambiguationChoice(
                marker=OPTION_MARKERS[index],
                context_id=context.id,
                reference_id=context.reference_id,
                descriptor=self.describe(context, now),
            )
            for index, context in enumerate(contexts)
        ]
        markers = [choice.marker for choice in choices]
        data = DisambiguationContextData(
            source_method=str(source_method), choices=choices
        )
        clarification = self.contexts.create_context(
            ConversationContextCreate(
                user_id=user_id,
                context_type=ContextType.DISAMBIGUATION,
                context_data=data.model_dump(mode="json", exclude={"kind"}),
                summary="Which request is this reply for?",
                template_fingerprint=TemplateFingerprint(
                    family=MarkingFamily.LETTERED_OPTIONS,
                    option_markers=markers,
                    max_selections=1,
                ),
            ),
            now=now,
        )

        for context in contexts:
            if context.status == ContextStatus.ACTIVE:
                self.contexts.mark_awaiting_disambiguation(context.id, now)

        artifact = ClarificationArtifact(
            candidates=[
                ClarificationChoice(descriptor=choice.descriptor, marker=choice.marker)
                for choice in choices
            ],
            new_reference_id=clarification.reference_id,
            question=self.build_question(choices, clarification.reference_id),
        )
        logger.info(
            "Issued disambiguation %s for user=%s over %d candidates (%s)",
            clarification.reference_id,
            user_id,
            len(choices),
            source_method,
        )
        return clarification, artifact

    def _load_open(
        self,
        user_id: UUID,
        candidates: Sequence[MatchCandidate],
        now: datetime,
    ) -> List[ConversationContext]:
        """Open candidate contexts in ranked order, capped at the choice limit."""
        ids = [candidate.context_id for candidate in candidates]
        by_id = {
            context.id: context
            for context in self.contexts.find_active_by_user(
                user_id, context_ids=ids, now=now
            )
        }
        ordered = [by_id[context_id] for context_id in ids if context_id in by_id]
        return ordered[: self.settings.max_disambiguation_choices]

    def describe(self, context: ConversationContext, now: datetime) -> str:
        """Short human-readable descriptor: summary (or type label) and age."""
        label = context.summary or CONTEXT_TYPE_LABELS.get(
            context.context_type, "Request"
        )
        days = (now - as_utc(context.updated_at)).days
        if days <= 0:
            age = "today"
        elif days == 1:
            age = "yesterday"
        else:
            age = f"{days} days ago"
        return f"{label} ({age}, Ref: {context.reference_id})"

    @staticmethod
    def build_question(
        choices: Sequence[DisambiguationChoice], reference_id: str
    ) -> str:
        lines = [
            "We received your fax but could not tell which request it is for.",
            "Recent conversations:",
            "",
        ]
        lines.extend(f"{choice.marker}. {choice.descriptor}" for choice in choices)
        markers = " or ".join(choice.marker for choice in choices)
        lines.extend(
            [
                "",
                f"Please circle the letter ({markers}) and fax this page back "
                f"with your original message. Ref: {reference_id}",
            ]
        )
        return "\n".join(lines)

    def read_choices(self, clarification: ConversationContext) -> DisambiguationContextData:
        return parse_context_data(clarification.context_type, clarification.context_data)

    def select(
        self, clarification: ConversationContext, extraction: ExtractionResult
    ) -> Optional[DisambiguationChoice]:
        """
        The choice the reply makes: exactly one circled letter among the offered
        markers, else a single written letter or 1-based number.
        """
        data = self.read_choices(clarification)
        markers = [choice.marker for choice in data.choices]
        marked = [
            letter
            for letter in selected_letters(
                extraction.annotations, self.settings.template_min_mark_confidence
            )
            if letter in markers
        ]
        if len(marked) > 1:
            return None
        marker = marked[0] if marked else written_selection(
            extraction.extracted_text, markers
        )
        if marker is None:
            return None
        return next(choice for choice in data.choices if choice.marker == marker)
