"""Context store: creation, owner-scoped reads, claim (compare-and-set) and expiry."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Collection, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from faxlink.config import Settings, get_settings
from faxlink.constants.context import (
    ALLOWED_TRANSITIONS,
    OPEN_STATUSES,
    ContextStatus,
    ContextType,
)
from faxlink.core.reference_id import generate_reference_id
from faxlink.exceptions import (
    ClaimConflictError,
    InvalidStatusTransitionError,
    ReferenceIdExhaustedError,
)
from faxlink.infra.logging_config import get_logger
from faxlink.models.conversation_context import ConversationContext
from faxlink.schemas.context_data import DisambiguationChoice, parse_context_data
from faxlink.schemas.conversation_context import ConversationContextCreate
from faxlink.utils.datetime_utils import as_utc
from faxlink.utils.metrics import CONTEXTS_EXPIRED_TOTAL

logger = get_logger("context_store")


class ConversationContextService:
    """
    Persistent store of outstanding contexts.

    Every read path filters on status and expires_at at query time, so an
    expired context is never returned even if the sweep has not run yet.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_context(
        self,
        data: ConversationContextCreate,
        now: Optional[datetime] = None,
    ) -> ConversationContext:
        """Persist a new active context under a freshly allocated reference code."""
        now = now or datetime.now(timezone.utc)
        expires_at = now + self._ttl_for(data)
        fingerprint = (
            data.template_fingerprint.model_dump(mode="json")
            if data.template_fingerprint
            else None
        )

        for _ in range(self.settings.reference_id_max_attempts):
            reference_id = generate_reference_id(self.settings.reference_id_prefix, now)
            if self._reference_id_taken(reference_id):
                continue
            context = ConversationContext(
                user_id=data.user_id,
                reference_id=reference_id,
                context_type=data.context_type.value,
                context_data=data.context_data,
                status=ContextStatus.ACTIVE.value,
                summary=data.summary,
                template_fingerprint=fingerprint,
                created_at=now,
                updated_at=now,
                expires_at=expires_at,
            )
            self.db.add(context)
            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race for the same code to another writer.
                self.db.rollback()
                continue
            self.db.refresh(context)
            logger.info(
                "Created %s context %s for user=%s (expires %s)",
                context.context_type,
                context.reference_id,
                context.user_id,
                expires_at.isoformat(),
            )
            return context

        raise ReferenceIdExhaustedError(
            f"No unused reference id after {self.settings.reference_id_max_attempts} attempts"
        )

    def _ttl_for(self, data: ConversationContextCreate) -> timedelta:
        if data.ttl_seconds:
            return timedelta(seconds=data.ttl_seconds)
        if data.context_type == ContextType.DISAMBIGUATION:
            return timedelta(hours=self.settings.disambiguation_ttl_hours)
        return timedelta(days=self.settings.default_context_ttl_days)

    def _reference_id_taken(self, reference_id: str) -> bool:
        return (
            self.db.query(ConversationContext.id)
            .filter(ConversationContext.reference_id == reference_id)
            .first()
            is not None
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_context(
        self, context_id: UUID, user_id: Optional[UUID] = None
    ) -> Optional[ConversationContext]:
        """Fetch by id in any status; when user_id is given, only the owner's."""
        query = self.db.query(ConversationContext).filter(
            ConversationContext.id == context_id
        )
        if user_id is not None:
            query = query.filter(ConversationContext.user_id == user_id)
        return query.first()

    def get_by_reference_id(
        self, reference_id: str, user_id: UUID
    ) -> Optional[ConversationContext]:
        """Exact, owner-scoped lookup in any status (callers check openness)."""
        return (
            self.db.query(ConversationContext)
            .filter(
                ConversationContext.reference_id == reference_id,
                ConversationContext.user_id == user_id,
            )
            .first()
        )

    def find_active_by_user(
        self,
        user_id: UUID,
        window: Optional[timedelta] = None,
        context_types: Optional[Collection[str]] = None,
        context_ids: Optional[Collection[UUID]] = None,
        statuses: Collection[str] = OPEN_STATUSES,
        now: Optional[datetime] = None,
    ) -> List[ConversationContext]:
        """
        Open, unexpired contexts for a user, most recently updated first.

        window limits results to contexts updated within that period;
        context_types, context_ids and statuses (a subset of the open
        statuses) further narrow the candidate pool.
        """
        return self.active_query(
            user_id,
            window=window,
            context_types=context_types,
            context_ids=context_ids,
            statuses=statuses,
            now=now,
        ).all()

    def active_query(
        self,
        user_id: UUID,
        window: Optional[timedelta] = None,
        context_types: Optional[Collection[str]] = None,
        context_ids: Optional[Collection[UUID]] = None,
        statuses: Collection[str] = OPEN_STATUSES,
        now: Optional[datetime] = None,
    ) -> Query[ConversationContext]:
        """Query behind find_active_by_user (for pagination)."""
        now = now or datetime.now(timezone.utc)
        query = self.db.query(ConversationContext).filter(
            ConversationContext.user_id == user_id,
            ConversationContext.status.in_(
                [str(s) for s in statuses if s in OPEN_STATUSES]
            ),
            ConversationContext.expires_at > now,
        )
        if window is not None:
            query = query.filter(ConversationContext.updated_at >= now - window)
        if context_types is not None:
            query = query.filter(
                ConversationContext.context_type.in_([str(t) for t in context_types])
            )
        if context_ids is not None:
            query = query.filter(ConversationContext.id.in_(list(context_ids)))
        return query.order_by(
            ConversationContext.updated_at.desc(),
            ConversationContext.reference_id.asc(),
        )

    @staticmethod
    def is_open(context: ConversationContext, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return context.status in OPEN_STATUSES and as_utc(context.expires_at) > now

    def pending_choice_ids(
        self, user_id: UUID, now: Optional[datetime] = None
    ) -> set[UUID]:
        """Ids of the contexts listed by the user's open clarifications."""
        pending: set[UUID] = set()
        for clarification in self.find_active_by_user(
            user_id, context_types=[ContextType.DISAMBIGUATION], now=now
        ):
            pending.update(
                choice.context_id for choice in self.listed_choices(clarification)
            )
        return pending

    @staticmethod
    def listed_choices(
        clarification: ConversationContext,
    ) -> List[DisambiguationChoice]:
        """Choices offered by a clarification context; empty when unreadable."""
        try:
            data = parse_context_data(
                clarification.context_type, clarification.context_data
            )
        except ValidationError:
            logger.warning(
                "Ignoring malformed clarification data on context %s",
                clarification.reference_id,
            )
            return []
        return list(data.choices)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        context_id: UUID,
        expected_status: ContextStatus | str,
        new_status: ContextStatus | str,
        now: Optional[datetime] = None,
    ) -> ConversationContext:
        """
        Compare-and-set status change as a single conditional UPDATE.

        Raises ClaimConflictError when the row is no longer in expected_status
        (or, for non-expiry targets, has passed its TTL).
        """
        expected = ContextStatus(expected_status)
        target = ContextStatus(new_status)
        if target not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidStatusTransitionError(expected.value, target.value)

        now = now or datetime.now(timezone.utc)
        values: dict = {
            ConversationContext.status: target.value,
            ConversationContext.updated_at: now,
        }
        if target == ContextStatus.CONSUMED:
            values[ConversationContext.consumed_at] = now

        query = self.db.query(ConversationContext).filter(
            ConversationContext.id == context_id,
            ConversationContext.status == expected.value,
        )
        if target != ContextStatus.EXPIRED:
            query = query.filter(ConversationContext.expires_at > now)

        updated = query.update(values, synchronize_session=False)
        self.db.commit()
        if updated != 1:
            raise ClaimConflictError(context_id, expected.value)

        context = self.get_context(context_id)
        logger.debug(
            "Context %s transitioned %s -> %s", context_id, expected, target
        )
        return context

    def claim(
        self,
        context_id: UUID,
        expected_status: ContextStatus | str,
        now: Optional[datetime] = None,
    ) -> ConversationContext:
        """Exclusively consume a context; exactly one concurrent caller succeeds."""
        return self.transition(context_id, expected_status, ContextStatus.CONSUMED, now)

    def mark_awaiting_disambiguation(
        self, context_id: UUID, now: Optional[datetime] = None
    ) -> bool:
        """Move an active context to awaiting_disambiguation; False if it moved on."""
        try:
            self.transition(
                context_id,
                ContextStatus.ACTIVE,
                ContextStatus.AWAITING_DISAMBIGUATION,
                now,
            )
        except ClaimConflictError:
            return False
        return True

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Mark past-TTL open contexts expired. Cleanup only; reads never rely on it."""
        now = now or datetime.now(timezone.utc)
        expired = (
            self.db.query(ConversationContext)
            .filter(
                ConversationContext.status.in_([s.value for s in OPEN_STATUSES]),
                ConversationContext.expires_at <= now,
            )
            .update(
                {
                    ConversationContext.status: ContextStatus.EXPIRED.value,
                    ConversationContext.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        if expired:
            CONTEXTS_EXPIRED_TOTAL.inc(expired)
            logger.info("Expired %d conversation contexts", expired)
        else:
            logger.debug("Expiry sweep found nothing to expire")
        return expired
