"""Context types, statuses and the lifecycle transitions between them."""

from enum import StrEnum


class ContextType(StrEnum):
    """Reply-expecting interaction kinds; each has its own downstream handler."""

    EMAIL = "email"
    SHOPPING = "shopping"
    APPOINTMENT = "appointment"
    INQUIRY = "inquiry"
    DISAMBIGUATION = "disambiguation"


class ContextStatus(StrEnum):
    """Lifecycle status of a conversation context."""

    ACTIVE = "active"
    AWAITING_DISAMBIGUATION = "awaiting_disambiguation"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class MatchMethod(StrEnum):
    """Which signal produced a match (also recorded on audit events)."""

    REFERENCE_ID = "reference_id"
    REFERENCE_FUZZY = "reference_fuzzy"
    TEMPLATE_PATTERN = "template_pattern"
    TEMPORAL_PROXIMITY = "temporal_proximity"
    DISAMBIGUATION_SELECTION = "disambiguation_selection"
    NONE = "none"


class MarkingFamily(StrEnum):
    """Structural family of a reply form, inferred from its detected marks."""

    LETTERED_OPTIONS = "lettered_options"
    CHECKBOX = "checkbox"


OPEN_STATUSES = frozenset(
    {ContextStatus.ACTIVE, ContextStatus.AWAITING_DISAMBIGUATION}
)

ALLOWED_TRANSITIONS: dict[ContextStatus, frozenset[ContextStatus]] = {
    ContextStatus.ACTIVE: frozenset(
        {
            ContextStatus.AWAITING_DISAMBIGUATION,
            ContextStatus.CONSUMED,
            ContextStatus.EXPIRED,
        }
    ),
    ContextStatus.AWAITING_DISAMBIGUATION: frozenset(
        {ContextStatus.CONSUMED, ContextStatus.EXPIRED}
    ),
    ContextStatus.CONSUMED: frozenset(),
    ContextStatus.EXPIRED: frozenset(),
}

FAMILY_CONTEXT_TYPES: dict[MarkingFamily, frozenset[ContextType]] = {
    MarkingFamily.LETTERED_OPTIONS: frozenset(
        {ContextType.SHOPPING, ContextType.APPOINTMENT, ContextType.DISAMBIGUATION}
    ),
    MarkingFamily.CHECKBOX: frozenset({ContextType.EMAIL, ContextType.INQUIRY}),
}

OPTION_MARKERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
