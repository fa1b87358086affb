"""Prometheus metrics for correlation outcomes and context lifecycle."""

from prometheus_client import Counter

CORRELATION_OUTCOME_TOTAL = Counter(
    "faxlink_correlation_outcome_total",
    "Inbound documents by correlation outcome and the method that decided it",
    ["method", "outcome"],
)

CONTEXT_CLAIM_CONFLICT_TOTAL = Counter(
    "faxlink_context_claim_conflict_total",
    "Claims lost to a concurrent delivery of the same reply",
)

CONTEXTS_EXPIRED_TOTAL = Counter(
    "faxlink_contexts_expired_total",
    "Contexts transitioned to expired by the sweep",
)
