"""Errors raised by the correlation engine and the context store."""

from __future__ import annotations

from typing import Optional
from uuid import UUID


class CorrelationError(Exception):
    """Base class for faxlink correlation errors."""


class ClaimConflictError(CorrelationError):
    """The context left its expected status before this caller could claim it."""

    def __init__(self, context_id: UUID, expected_status: Optional[str] = None) -> None:
        self.context_id = context_id
        self.expected_status = expected_status
        super().__init__(
            f"Context {context_id} is no longer claimable"
            + (f" from status {expected_status}" if expected_status else "")
        )


class InvalidStatusTransitionError(CorrelationError):
    """Requested a lifecycle transition the state machine does not allow."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition context from {current} to {target}")


class ReferenceIdExhaustedError(CorrelationError):
    """No unused reference code could be allocated."""
