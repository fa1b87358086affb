"""Command to correlate one inbound document and dispatch the outcome."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from faxlink.config import Settings
from faxlink.core.registry import HandlerRegistry
from faxlink.schemas.correlation import ResolutionOutcome
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.correlation_engine import CorrelationEngine


class ProcessInboundDocumentCommand:
    """
    Command to resolve an inbound document against the user's outstanding
    contexts and hand the result to the registered collaborator: the task
    handler for the claimed context's type, the clarification renderer, or
    the new-request handler.
    """

    def __init__(
        self,
        db: Session,
        registry: HandlerRegistry,
        settings: Optional[Settings] = None,
    ) -> None:
        self.db = db
        self.registry = registry
        self.engine = CorrelationEngine(db, settings)
        self.logger = logging.getLogger(__name__)

    def execute(
        self, extraction: ExtractionResult, now: Optional[datetime] = None
    ) -> ResolutionOutcome:
        """
        Execute correlation for one document.

        Args:
            extraction: The interpreted document
            now: Evaluation time (defaults to the current time)

        Returns:
            ResolutionOutcome: resolved, disambiguation or no_context
        """
        outcome = self.engine.resolve(extraction, now=now)

        if outcome.kind == "resolved":
            self._dispatch_handoff(outcome)
        elif outcome.kind == "disambiguation":
            self._dispatch_clarification(extraction, outcome)
        else:
            self._dispatch_new_request(extraction)
        return outcome

    def _dispatch_handoff(self, outcome: ResolutionOutcome) -> None:
        handoff = outcome.handoff
        handler = self.registry.get_task_handler(handoff.context_type)
        if handler is None:
            self.logger.warning(
                "No task handler registered for %s context %s",
                handoff.context_type,
                handoff.reference_id,
            )
            return
        handler.handle(handoff)

    def _dispatch_clarification(
        self, extraction: ExtractionResult, outcome: ResolutionOutcome
    ) -> None:
        renderer = self.registry.clarification_renderer
        if renderer is None:
            self.logger.warning(
                "No clarification renderer registered; %s not sent",
                outcome.clarification.new_reference_id,
            )
            return
        renderer.render(str(extraction.user_id), outcome.clarification)

    def _dispatch_new_request(self, extraction: ExtractionResult) -> None:
        handler = self.registry.new_request_handler
        if handler is None:
            self.logger.debug(
                "No new-request handler registered for user=%s", extraction.user_id
            )
            return
        handler.handle(extraction)
