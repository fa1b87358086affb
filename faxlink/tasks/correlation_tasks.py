"""Celery tasks for inbound document correlation and context expiry."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from faxlink.commands.process_inbound_document_command import (
    ProcessInboundDocumentCommand,
)
from faxlink.core.app_state import state
from faxlink.db import db_manager
from faxlink.infra.celery_app import celery_app
from faxlink.infra.logging_config import get_logger
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.conversation_context_service import ConversationContextService

logger = get_logger("correlation_tasks")


@celery_app.task(name="faxlink.tasks.correlation_tasks.process_inbound_document_task")
def process_inbound_document_task(payload: dict[str, Any]) -> str | None:
    """
    Correlate one interpreted inbound document and dispatch the outcome.
    Returns the outcome kind, or None when the payload is not an extraction.
    """
    try:
        extraction = ExtractionResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "Dropping invalid inbound document payload: %d errors",
            exc.error_count(),
        )
        return None

    with db_manager.db_session() as db:
        outcome = ProcessInboundDocumentCommand(db, state.registry).execute(extraction)
    return outcome.kind


@celery_app.task(name="faxlink.tasks.correlation_tasks.sweep_expired_contexts_task")
def sweep_expired_contexts_task() -> int:
    """Mark every past-TTL open context as expired."""
    with db_manager.db_session() as db:
        return ConversationContextService(db).sweep_expired()
