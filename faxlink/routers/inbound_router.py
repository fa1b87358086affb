"""Inbound API: match (dry run) and resolve interpreted inbound documents."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from faxlink.commands.process_inbound_document_command import (
    ProcessInboundDocumentCommand,
)
from faxlink.core.app_state import state
from faxlink.db import get_db
from faxlink.schemas.correlation import MatchResult, ResolutionOutcome
from faxlink.schemas.extraction import ExtractionResult
from faxlink.services.correlation_engine import CorrelationEngine

router = APIRouter(
    prefix="/inbound",
    tags=["inbound"],
)


@router.post("/match", response_model=MatchResult)
def match_inbound_document(
    extraction: ExtractionResult,
    db: Session = Depends(get_db),
) -> MatchResult:
    """Run the matchers without claiming anything."""
    return CorrelationEngine(db).match(extraction)


@router.post("/resolve", response_model=ResolutionOutcome)
def resolve_inbound_document(
    extraction: ExtractionResult,
    db: Session = Depends(get_db),
) -> ResolutionOutcome:
    """Correlate the document, claim its context and dispatch the outcome."""
    command = ProcessInboundDocumentCommand(db, state.registry)
    return command.execute(extraction)
