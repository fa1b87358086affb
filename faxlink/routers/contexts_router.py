"""Contexts API: register outbound contexts, inspect them, run the expiry sweep."""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_pagination import Page, Params
from fastapi_pagination.ext.sqlalchemy import paginate
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from faxlink.db import get_db
from faxlink.exceptions import ReferenceIdExhaustedError
from faxlink.infra.logging_config import get_logger
from faxlink.models.conversation_context import ConversationContext
from faxlink.routers.utils.dependencies import get_context_by_id
from faxlink.schemas.context_data import parse_context_data
from faxlink.schemas.conversation_context import (
    ConversationContextCreate,
    ConversationContextRead,
)
from faxlink.schemas.correlation import CorrelationEventRead
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.services.correlation_event_service import CorrelationEventService

logger = get_logger("contexts")

router = APIRouter(
    prefix="",
    tags=["contexts"],
    responses={404: {"description": "Not found"}},
)


class SweepResponse(BaseModel):
    """Response for a manual expiry sweep."""

    expired: int


@router.post("/contexts", response_model=ConversationContextRead, status_code=201)
def create_context(
    data: ConversationContextCreate,
    db: Session = Depends(get_db),
) -> ConversationContextRead:
    """Register an outbound context and allocate its reference code."""
    try:
        parse_context_data(data.context_type, data.context_data)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=f"context_data does not fit {data.context_type}: {exc.error_count()} errors",
        )
    try:
        context = ConversationContextService(db).create_context(data)
    except ReferenceIdExhaustedError as exc:
        logger.error("Reference code allocation failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc))
    return ConversationContextRead.model_validate(context)


@router.post("/contexts/sweep", response_model=SweepResponse)
def sweep_contexts(db: Session = Depends(get_db)) -> SweepResponse:
    """Expire every past-TTL open context now."""
    expired = ConversationContextService(db).sweep_expired()
    return SweepResponse(expired=expired)


@router.get("/contexts/{context_id}", response_model=ConversationContextRead)
def get_context(
    context: ConversationContext = Depends(get_context_by_id),
) -> ConversationContextRead:
    """Get one of a user's contexts by ID, in any status."""
    return ConversationContextRead.model_validate(context)


@router.get("/users/{user_id}/contexts", response_model=Page[ConversationContextRead])
def list_active_contexts(
    user_id: UUID,
    params: Params = Depends(),
    window_days: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
) -> Page[ConversationContextRead]:
    """List a user's open contexts, most recently updated first."""
    window = timedelta(days=window_days) if window_days else None
    query = ConversationContextService(db).active_query(user_id, window=window)
    return paginate(query, params=params)


@router.get(
    "/users/{user_id}/correlation-events",
    response_model=list[CorrelationEventRead],
)
def list_correlation_events(
    user_id: UUID,
    event_type: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[CorrelationEventRead]:
    """List a user's correlation audit trail, oldest first."""
    events = CorrelationEventService(db).get_events(
        user_id, event_type=event_type, skip=skip, limit=limit
    )
    return [CorrelationEventRead.model_validate(e) for e in events]
