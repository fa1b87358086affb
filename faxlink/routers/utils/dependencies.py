from uuid import UUID

from fastapi import Depends, HTTPException, Query
from sqlalchemy.orm import Session

from faxlink.db import get_db
from faxlink.models.conversation_context import ConversationContext
from faxlink.services.conversation_context_service import ConversationContextService


def get_context_by_id(
    context_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> ConversationContext:
    """FastAPI dependency to get a user's context by ID."""
    context = ConversationContextService(db).get_context(context_id, user_id=user_id)
    if context is None:
        raise HTTPException(status_code=404, detail="Context not found")
    return context
