"""Tests for correlation Celery tasks (run in-process)."""

from faxlink.constants.context import ContextStatus
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.tasks.correlation_tasks import (
    process_inbound_document_task,
    sweep_expired_contexts_task,
)


def test_process_inbound_document_task_resolves(db, setup_user_id, setup_email_context):
    result = process_inbound_document_task(
        {
            "user_id": str(setup_user_id),
            "extracted_text": f"Answer for {setup_email_context.reference_id}",
            "annotations": [],
        }
    )
    assert result == "resolved"
    db.expire_all()
    context = ConversationContextService(db).get_context(setup_email_context.id)
    assert context.status == ContextStatus.CONSUMED


def test_process_inbound_document_task_new_request(db, setup_user_id):
    result = process_inbound_document_task(
        {"user_id": str(setup_user_id), "extracted_text": "Please book a taxi"}
    )
    assert result == "no_context"


def test_process_inbound_document_task_invalid_payload(db):
    assert process_inbound_document_task({"user_id": "not-a-uuid"}) is None
    assert process_inbound_document_task({"annotations": "nope"}) is None


def test_sweep_expired_contexts_task(db, setup_expired_context, setup_email_context):
    assert sweep_expired_contexts_task() == 1
    assert sweep_expired_contexts_task() == 0
