"""Tests for ProcessInboundDocumentCommand dispatch."""

import pytest

from faxlink.commands.process_inbound_document_command import (
    ProcessInboundDocumentCommand,
)
from faxlink.core.registry import HandlerRegistry


class _Recorder:
    def __init__(self, context_type=None):
        self.context_type = context_type
        self.calls = []

    def handle(self, item):
        self.calls.append(item)

    def render(self, user_id, artifact):
        self.calls.append((user_id, artifact))


@pytest.fixture
def registry():
    registry = HandlerRegistry()
    registry.register_task_handler(_Recorder("email"))
    registry.register_task_handler(_Recorder("shopping"))
    registry.set_new_request_handler(_Recorder())
    registry.set_clarification_renderer(_Recorder())
    return registry


def test_resolved_goes_to_type_handler(db, registry, setup_email_context, make_extraction):
    outcome = ProcessInboundDocumentCommand(db, registry).execute(
        make_extraction(text=setup_email_context.reference_id)
    )
    assert outcome.kind == "resolved"
    email = registry.get_task_handler("email")
    assert [h.context_id for h in email.calls] == [setup_email_context.id]
    assert registry.get_task_handler("shopping").calls == []


def test_ambiguous_goes_to_renderer(
    db, registry, setup_user_id, setup_email_context, setup_shopping_context, make_extraction
):
    outcome = ProcessInboundDocumentCommand(db, registry).execute(
        make_extraction(text="fine by me")
    )
    assert outcome.kind == "disambiguation"
    [(user_id, artifact)] = registry.clarification_renderer.calls
    assert user_id == str(setup_user_id)
    assert artifact == outcome.clarification


def test_no_context_goes_to_new_request_handler(db, registry, make_extraction):
    extraction = make_extraction(text="I need a plumber")
    outcome = ProcessInboundDocumentCommand(db, registry).execute(extraction)
    assert outcome.kind == "no_context"
    assert registry.new_request_handler.calls == [extraction]


def test_missing_handler_is_not_fatal(db, setup_email_context, make_extraction):
    outcome = ProcessInboundDocumentCommand(db, HandlerRegistry()).execute(
        make_extraction(text=setup_email_context.reference_id)
    )
    assert outcome.kind == "resolved"


def test_duplicate_task_handler_rejected():
    registry = HandlerRegistry()
    registry.register_task_handler(_Recorder("email"))
    with pytest.raises(ValueError, match="already registered"):
        registry.register_task_handler(_Recorder("email"))
