"""Tests for DisambiguationService."""

from datetime import datetime, timedelta, timezone

import pytest

from faxlink.constants.context import ContextStatus, ContextType, MatchMethod
from faxlink.schemas.correlation import MatchCandidate
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.services.disambiguation_service import DisambiguationService
from tests.fixtures.conversation_context_fixtures import circle


def _service(db):
    return DisambiguationService(ConversationContextService(db))


def test_issue_lists_candidates_and_parks_them(
    db, setup_user_id, setup_email_context, setup_shopping_context
):
    svc = _service(db)
    candidates = [
        MatchCandidate.from_context(setup_email_context),
        MatchCandidate.from_context(setup_shopping_context),
    ]
    clarification, artifact = svc.issue(
        setup_user_id, candidates, MatchMethod.TEMPORAL_PROXIMITY
    )

    assert clarification.context_type == ContextType.DISAMBIGUATION
    assert clarification.status == ContextStatus.ACTIVE
    assert artifact.new_reference_id == clarification.reference_id
    assert [c.marker for c in artifact.candidates] == ["A", "B"]
    assert setup_email_context.reference_id in artifact.candidates[0].descriptor
    assert "Shopping order" in artifact.candidates[1].descriptor
    assert clarification.reference_id in artifact.question
    assert clarification.template_fingerprint["option_markers"] == ["A", "B"]

    data = svc.read_choices(clarification)
    assert [c.context_id for c in data.choices] == [
        setup_email_context.id,
        setup_shopping_context.id,
    ]
    assert data.source_method == MatchMethod.TEMPORAL_PROXIMITY

    db.expire_all()
    contexts = ConversationContextService(db)
    for context_id in (setup_email_context.id, setup_shopping_context.id):
        assert contexts.get_context(context_id).status == (
            ContextStatus.AWAITING_DISAMBIGUATION
        )


def test_issue_without_open_candidates_raises(db, setup_user_id, setup_email_context):
    candidate = MatchCandidate.from_context(setup_email_context)
    ConversationContextService(db).claim(setup_email_context.id, ContextStatus.ACTIVE)
    with pytest.raises(ValueError):
        _service(db).issue(setup_user_id, [candidate], MatchMethod.TEMPORAL_PROXIMITY)


def test_describe_age(db, setup_user_id, make_context):
    now = datetime.now(timezone.utc)
    svc = _service(db)
    today = make_context(setup_user_id, summary="Question about rent", now=now)
    older = make_context(setup_user_id, now=now - timedelta(days=3, hours=1))

    assert svc.describe(today, now) == (
        f"Question about rent (today, Ref: {today.reference_id})"
    )
    assert svc.describe(older, now) == (
        f"Email reply (3 days ago, Ref: {older.reference_id})"
    )


def test_select_reads_circled_or_written_choice(
    db, setup_user_id, setup_email_context, setup_shopping_context, make_extraction
):
    svc = _service(db)
    clarification, _ = svc.issue(
        setup_user_id,
        [
            MatchCandidate.from_context(setup_email_context),
            MatchCandidate.from_context(setup_shopping_context),
        ],
        MatchMethod.TEMPORAL_PROXIMITY,
    )

    circled = svc.select(clarification, make_extraction(annotations=[circle("B")]))
    assert circled.context_id == setup_shopping_context.id

    written = svc.select(clarification, make_extraction(text="1"))
    assert written.context_id == setup_email_context.id

    assert svc.select(
        clarification, make_extraction(annotations=[circle("A"), circle("B")])
    ) is None
    assert svc.select(clarification, make_extraction(annotations=[circle("C")])) is None
    assert svc.select(clarification, make_extraction(text="not sure")) is None
