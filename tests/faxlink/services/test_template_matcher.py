"""Tests for TemplateMatcher."""

from faxlink.constants.context import ContextType, MatchMethod
from faxlink.schemas.correlation import MatchStatus
from faxlink.schemas.extraction import Annotation, BoundingBox
from faxlink.services.conversation_context_service import ConversationContextService
from faxlink.services.template_matcher import TemplateMatcher
from tests.fixtures.conversation_context_fixtures import circle, lettered_fingerprint


def _matcher(db):
    return TemplateMatcher(ConversationContextService(db))


def test_no_marks_not_found(db, setup_shopping_context, make_extraction):
    result = _matcher(db).match(make_extraction(text="hello"))
    assert result.status == MatchStatus.NOT_FOUND
    assert result.method == MatchMethod.TEMPLATE_PATTERN


def test_lettered_marks_only_match_selection_forms(
    db, setup_email_context, setup_shopping_context, make_extraction
):
    """A circled letter never correlates with an email reply."""
    result = _matcher(db).match(make_extraction(annotations=[circle("B")]))
    assert result.status == MatchStatus.FOUND
    assert result.best.context_id == setup_shopping_context.id
    assert result.best.context_type == ContextType.SHOPPING
    assert result.selection == ["B"]


def test_checkbox_marks_only_match_email_and_inquiry(
    db, setup_email_context, setup_shopping_context, make_extraction
):
    tick = Annotation(
        type="checkbox",
        bounding_box=BoundingBox(x=0.5, y=0.5, width=0.02, height=0.02),
        associated_text="Yes, send it",
        confidence=0.9,
    )
    result = _matcher(db).match(make_extraction(annotations=[tick]))
    assert result.status == MatchStatus.FOUND
    assert result.best.context_id == setup_email_context.id


def test_two_identical_forms_are_ambiguous(db, setup_user_id, make_context, make_extraction):
    first = make_context(
        setup_user_id, ContextType.SHOPPING, template_fingerprint=lettered_fingerprint("ABC")
    )
    second = make_context(
        setup_user_id,
        ContextType.APPOINTMENT,
        template_fingerprint=lettered_fingerprint("ABC"),
    )
    result = _matcher(db).match(make_extraction(annotations=[circle("A")]))
    assert result.status == MatchStatus.AMBIGUOUS
    assert {c.context_id for c in result.candidates} == {first.id, second.id}


def test_zones_break_the_tie(db, setup_user_id, make_context, make_extraction):
    near = make_context(
        setup_user_id,
        ContextType.SHOPPING,
        template_fingerprint=lettered_fingerprint(
            "ABC", zones=[BoundingBox(x=0.1, y=0.3, width=0.04, height=0.04)]
        ),
    )
    make_context(
        setup_user_id,
        ContextType.APPOINTMENT,
        template_fingerprint=lettered_fingerprint(
            "ABC", zones=[BoundingBox(x=0.8, y=0.8, width=0.04, height=0.04)]
        ),
    )
    result = _matcher(db).match(make_extraction(annotations=[circle("A", x=0.1, y=0.3)]))
    assert result.status == MatchStatus.FOUND
    assert result.best.context_id == near.id
    assert result.best.score == 1.0


def test_letter_outside_form_excludes_candidate(db, setup_shopping_context, make_extraction):
    result = _matcher(db).match(make_extraction(annotations=[circle("E")]))
    assert result.status == MatchStatus.NOT_FOUND


def test_single_weak_candidate_not_found(db, setup_shopping_context, make_extraction):
    """Too many selections with a stray letter: below the acceptance score."""
    result = _matcher(db).match(
        make_extraction(annotations=[circle("A"), circle("E", y=0.6)])
    )
    assert result.status == MatchStatus.NOT_FOUND


def test_low_confidence_marks_ignored(db, setup_shopping_context, make_extraction):
    result = _matcher(db).match(
        make_extraction(annotations=[circle("A", confidence=0.4)])
    )
    assert result.status == MatchStatus.NOT_FOUND


def test_score_weights(db):
    matcher = _matcher(db)
    fingerprint = lettered_fingerprint("AB", max_selections=1)
    marks = [circle("A"), circle("B")]
    # validity 1.0, count fit 1/2, no zones
    assert matcher.score("lettered_options", marks, ["A", "B"], fingerprint) == (
        0.5 * 1.0 + 0.2 * 0.5 + 0.3 * 0.5
    )
