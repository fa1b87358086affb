"""Tests for reading marks and written choices."""

from faxlink.constants.context import MarkingFamily
from faxlink.core.markings import (
    classify_family,
    option_letter,
    selected_letters,
    written_selection,
)
from faxlink.schemas.extraction import Annotation, BoundingBox


def _mark(type_, text=None, confidence=0.9):
    return Annotation(
        type=type_,
        bounding_box=BoundingBox(x=0.2, y=0.4, width=0.05, height=0.05),
        associated_text=text,
        confidence=confidence,
    )


def test_option_letter_accepts_decorated_single_letters():
    assert option_letter(_mark("circle", "b")) == "B"
    assert option_letter(_mark("circle", "(C)")) == "C"
    assert option_letter(_mark("underline", "A.")) == "A"


def test_option_letter_rejects_words_and_arrows():
    assert option_letter(_mark("circle", "Yes")) is None
    assert option_letter(_mark("arrow", "A")) is None
    assert option_letter(_mark("circle")) is None


def test_selected_letters_drops_low_confidence_and_duplicates():
    marks = [
        _mark("circle", "B"),
        _mark("circle", "A", confidence=0.3),
        _mark("checkmark", "B"),
        _mark("circle", "D"),
    ]
    assert selected_letters(marks, 0.7) == ["B", "D"]


def test_classify_family():
    assert classify_family([_mark("circle", "A")], 0.7) == MarkingFamily.LETTERED_OPTIONS
    assert classify_family([_mark("checkbox", "Yes")], 0.7) == MarkingFamily.CHECKBOX
    assert classify_family([_mark("arrow", "see above")], 0.7) is None
    assert classify_family([_mark("circle", "A", confidence=0.2)], 0.7) is None
    assert classify_family([], 0.7) is None


def test_written_selection_lone_letter_or_number():
    assert written_selection("Thanks\nB\n", ["A", "B"]) == "B"
    assert written_selection("2", ["A", "B"]) == "B"
    assert written_selection("I choose option a please", ["A", "B"]) == "A"


def test_written_selection_requires_exactly_one_valid_choice():
    assert written_selection("A\nB", ["A", "B"]) is None
    assert written_selection("5", ["A", "B"]) is None
    assert written_selection("Option C", ["A", "B"]) is None
    assert written_selection("No idea which one", ["A", "B"]) is None
    assert written_selection("", ["A", "B"]) is None
