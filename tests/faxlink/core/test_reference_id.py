"""Tests for the reference code grammar."""

from datetime import datetime, timezone

import pytest

from faxlink.core.reference_id import (
    body_of,
    edit_distance,
    find_fuzzy_bodies,
    find_reference_ids,
    fuzzy_matches,
    generate_reference_id,
    is_valid_reference_id,
)


def test_generate_reference_id_has_prefix_year_and_sequence():
    """Generated codes follow PREFIX-YYYY-NNNNNN for the given year."""
    code = generate_reference_id("FX", datetime(2026, 3, 1, tzinfo=timezone.utc))
    assert code.startswith("FX-2026-")
    assert len(code.split("-")[2]) == 6
    assert is_valid_reference_id(code)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("FX-2026-004217", True),
        (" fx-2026-004217 ", True),
        ("FX-2026-04217", False),
        ("FX-26-004217", False),
        ("AB-2026-004217", False),
        ("", False),
        (None, False),
    ],
)
def test_is_valid_reference_id(value, expected):
    assert is_valid_reference_id(value) is expected


def test_find_reference_ids_anywhere_in_text_in_order():
    """Codes are found mid-sentence, uppercased and de-duplicated."""
    text = (
        "Re: order fx-2026-000123 please.\n"
        "Also FX-2026-999999 and again FX-2026-000123."
    )
    assert find_reference_ids(text) == ["FX-2026-000123", "FX-2026-999999"]


def test_find_reference_ids_ignores_longer_digit_runs():
    assert find_reference_ids("FX-2026-0001234") == []
    assert find_reference_ids("XFX-2026-000123") == []


def test_find_fuzzy_bodies_repairs_ocr_confusions():
    """Letters OCR puts in place of digits are mapped back."""
    assert find_fuzzy_bodies("Ref: FX-2O26-0O42I7") == ["2026004217"]
    assert find_fuzzy_bodies("ref F X 2026 OO4217") == ["2026004217"]
    assert find_fuzzy_bodies("ref 2026 - 0042l7") == ["2026004217"]


def test_find_fuzzy_bodies_skips_words():
    """Plain words made of confusable letters are not code bodies."""
    assert find_fuzzy_bodies("GOOD SOBS BOOSIDLOG") == []


def test_body_of():
    assert body_of("FX-2026-004217") == "2026004217"


def test_edit_distance_short_circuits_past_limit():
    assert edit_distance("2026004217", "2026004217", 1) == 0
    assert edit_distance("2026004217", "2026004218", 1) == 1
    assert edit_distance("2026004217", "2026994218", 1) == 2
    assert edit_distance("202600421", "2026004217", 1) == 1


def test_fuzzy_matches_sorted_by_distance_then_code():
    hits = fuzzy_matches(
        ["2026004217"],
        ["FX-2026-004218", "FX-2026-004217", "FX-2026-714217", "FX-2026-004216"],
        max_distance=1,
    )
    assert [(h.reference_id, h.distance) for h in hits] == [
        ("FX-2026-004217", 0),
        ("FX-2026-004216", 1),
        ("FX-2026-004218", 1),
    ]
