"""Reading hand-drawn marks and written choices off an inbound page."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from faxlink.constants.context import MarkingFamily
from faxlink.schemas.extraction import Annotation

SELECTION_MARK_TYPES = frozenset({"circle", "checkmark", "checkbox", "underline"})
TICK_MARK_TYPES = frozenset({"checkmark", "checkbox"})

_OPTION_LETTER = re.compile(r"^[\(\[]?([A-Za-z])[\)\].:]?$")
_WRITTEN_CHOICE_LINE = re.compile(r"^\s*[\(\[]?([A-Za-z]|\d{1,2})[\)\].:]?\s*$")
_WRITTEN_CHOICE_PHRASE = re.compile(
    r"\b(?:choice|option|answer|select(?:ion)?)\s*[:#]?\s*[\(\[]?([A-Za-z]|\d{1,2})\b",
    re.IGNORECASE,
)


def confident_marks(
    annotations: Iterable[Annotation], min_confidence: float
) -> list[Annotation]:
    return [a for a in annotations if a.confidence >= min_confidence]


def option_letter(annotation: Annotation) -> Optional[str]:
    """The single option letter a selection mark sits on, if any."""
    if annotation.type not in SELECTION_MARK_TYPES or not annotation.associated_text:
        return None
    match = _OPTION_LETTER.match(annotation.associated_text.strip())
    return match.group(1).upper() if match else None


def selected_letters(
    annotations: Iterable[Annotation], min_confidence: float
) -> list[str]:
    """Distinct marked option letters in page order."""
    letters: list[str] = []
    for annotation in confident_marks(annotations, min_confidence):
        letter = option_letter(annotation)
        if letter and letter not in letters:
            letters.append(letter)
    return letters


def classify_family(
    annotations: Iterable[Annotation], min_confidence: float
) -> Optional[MarkingFamily]:
    """Which reply-form family the confident marks structurally resemble."""
    marks = confident_marks(annotations, min_confidence)
    if any(option_letter(mark) for mark in marks):
        return MarkingFamily.LETTERED_OPTIONS
    if any(mark.type in TICK_MARK_TYPES for mark in marks):
        return MarkingFamily.CHECKBOX
    return None


def written_selection(text: str, markers: Sequence[str]) -> Optional[str]:
    """
    A choice written by hand: a lone letter / 1-based number on its own line,
    or a phrase like "Option B". Returns None unless exactly one marker is named.
    """
    chosen: set[str] = set()
    for line in (text or "").splitlines():
        for pattern in (_WRITTEN_CHOICE_LINE, _WRITTEN_CHOICE_PHRASE):
            for token in pattern.findall(line):
                marker = _to_marker(token, markers)
                if marker:
                    chosen.add(marker)
    return chosen.pop() if len(chosen) == 1 else None


def _to_marker(token: str, markers: Sequence[str]) -> Optional[str]:
    if token.isdigit():
        index = int(token) - 1
        return markers[index] if 0 <= index < len(markers) else None
    token = token.upper()
    return token if token in markers else None
