"""
Reference code grammar (PREFIX-YYYY-NNNNNN): generation, parsing, OCR repair.

Codes are printed in the footer of every outbound fax and may come back
handwritten, so parsing has a strict form and a loose, OCR-tolerant form.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

DEFAULT_PREFIX = "FX"
YEAR_DIGITS = 4
SEQUENCE_DIGITS = 6

# Characters OCR commonly returns in place of digits.
OCR_DIGIT_CONFUSIONS = str.maketrans(
    {
        "O": "0",
        "Q": "0",
        "D": "0",
        "I": "1",
        "L": "1",
        "|": "1",
        "Z": "2",
        "S": "5",
        "G": "6",
        "B": "8",
    }
)
_CONFUSABLE = "0-9OQDILZSGB|"
_SEPARATOR = r"\s*[-\u2010-\u2015_.:~]?\s*"
_MIN_LOOSE_DIGITS = 7


def strict_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern[str]:
    return re.compile(
        rf"(?<![A-Z0-9]){re.escape(prefix)}-(\d{{{YEAR_DIGITS}}})-(\d{{{SEQUENCE_DIGITS}}})(?![0-9])",
        re.IGNORECASE,
    )


def loose_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern[str]:
    # The prefix itself is often garbled or dropped; only the body is compared.
    return re.compile(
        rf"(?<![A-Z0-9])(?:[A-Z]{{{len(prefix)}}}{_SEPARATOR})?"
        rf"([{_CONFUSABLE}]{{{YEAR_DIGITS}}}){_SEPARATOR}"
        rf"([{_CONFUSABLE}]{{{SEQUENCE_DIGITS - 1},{SEQUENCE_DIGITS + 1}}})(?![A-Z0-9])",
        re.IGNORECASE,
    )


def generate_reference_id(
    prefix: str = DEFAULT_PREFIX, now: Optional[datetime] = None
) -> str:
    """Return a fresh candidate code; uniqueness is enforced by the store."""
    year = (now or datetime.now(timezone.utc)).year
    sequence = secrets.randbelow(10**SEQUENCE_DIGITS)
    return f"{prefix}-{year:0{YEAR_DIGITS}d}-{sequence:0{SEQUENCE_DIGITS}d}"


def is_valid_reference_id(value: Optional[str], prefix: str = DEFAULT_PREFIX) -> bool:
    if not value:
        return False
    return strict_pattern(prefix).fullmatch(value.strip()) is not None


def canonical(value: str) -> str:
    return value.strip().upper()


def body_of(reference_id: str) -> str:
    """Digits after the prefix (year + sequence) of a well-formed code."""
    return "".join(ch for ch in reference_id.split("-", 1)[-1] if ch.isdigit())


def find_reference_ids(text: str, prefix: str = DEFAULT_PREFIX) -> list[str]:
    """All syntactically valid codes anywhere in text, in order, de-duplicated."""
    found: list[str] = []
    for match in strict_pattern(prefix).finditer(text or ""):
        code = canonical(match.group(0))
        if code not in found:
            found.append(code)
    return found


def find_fuzzy_bodies(text: str, prefix: str = DEFAULT_PREFIX) -> list[str]:
    """OCR-repaired digit bodies of code-like tokens that fail the strict grammar."""
    bodies: list[str] = []
    for match in loose_pattern(prefix).finditer(text or ""):
        raw = (match.group(1) + match.group(2)).upper()
        if sum(ch.isdigit() for ch in raw) < _MIN_LOOSE_DIGITS:
            continue
        body = raw.translate(OCR_DIGIT_CONFUSIONS)
        if body not in bodies:
            bodies.append(body)
    return bodies


@dataclass(frozen=True)
class FuzzyHit:
    reference_id: str
    distance: int


def edit_distance(a: str, b: str, limit: int) -> int:
    """Levenshtein distance, short-circuiting to limit + 1 once it is exceeded."""
    if abs(len(a) - len(b)) > limit:
        return limit + 1
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        if min(current) > limit:
            return limit + 1
        previous = current
    return previous[-1]


def fuzzy_matches(
    bodies: Iterable[str], reference_ids: Iterable[str], max_distance: int
) -> list[FuzzyHit]:
    """Best distance per known code, keeping only those within max_distance."""
    hits: dict[str, int] = {}
    bodies = list(bodies)
    for reference_id in reference_ids:
        known = body_of(reference_id)
        for body in bodies:
            distance = edit_distance(body, known, max_distance)
            if distance <= max_distance and distance < hits.get(
                reference_id, max_distance + 1
            ):
                hits[reference_id] = distance
    return sorted(
        (FuzzyHit(ref, dist) for ref, dist in hits.items()),
        key=lambda hit: (hit.distance, hit.reference_id),
    )
