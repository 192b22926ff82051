# src/todo_sync/enrichment/normalize.py

"""
Coerce raw enrichment output into the fixed category / duration vocabularies.

Category: exact match only (after trim + lowercase), otherwise "other".

Duration: exact bucket match first ("2 hrs" and "2HRS" both count as "2hrs").
Otherwise the text is read as <quantity> <unit>, converted to minutes and
snapped to the nearest bucket. Quantities above the largest bucket, or text
without a recognizable unit, fall back to FALLBACK_DURATION.
"""

from __future__ import annotations

import logging
import re

from ..tasks.task_models import Category, DurationEstimate

logger = logging.getLogger(__name__)

FALLBACK_DURATION = DurationEstimate.MIN_30

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")

_WORD_NUMBERS = {
    "one": 1.0,
    "two": 2.0,
    "couple": 2.0,
    "three": 3.0,
    "few": 3.0,
    "four": 4.0,
    "five": 5.0,
    "six": 6.0,
    "seven": 7.0,
    "eight": 8.0,
    "ten": 10.0,
    "fifteen": 15.0,
    "twenty": 20.0,
    "thirty": 30.0,
    "forty-five": 45.0,
}

# The first unit mentioned in the text sets the scale.
_UNITS: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"(?<![a-z])min(?:ute)?s?\b"), 1.0),
    (re.compile(r"(?<![a-z])h(?:ou)?rs?\b"), 60.0),
    (re.compile(r"(?<![a-z])days?\b"), 1440.0),
    (re.compile(r"(?<![a-z])(?:weeks?|wks?)\b"), 10080.0),
]

_LARGEST = max(b.minutes for b in DurationEstimate)


def normalize_category(raw: str | None) -> Category:
    s = (raw or "").strip().lower()
    try:
        return Category(s)
    except ValueError:
        if s:
            logger.debug("Unknown category %r -> other", raw)
        return Category.OTHER


def _quantity(text: str) -> float | None:
    m = _NUMBER_RE.search(text)
    qty: float | None = float(m.group(1)) if m else None

    if qty is None:
        words = re.findall(r"[a-z\-]+", text)
        for word in words:
            if word in _WORD_NUMBERS:
                qty = _WORD_NUMBERS[word]
                break
        else:
            # "a week", "an hour"; the article only counts when nothing else does.
            if "a" in words or "an" in words:
                qty = 1.0

    if "and a half" in text:
        qty = (qty or 1.0) + 0.5
    elif "half" in text:
        qty = 0.5 * (qty or 1.0)

    return qty


def _unit_minutes(text: str) -> float | None:
    first: tuple[int, float] | None = None
    for pattern, minutes in _UNITS:
        m = pattern.search(text)
        if m and (first is None or m.start() < first[0]):
            first = (m.start(), minutes)
    return first[1] if first else None


def _nearest_bucket(total_minutes: float) -> DurationEstimate:
    # Ties go to the longer bucket.
    return min(DurationEstimate, key=lambda b: (abs(b.minutes - total_minutes), -b.minutes))


def normalize_duration(raw: str | None) -> DurationEstimate:
    s = (raw or "").strip().lower()
    if not s:
        return FALLBACK_DURATION

    compact = s.replace(" ", "")
    try:
        return DurationEstimate(compact)
    except ValueError:
        pass

    unit = _unit_minutes(s)
    qty = _quantity(s)
    if unit is None or qty is None or qty <= 0:
        logger.debug("Unrecognized duration %r -> %s", raw, FALLBACK_DURATION.value)
        return FALLBACK_DURATION

    total = qty * unit
    if total > _LARGEST:
        logger.debug("Duration %r exceeds largest bucket -> %s", raw, FALLBACK_DURATION.value)
        return FALLBACK_DURATION

    return _nearest_bucket(total)
