"""
Report Normalizer - Scalar Normalizers

Pure functions that turn noisy report scalars into canonical forms. None of
these raise on bad input; an unparseable value becomes None.
"""
from __future__ import annotations
import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from ...models.canonical import Bureau, SCORE_MIN, SCORE_MAX


# =============================================================================
# CONSTANTS
# =============================================================================

NOT_REPORTED = {"", "-", "--", "—", "–", "N/A", "NA", "NOT REPORTED", "NOTREPORTED", "NOT AVAILABLE"}

MONEY_STRIP_RE = re.compile(r"[^0-9.\-]")
SLASH_DATE_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")
FOUR_DIGIT_YEAR_RE = re.compile(r"\d{4}")
SCORE_TOKEN_RE = re.compile(r"\b(\d{3})\b")
WHITESPACE_RE = re.compile(r"\s+")


# =============================================================================
# TEXT
# =============================================================================

def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace, returning None if empty or 'not reported'."""
    if text is None:
        return None
    text = WHITESPACE_RE.sub(" ", str(text)).strip()
    if text.upper() in NOT_REPORTED:
        return None
    return text


def strip_html(value: Any) -> str:
    """Return the visible text of an HTML fragment (plain strings pass through)."""
    if value is None:
        return ""
    text = str(value)
    if "<" not in text:
        return WHITESPACE_RE.sub(" ", text).strip()
    soup = BeautifulSoup(text, "html.parser")
    return WHITESPACE_RE.sub(" ", soup.get_text(" ")).strip()


def item_text(value: Any) -> str:
    """
    Text of a captured-list item. Items are either plain strings or dicts
    carrying `text` / `html`; anything else is rendered as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return strip_html(value)
    if isinstance(value, Mapping):
        for key in ("text", "html"):
            if value.get(key):
                return strip_html(value[key])
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# MONEY
# =============================================================================

def normalize_money(value: Any) -> Optional[float]:
    """
    "$1,234.56" -> 1234.56, "1234" -> 1234.0, "abc" -> None.

    Everything except digits, '.' and '-' is stripped before parsing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    cleaned = MONEY_STRIP_RE.sub("", str(value))
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number


# =============================================================================
# DATES
# =============================================================================

def _iso_instant(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime("%Y-%m-%dT00:00:00Z")


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a report date to a UTC-midnight ISO instant.

    MM/DD/YYYY is handled explicitly and an invalid day or month in that
    shape is rejected outright ("13/40/2024" -> None). Other shapes fall back
    to dateutil, but only when a four digit year is present so that bare
    numbers and words are not turned into dates.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _iso_instant(value)

    text = clean_text(str(value))
    if not text:
        return None

    match = SLASH_DATE_RE.match(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        try:
            return _iso_instant(datetime(year, month, day))
        except ValueError:
            return None

    if not FOUR_DIGIT_YEAR_RE.search(text):
        return None
    try:
        parsed = date_parser.parse(text, default=datetime(1900, 1, 1))
    except (ValueError, OverflowError):
        return None
    return _iso_instant(parsed)


def iso_to_date(value: Optional[str]):
    """Date part of an ISO instant, for date columns."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


# =============================================================================
# SCORES
# =============================================================================

def parse_score(text: Optional[str]) -> Tuple[str, Optional[int]]:
    """
    Pull (bureau, score) out of a score blurb like "TransUnion 712".

    Bureau and number are found independently. An unknown bureau gives "";
    a number outside 300-850 is discarded, never clamped.
    """
    if not text:
        return "", None
    bureau = Bureau.from_text(text)
    bureau_name = bureau.value if bureau else ""

    match = SCORE_TOKEN_RE.search(text)
    if not match:
        return bureau_name, None
    score = int(match.group(1))
    if score < SCORE_MIN or score > SCORE_MAX:
        return bureau_name, None
    return bureau_name, score


# =============================================================================
# FIELD ALIASES
# =============================================================================

def first_present(row: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Value of the first key in `keys` whose value is not blank."""
    for key in keys:
        if key not in row:
            continue
        value = row[key]
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def map_fields(row: Mapping[str, Any], mappings: Dict[str, Sequence[str]]) -> Dict[str, Any]:
    """Resolve every canonical field from its ordered list of source keys."""
    return {name: first_present(row, keys) for name, keys in mappings.items()}


def unmapped_keys(row: Mapping[str, Any], mappings: Dict[str, Sequence[str]]) -> Iterable[str]:
    known = {key for keys in mappings.values() for key in keys}
    return [key for key in row if key not in known]
