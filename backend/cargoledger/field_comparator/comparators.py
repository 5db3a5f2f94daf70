"""Typed field comparison strategies. Pure functions, no DB or Claude dependency."""

import enum
import re
import string
from dataclasses import dataclass
from datetime import date, datetime

from dateutil import parser as date_parser
from rapidfuzz.distance import Levenshtein


class ComparisonType(str, enum.Enum):
    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    CONTAINS = "contains"
    NUMERIC = "numeric"
    DATE = "date"
    FUZZY = "fuzzy"


FUZZY_THRESHOLD = 0.85
NUMERIC_TOLERANCE_PCT = 0.01

_CURRENCY_RE = re.compile(r"(USD|EUR|INR|GBP|CNY|RS\.?|[$€£₹¥])", re.IGNORECASE)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_PUNCT_TABLE = str.maketrans({c: " " for c in string.punctuation})


@dataclass
class ComparisonResult:
    matches: bool
    message: str | None = None


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        value = ", ".join(str(v) for v in value if v is not None)
    text = str(value).strip()
    return text or None


def parse_number(value) -> float | None:
    """Parse a number permissively: "USD 12,500.00" -> 12500.0, "1 005 KGS" -> 1005.0."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _CURRENCY_RE.sub("", str(value)).replace(",", "")
    text = re.sub(r"(?<=\d)\s+(?=\d)", "", text)
    m = _NUMBER_RE.search(text)
    if not m:
        return None
    return float(m.group())


def parse_date(value) -> date | None:
    """Parse a calendar date. ISO first, then dateutil with day-first ordering."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return date_parser.parse(text, dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def normalize_for_fuzzy(value: str) -> str:
    text = value.lower().translate(_PUNCT_TABLE)
    return " ".join(text.split())


def similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity, 1 - distance / max(len)."""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def compare_exact(a: str, b: str) -> ComparisonResult:
    if a == b:
        return ComparisonResult(True)
    return ComparisonResult(False, "Values differ")


def compare_case_insensitive(a: str, b: str) -> ComparisonResult:
    if a.casefold() == b.casefold():
        return ComparisonResult(True)
    return ComparisonResult(False, "Values differ (case-insensitive)")


def compare_contains(a: str, b: str) -> ComparisonResult:
    fa, fb = a.casefold(), b.casefold()
    if fa in fb or fb in fa:
        return ComparisonResult(True)
    return ComparisonResult(False, "Neither value contains the other")


def compare_numeric(a, b, tolerance_pct: float = NUMERIC_TOLERANCE_PCT) -> ComparisonResult:
    num_a, num_b = parse_number(a), parse_number(b)
    if num_a is None or num_b is None:
        return ComparisonResult(False, "Could not parse numeric values")
    if num_a == 0 and num_b == 0:
        return ComparisonResult(True)
    diff = abs(num_a - num_b)
    allowed = tolerance_pct * max(abs(num_a), abs(num_b))
    if diff <= allowed:
        return ComparisonResult(True)
    pct = diff / max(abs(num_a), abs(num_b)) * 100
    return ComparisonResult(False, f"Numeric difference: {diff:g} ({pct:.1f}%)")


def compare_dates(a, b, tolerance_days: int = 1) -> ComparisonResult:
    date_a, date_b = parse_date(a), parse_date(b)
    if date_a is None or date_b is None:
        return ComparisonResult(False, "Could not parse dates")
    diff_days = abs((date_a - date_b).days)
    if diff_days <= tolerance_days:
        return ComparisonResult(True)
    return ComparisonResult(False, f"Date difference: {diff_days} days")


def compare_fuzzy(a: str, b: str, threshold: float = FUZZY_THRESHOLD) -> ComparisonResult:
    na, nb = normalize_for_fuzzy(a), normalize_for_fuzzy(b)
    if na == nb or na in nb or nb in na:
        return ComparisonResult(True)
    score = similarity(na, nb)
    if score >= threshold:
        return ComparisonResult(True)
    return ComparisonResult(False, f"Similarity: {round(score * 100)}%")


def compare(
    value_a,
    value_b,
    comparison_type: ComparisonType | str,
    *,
    date_tolerance_days: int = 1,
    fuzzy_threshold: float = FUZZY_THRESHOLD,
    numeric_tolerance_pct: float = NUMERIC_TOLERANCE_PCT,
) -> ComparisonResult:
    """Compare two field values with the given strategy.

    Empty strings count as null. Null on both sides is a match; null on
    exactly one side is not.
    """
    comparison_type = ComparisonType(comparison_type)
    text_a, text_b = _as_text(value_a), _as_text(value_b)

    if text_a is None and text_b is None:
        return ComparisonResult(True)
    if text_a is None or text_b is None:
        return ComparisonResult(False, "One value is missing")

    if comparison_type == ComparisonType.EXACT:
        return compare_exact(text_a, text_b)
    if comparison_type == ComparisonType.CASE_INSENSITIVE:
        return compare_case_insensitive(text_a, text_b)
    if comparison_type == ComparisonType.CONTAINS:
        return compare_contains(text_a, text_b)
    if comparison_type == ComparisonType.NUMERIC:
        return compare_numeric(value_a, value_b, tolerance_pct=numeric_tolerance_pct)
    if comparison_type == ComparisonType.DATE:
        return compare_dates(value_a, value_b, tolerance_days=date_tolerance_days)
    return compare_fuzzy(text_a, text_b, threshold=fuzzy_threshold)
