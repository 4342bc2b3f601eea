"""
Calendar date parsing for imported CSV cells.

Applications store dates as ``YYYY-MM-DD`` strings. Cells arrive in whatever
shape the exporting site used, so this module tries cheap exact formats first
and only falls back to pandas inference for the remainder.
"""

import re
import logging
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Optional

import pandas as pd

from tracker.core.config import settings

logger = logging.getLogger(__name__)

FAILED_SAMPLE_LIMIT = 5
SUPPRESSION_NOTICE_EVERY = 100

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ][\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)?$")
_NUMERIC_DATE = re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{2}|\d{4})$")

_failure_stats: dict = {}


def _record_parse_failure(value: Any, context: Optional[str]) -> None:
    """
    Collect failure stats and emit limited logs (sampled warnings + periodic summaries).
    """
    key = context or "default"
    stats = _failure_stats.setdefault(key, {"count": 0, "samples": []})
    stats["count"] += 1
    count = stats["count"]

    if len(stats["samples"]) < FAILED_SAMPLE_LIMIT:
        stats["samples"].append(value)
        logger.warning("Failed to parse date%s value '%s'", f" ({key})" if context else "", value)
        return

    if count == FAILED_SAMPLE_LIMIT + 1 or count % SUPPRESSION_NOTICE_EVERY == 0:
        logger.info(
            "Suppressed additional date parse warnings after %d failures%s; sample values=%s",
            count,
            f" ({key})" if context else "",
            stats["samples"],
        )


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_numeric(first: int, second: int, year: int, dayfirst_default: bool) -> Optional[date]:
    if year < 100:
        year += 2000

    # Decide whether day-first is more plausible
    if first > 12 and second <= 12:
        dayfirst = True
    elif second > 12 and first <= 12:
        dayfirst = False
    else:
        dayfirst = dayfirst_default

    if dayfirst:
        return _safe_date(year, second, first) or _safe_date(year, first, second)
    return _safe_date(year, first, second) or _safe_date(year, second, first)


@lru_cache(maxsize=8192)
def _parse_text(text: str, dayfirst_default: bool) -> Optional[str]:
    iso_match = _ISO_DATE.match(text)
    if iso_match:
        parsed = _safe_date(*(int(part) for part in iso_match.groups()))
        return parsed.isoformat() if parsed else None

    numeric_match = _NUMERIC_DATE.match(text)
    if numeric_match:
        first, second, year = (int(part) for part in numeric_match.groups())
        parsed = _parse_numeric(first, second, year, dayfirst_default)
        return parsed.isoformat() if parsed else None

    # Month names, RFC 2822 and the like
    if not any(ch.isdigit() for ch in text):
        return None
    try:
        stamp = pd.to_datetime(text, dayfirst=dayfirst_default, errors="raise")
    except (ValueError, OverflowError, TypeError):
        return None
    if pd.isna(stamp):
        return None
    return stamp.date().isoformat()


def parse_flexible_date(value: Any, *, log_context: Optional[str] = None, log_failures: bool = True) -> Optional[str]:
    """
    Parse a date value from various formats and return a ``YYYY-MM-DD`` string.

    Supports formats:
    - ISO 8601: "2024-09-04" or "2024-09-04T23:09:18Z"
    - DD/MM/YYYY and MM/DD/YYYY (ambiguous values follow ``date_default_dayfirst``)
    - Anything else pandas can infer, e.g. "Jan 5, 2024"

    Args:
        value: Raw cell value
        log_context: Label used to group failure logs (usually the target field)
        log_failures: Emit sampled warnings for values that cannot be parsed

    Returns:
        ISO calendar date, or None if the value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None

    parsed = _parse_text(text, settings.date_default_dayfirst)
    if parsed is None and log_failures:
        _record_parse_failure(text, log_context)
    return parsed
