"""Flatten parsed sales months into individual sale records.

Used by the migrate endpoint: each vehicle or condo entry becomes one row
with an amount, a category, a short note and the first day of its month as
the record date.  Rows without a positive amount are dropped.
"""

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from dateutil import parser as date_parser

from sales_notes import CONDO, VEHICLE, month_number

logger = logging.getLogger(__name__)

_COMPACT_DATE_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_COMPACT_DATETIME_RE = re.compile(r'^(\d{4})(\d{2})(\d{2})T\d{6}Z?$')
_NUMBER_RE = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


def to_iso_date(value) -> Optional[str]:
    """
    Convert a date-ish value to ``YYYY-MM-DD``.  Accepts ``date``/``datetime``
    objects, millisecond timestamps, compact ``YYYYMMDD`` and iCal style
    ``YYYYMMDDTHHMMSSZ`` strings, and anything python-dateutil can read.
    Returns None when the value is empty or cannot be read as a date.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    compact = _COMPACT_DATE_RE.match(text) or _COMPACT_DATETIME_RE.match(text)
    if compact:
        y, m, d = compact.groups()
        try:
            return date(int(y), int(m), int(d)).isoformat()
        except ValueError:
            logger.debug("Compact date %r is not a calendar date", value)
            return None

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError) as exc:
        logger.debug("Could not read %r as a date: %s", value, exc)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def month_start(month, year) -> Optional[date]:
    """First day of ``month``/``year`` (e.g. "Sep", "2025"), or None."""
    number = month_number(str(month or ''))
    if number is None:
        return None
    try:
        return date(int(str(year).strip()), number, 1)
    except (TypeError, ValueError):
        return None


def parse_amount(price) -> float:
    """
    Amount of a sale for storage.  Numbers are taken as they are.  In text,
    thousands separators are removed and the remainder must be a plain
    number; anything else gives 0.
    """
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        try:
            amount = float(price)
        except OverflowError:
            return 0.0
        return amount if math.isfinite(amount) else 0.0
    if not isinstance(price, str):
        return 0.0
    cleaned = price.replace(',', '').replace('.', '').strip()
    if not cleaned:
        return 0.0
    if not _NUMBER_RE.match(cleaned):
        return 0.0
    amount = float(cleaned)
    return amount if math.isfinite(amount) else 0.0


def _entry_note(entry: Dict[str, Any], category: str) -> str:
    parts = [entry.get('customer') or '', entry.get('vehicle') or '']
    if category == VEHICLE:
        parts.append(entry.get('dateRange') or '')
    return ' '.join(str(p) for p in parts).strip()


def flatten_months(months: Iterable[Dict[str, Any]],
                   default_date=None) -> List[Dict[str, Any]]:
    """
    Turn serialised ``MonthData`` dicts into sale rows ready for insert.

    Each row has ``amount``, ``category``, ``notes`` and ``created_at`` (an ISO
    date string).  A month whose name or year cannot be read is dated with
    ``default_date``, or today when that is missing too.
    """
    fallback = to_iso_date(default_date) or date.today().isoformat()
    rows = []
    for month_data in months:
        if not isinstance(month_data, dict):
            continue
        start = month_start(month_data.get('month'), month_data.get('year'))
        created_at = start.isoformat() if start else fallback

        for category, key in ((VEHICLE, 'vehicles'), (CONDO, 'condos')):
            for entry in month_data.get(key) or []:
                if not isinstance(entry, dict):
                    continue
                rows.append({
                    'amount': parse_amount(entry.get('price')),
                    'category': category,
                    'notes': _entry_note(entry, category),
                    'created_at': created_at,
                })

    valid = [r for r in rows if r['amount'] > 0]
    if len(valid) != len(rows):
        logger.debug("Dropped %d sale rows without a positive amount", len(rows) - len(valid))
    return valid
