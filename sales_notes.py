"""Parser for the free-text monthly sales notes kept by the rental desk.

The notes are written by hand (usually on a phone) and look like this::

    📅Sept 2025📅
    3000 : Alex dj 05-11/05-12* 913
    1500 : Maria Unit4B
    💰 Total: 4500

A calendar-emoji line opens a reporting month.  Every line below it of the
form ``price : description`` is a sale.  When the description holds a
``DD-DD/DD-DD`` date range closed by ``*`` or ``•`` it is a vehicle rental,
otherwise it is counted as a condo rental.  Summary lines (money bag, ``=``)
and anything without a colon are ignored.

Nothing in here raises on bad input: unreadable lines are skipped and
unreadable prices count as zero in the month totals.
"""

import logging
import re
from dataclasses import dataclass, field
from functools import reduce
from typing import Dict, List, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

TOTAL_MARKER = '💰'

# Whitespace in the notes includes the byte order mark some phones prepend.
_WS = r"[\s\ufeff]"
_TRIM_RE = re.compile(rf"^{_WS}+|{_WS}+$")

# Month header, e.g. "📅Sept 2025📅".  Month token and year are plain ASCII
# letters and digits.
MONTH_HEADER_RE = re.compile(rf"📅{_WS}*([A-Za-z0-9_]+){_WS}+([0-9]{{4}}){_WS}*📅")

# Vehicle booking range "05-11/05-12" followed by "*" or "•".
DATE_RANGE_RE = re.compile(r'([0-9]{2}-[0-9]{2}/[0-9]{2}-[0-9]{2})[*•]')

# Leading integer part of a price once separators have been removed.
_PRICE_PREFIX_RE = re.compile(r'[\s\ufeff]*([+-]?\d+(?:[eE][+-]?\d+)?)', re.ASCII)

MONTH_ABBREVIATIONS: Dict[str, str] = {
    'january': 'Jan',
    'february': 'Feb',
    'march': 'Mar',
    'april': 'Apr',
    'may': 'May',
    'june': 'Jun',
    'july': 'Jul',
    'august': 'Aug',
    'september': 'Sep',
    'sept': 'Sep',
    'october': 'Oct',
    'november': 'Nov',
    'december': 'Dec',
    'jan': 'Jan',
    'feb': 'Feb',
    'mar': 'Mar',
    'apr': 'Apr',
    'jun': 'Jun',
    'jul': 'Jul',
    'aug': 'Aug',
    'sep': 'Sep',
    'oct': 'Oct',
    'nov': 'Nov',
    'dec': 'Dec',
}

MONTH_NUMBERS: Dict[str, int] = {
    abbr: idx for idx, abbr in enumerate(
        ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
         'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec'], start=1)
}

VEHICLE = 'vehicle'
CONDO = 'condo'
ENTRY_TYPES = (VEHICLE, CONDO)


@dataclass(frozen=True)
class SalesEntry:
    """One sale line from the notes."""
    price: str
    customer: str
    type: str
    vehicle: str = ''
    date_range: str = ''
    raw_line: str = ''

    def __post_init__(self):
        if self.type not in ENTRY_TYPES:
            raise ValueError(f"Unknown sales entry type: {self.type!r}")

    @property
    def amount(self) -> float:
        return parse_price(self.price)

    def to_dict(self) -> dict:
        return {
            'price': self.price,
            'customer': self.customer,
            'dateRange': self.date_range,
            'vehicle': self.vehicle,
            'rawLine': self.raw_line,
            'type': self.type,
        }

    @classmethod
    def from_dict(cls, data: dict, entry_type: Optional[str] = None) -> 'SalesEntry':
        """Rebuild an entry from its JSON form.  Missing fields default to ''."""
        return cls(
            price=str(data.get('price') or ''),
            customer=str(data.get('customer') or ''),
            type=data.get('type') or entry_type or CONDO,
            vehicle=str(data.get('vehicle') or ''),
            date_range=str(data.get('dateRange') or ''),
            raw_line=str(data.get('rawLine') or ''),
        )


@dataclass
class MonthData:
    """Sales for one reporting month, split by category, with totals."""
    month: str
    year: str
    vehicles: List[SalesEntry] = field(default_factory=list)
    condos: List[SalesEntry] = field(default_factory=list)
    total_vehicles: float = 0.0
    total_condos: float = 0.0

    @property
    def key(self) -> str:
        """History key, e.g. ``2025-Sep``."""
        return f"{self.year}-{self.month}"

    def to_dict(self) -> dict:
        return {
            'month': self.month,
            'year': self.year,
            'vehicles': [e.to_dict() for e in self.vehicles],
            'condos': [e.to_dict() for e in self.condos],
            'totalVehicles': self.total_vehicles,
            'totalCondos': self.total_condos,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MonthData':
        """
        Rebuild a month from its JSON form.  Entry lists that are not lists,
        and entries that are not objects, are dropped.  An entry whose
        ``type`` is not a known category raises ValueError.
        """
        vehicles = [SalesEntry.from_dict(e, VEHICLE) for e in _entry_dicts(data.get('vehicles'))]
        condos = [SalesEntry.from_dict(e, CONDO) for e in _entry_dicts(data.get('condos'))]
        return cls(
            month=str(data.get('month') or ''),
            year=str(data.get('year') or ''),
            vehicles=vehicles,
            condos=condos,
            total_vehicles=_coerce_total(data.get('totalVehicles'), vehicles),
            total_condos=_coerce_total(data.get('totalCondos'), condos),
        )


# ---------------------------------------------------------------------------
# Helpers

def parse_price(price) -> float:
    """
    Turn a price token such as ``"3,000"`` or ``"1.500"`` into a number.
    Commas and periods are thousands separators in the notes and are
    removed first.  Anything that does not start with digits counts as 0.
    """
    if price is None:
        return 0.0
    cleaned = str(price).replace(',', '').replace('.', '')
    match = _PRICE_PREFIX_RE.match(cleaned)
    if not match:
        return 0.0
    try:
        return float(match.group(1))
    except (ValueError, OverflowError):
        return 0.0


def sum_prices(entries) -> float:
    return sum(e.amount for e in entries)


def normalize_month(token: str) -> str:
    """Map a month name or abbreviation to "Jan".."Dec"; unknown tokens pass through."""
    return MONTH_ABBREVIATIONS.get(token.lower(), token)


def month_number(month: str) -> Optional[int]:
    """Return 1..12 for a month token, or None if it is not a known month."""
    if not month:
        return None
    return MONTH_NUMBERS.get(normalize_month(month))


def _trim(text: str) -> str:
    return _TRIM_RE.sub('', text)


def _entry_dicts(value) -> list:
    if not isinstance(value, list):
        return []
    return [e for e in value if isinstance(e, dict)]


def _coerce_total(value, entries) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return sum_prices(entries)


# ---------------------------------------------------------------------------
# Line parsing

def parse_entry_line(line: str) -> Optional[SalesEntry]:
    """
    Parse a single ``price : description`` line.  Returns None for summary
    and decoration lines (money bag, ``=``, no colon).
    """
    if TOTAL_MARKER in line or '=' in line or ':' not in line:
        return None

    price, _, rest = line.partition(':')
    price = _trim(price)
    rest = _trim(rest)

    match = DATE_RANGE_RE.search(rest)
    if match:
        return SalesEntry(
            price=price,
            customer=_trim(rest[:match.start()]),
            type=VEHICLE,
            vehicle=_trim(rest[match.end():]),
            date_range=match.group(1),
            raw_line=line,
        )

    # No booking range: everything but the last word is the customer and the
    # last word is the unit.  A single word is the customer on its own.
    words = re.split(rf"{_WS}+", rest)
    customer = ' '.join(words[:-1]) or words[0]
    unit = words[-1] if words[-1] != customer else ''
    return SalesEntry(price=price, customer=customer, type=CONDO,
                      vehicle=unit, raw_line=line)


# The fold threads cons cells, ``(item, previous)``, so every step is O(1)
# and nothing is copied; each chain is reversed once when a month closes.
_Chain = Optional[Tuple[object, object]]


def _unwind(chain: _Chain) -> list:
    items = []
    while chain is not None:
        item, chain = chain
        items.append(item)
    items.reverse()
    return items


class _ActiveMonth(NamedTuple):
    month: str
    year: str
    vehicles: _Chain = None
    condos: _Chain = None

    def add(self, entry: SalesEntry) -> '_ActiveMonth':
        if entry.type == VEHICLE:
            return self._replace(vehicles=(entry, self.vehicles))
        return self._replace(condos=(entry, self.condos))

    def has_entries(self) -> bool:
        return self.vehicles is not None or self.condos is not None

    def finalize(self) -> MonthData:
        vehicles = _unwind(self.vehicles)
        condos = _unwind(self.condos)
        return MonthData(
            month=self.month,
            year=self.year,
            vehicles=vehicles,
            condos=condos,
            total_vehicles=sum_prices(vehicles),
            total_condos=sum_prices(condos),
        )


class _ParseState(NamedTuple):
    output: _Chain = None
    active: Optional[_ActiveMonth] = None

    def flush(self) -> _Chain:
        """Output chain with the active month added, if it has any entries."""
        if self.active is None or not self.active.has_entries():
            return self.output
        return (self.active.finalize(), self.output)


def _step(state: _ParseState, line: str) -> _ParseState:
    header = MONTH_HEADER_RE.search(line)
    if header:
        month = normalize_month(header.group(1))
        return _ParseState(output=state.flush(),
                           active=_ActiveMonth(month=month, year=header.group(2)))

    entry = parse_entry_line(line)
    if entry is None:
        logger.debug("Skipping non-entry line: %r", line)
        return state
    if state.active is None:
        logger.debug("Dropping entry before any month header: %r", line)
        return state
    return state._replace(active=state.active.add(entry))


def parse_sales_notes(raw_text: str) -> List[MonthData]:
    """
    Parse a sales notes document into a list of months, in the order their
    headers appear.  Months without any entries are left out.
    """
    if not raw_text:
        return []
    lines = [line for line in raw_text.split('\n') if _trim(line)]
    final = reduce(_step, lines, _ParseState())
    return _unwind(final.flush())
