"""
Reconciliation Data Models

Pure definitions -- no side effects, no imports of external services.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import config

# Storage key -> attribute name. Storage keys are what the database holds,
# including the space in "Material Number".
STORE_FIELDS: Dict[str, str] = {
    'OrderNumber': 'order_number',
    'SalesDocument': 'sales_document',
    'OrderDate': 'order_date',
    'BatchNumber': 'batch_number',
    'Year': 'year',
    'Material Number': 'material_number',
    'ClubName': 'club_name',
    'OrderType': 'order_type',
    'Status': 'status',
    'CDD': 'cdd',
    'UPSTrackingNumber': 'ups_tracking_number',
    'Code': 'code',
}

# Alternate spellings accepted for the indexed fields in queries
FIELD_ALIASES: Dict[str, str] = {
    'MaterialNumber': 'Material Number',
    'Material': 'Material Number',
}

_INT_KEY = re.compile(r'-?\d{1,10}')

_DATE_FORMATS = (
    '%Y-%m-%d',
    '%m/%d/%Y',
    '%Y/%m/%d',
    '%m-%d-%Y',
    '%d-%b-%Y',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M:%S',
)


def canonical_field(name: str) -> str:
    """Map a query field name to its storage key."""
    name = (name or '').strip()
    return FIELD_ALIASES.get(name, name)


def clean_value(value: Any) -> str:
    """
    Keep IDs as text; remove float artifacts like 1004360.0 -> 1004360.
    """
    if value is None:
        return ''
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat(sep=' ')
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if text.endswith('.0'):
        try:
            number = float(text)
            if number.is_integer():
                text = str(int(number))
        except ValueError:
            pass
    return text


def parse_order_date(value: Any) -> Optional[date]:
    """Parse an OrderDate cell or stored value. Returns None when unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = clean_value(value)
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def key_order(key: str) -> Tuple[int, int, str]:
    """Firebase key ordering: 32-bit integer keys numerically, then strings."""
    if _INT_KEY.fullmatch(key or ''):
        number = int(key)
        if -2 ** 31 <= number < 2 ** 31 and str(number) == key:
            return (0, number, '')
    return (1, 0, key or '')


def _as_number(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


_PLAIN_NUMBER = re.compile(r'-?(0|[1-9]\d*)(\.\d+)?')


def numeric_variant(text: str) -> Optional[Any]:
    """
    The number a spreadsheet cell would have been stored as for ``text``.

    Returns an int or float only when it cleans back to exactly ``text``
    ("1004360" -> 1004360, "12.5" -> 12.5); "007", "1e3" and "12.50" give None.
    """
    if not _PLAIN_NUMBER.fullmatch(text or ''):
        return None
    number = float(text)
    if number.is_integer() and '.' not in text:
        number = int(text)
    if clean_value(number) != text:
        return None
    return number


def sort_value(field_name: str, value: Any) -> Tuple[int, float, str]:
    """
    Comparable key for an order-field value.

    OrderDate compares as a date (unparseable dates sort as oldest),
    numeric text compares numerically, anything else as text. Empty values
    sort below everything.
    """
    text = clean_value(value)
    if not text:
        return (0, 0.0, '')
    if field_name == config.RECENCY_FIELD:
        parsed = parse_order_date(text)
        if parsed is None:
            return (1, 0.0, text)
        return (3, float(parsed.toordinal()), '')
    number = _as_number(text)
    if number is not None:
        return (2, number, '')
    return (3, 0.0, text)


# ---------------------------------------------------------------------------
# Order record
# ---------------------------------------------------------------------------

@dataclass
class OrderRecord:
    """One reconciled order line. ``code`` is the natural key and the storage key."""
    code: str
    order_number: str = ''
    sales_document: str = ''
    order_date: str = ''
    batch_number: str = ''
    year: str = ''
    material_number: str = ''
    club_name: str = ''
    order_type: str = ''
    status: str = ''
    cdd: str = ''
    ups_tracking_number: str = ''

    # Columns outside the canonical set; never written to the store
    extras: Dict[str, Any] = field(default_factory=dict)

    def value_of(self, store_field: str) -> Any:
        """Value of a field by its storage key."""
        attr = STORE_FIELDS.get(canonical_field(store_field))
        if attr is not None:
            return getattr(self, attr)
        return self.extras.get(store_field, '')

    def to_store_dict(self) -> Dict[str, str]:
        """Canonical shape written to the database."""
        return {key: getattr(self, attr) for key, attr in STORE_FIELDS.items()}

    @classmethod
    def from_store(cls, key: str, data: Optional[Dict[str, Any]]) -> 'OrderRecord':
        """Build a record from a database child. The child key is the Code."""
        data = data if isinstance(data, dict) else {}
        values: Dict[str, Any] = {}
        extras: Dict[str, Any] = {}
        for name, raw in data.items():
            attr = STORE_FIELDS.get(name)
            if attr is None:
                extras[name] = raw
            elif attr != 'code':
                values[attr] = clean_value(raw)
        return cls(code=key, extras=extras, **values)


# ---------------------------------------------------------------------------
# Query + cursor models
# ---------------------------------------------------------------------------

class QueryMode(Enum):
    """Which way the collection is walked."""
    BROWSE = 'BROWSE'
    SEARCH = 'SEARCH'


@dataclass(frozen=True)
class SearchFilter:
    field: str
    exact_value: str


@dataclass(frozen=True)
class QueryDescriptor:
    """Index field to walk plus the optional exact-match predicate."""
    mode: QueryMode
    order_field: str
    filter: Optional[SearchFilter] = None

    @classmethod
    def browse(cls) -> 'QueryDescriptor':
        return cls(mode=QueryMode.BROWSE, order_field=config.RECENCY_FIELD)

    @classmethod
    def search(cls, field_name: str, text: str) -> 'QueryDescriptor':
        """
        Exact match on one indexed field. The search field doubles as the
        order field since the store can only order by the field it filters on.
        """
        field_name = canonical_field(field_name)
        if field_name not in config.SEARCHABLE_FIELDS:
            raise ValueError(
                f"Field '{field_name}' is not searchable. "
                f"Choose one of: {', '.join(config.SEARCHABLE_FIELDS)}"
            )
        text = (text or '').strip()
        if not text:
            raise ValueError("Search text must not be empty")
        return cls(
            mode=QueryMode.SEARCH,
            order_field=field_name,
            filter=SearchFilter(field=field_name, exact_value=text),
        )

    @property
    def label(self) -> str:
        if self.filter is None:
            return f"browse by {self.order_field}"
        return f"search {self.filter.field} = '{self.filter.exact_value}'"


@dataclass(frozen=True)
class Cursor:
    """Order-field value and Code of the last record on a page."""
    value: Any
    key: str

    @classmethod
    def from_record(cls, record: OrderRecord, order_field: str) -> 'Cursor':
        return cls(value=record.value_of(order_field), key=record.code)


class CursorTable:
    """
    Page number -> entry Cursor. Page 1 never needs one.

    Immutable: ``with_cursor`` returns a new table.
    """

    def __init__(self, entries: Optional[Dict[int, Cursor]] = None):
        self._entries: Dict[int, Cursor] = dict(entries or {})
        self._entries.pop(1, None)

    def get(self, page_number: int) -> Optional[Cursor]:
        return self._entries.get(page_number)

    def has_entry(self, page_number: int) -> bool:
        return page_number == 1 or page_number in self._entries

    def with_cursor(self, page_number: int, cursor: Cursor) -> 'CursorTable':
        if page_number <= 1:
            raise ValueError("Page 1 has no entry cursor")
        entries = dict(self._entries)
        entries[page_number] = cursor
        return CursorTable(entries)

    @property
    def max_page(self) -> int:
        return max(self._entries, default=1)

    def items(self) -> Iterator[Tuple[int, Cursor]]:
        return iter(sorted(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CursorTable):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"CursorTable({self._entries!r})"


@dataclass(frozen=True)
class PageResult:
    """One fetched page, newest first."""
    page_number: int
    records: Tuple[OrderRecord, ...]
    has_next_page: bool
    cursor_table: CursorTable
    next_cursor: Optional[Cursor] = None

    def to_rows(self) -> List[Dict[str, str]]:
        return [record.to_store_dict() for record in self.records]
