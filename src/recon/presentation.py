"""
Result presentation helpers for the reconciliation table.

Substring search and status facets operate on the records already loaded
for the current page; they never touch the store.
"""
from typing import Dict, Iterable, List, Optional

import config
from recon.models import OrderRecord

# Fields the free-text box matches against
TEXT_SEARCH_FIELDS = ('OrderNumber', 'SalesDocument', 'BatchNumber', 'Material Number', 'ClubName')


def status_matches(status: str, status_filter: str) -> bool:
    """Apply one status facet to a record's Status text."""
    status = (status or '').lower()
    if status_filter == 'Shipped':
        return 'shipped' in status
    if status_filter == 'Canceled':
        return 'canceled' in status
    if status_filter == 'Not shipped':
        return 'shipped' not in status
    if status_filter == 'Duplicate':
        return 'duplicate' in status
    if status_filter == 'PA':
        return 'pa' in status
    return status_filter.lower() in status


def check_status_filters(status_filters: Optional[Iterable[str]]) -> List[str]:
    """
    Validate facet names against the configured status options.

    Raises:
        ValueError: A facet that is not one of ``config.STATUS_OPTIONS``.
    """
    facets = [f.strip() for f in (status_filters or []) if f and f.strip()]
    unknown = [f for f in facets if f not in config.STATUS_OPTIONS]
    if unknown:
        raise ValueError(
            f"Unknown status filter: {', '.join(unknown)}. "
            f"Choose from: {', '.join(config.STATUS_OPTIONS)}"
        )
    return facets


def filter_records(
    records: Iterable[OrderRecord],
    search_term: str = '',
    status_filters: Optional[Iterable[str]] = None,
) -> List[OrderRecord]:
    """
    Keep records matching the search term and any of the selected statuses.

    Facets are OR-ed together, then AND-ed with the search term. An empty
    search term or no facets means no constraint from that side.
    """
    term = (search_term or '').strip().lower()
    facets = [f for f in (status_filters or []) if f]

    result = []
    for record in records:
        if term and not any(term in str(record.value_of(name)).lower() for name in TEXT_SEARCH_FIELDS):
            continue
        if facets and not any(status_matches(record.status, f) for f in facets):
            continue
        result.append(record)
    return result


def status_category(status: str) -> str:
    """Badge category for a Status value."""
    s = (status or '').lower()
    if 'shipped' in s:
        return 'shipped'
    if 'canceled' in s:
        return 'canceled'
    if 'duplicate' in s:
        return 'duplicate'
    if 'pa' in s:
        return 'pa'
    return 'neutral'


def to_rows(records: Iterable[OrderRecord]) -> List[Dict[str, str]]:
    """Records in store shape plus their badge category."""
    rows = []
    for record in records:
        row = record.to_store_dict()
        row['statusCategory'] = status_category(record.status)
        rows.append(row)
    return rows
