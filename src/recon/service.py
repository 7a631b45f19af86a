"""
Reconciliation Service

Single entry point used by the API: wires the order store to the pagination
engine, the search controller and the ingestion pipeline.
"""

from typing import Any, Dict, List, Optional, Tuple

import config
from recon import search_controller
from recon.ingestion import IngestResult, SpreadsheetIngestor
from recon.models import (
    STORE_FIELDS,
    Cursor,
    OrderRecord,
    QueryDescriptor,
    canonical_field,
    clean_value,
    parse_order_date,
)
from recon.pagination import KeysetPaginator, PaginationSession
from recon.presentation import check_status_filters, filter_records
from utils.logger import get_logger


class ReconService:
    """Facade over store, pagination and ingestion."""

    def __init__(self, store, page_size: Optional[int] = None, logger=None):
        self.store = store
        self.logger = logger or get_logger()
        self.page_size = page_size or config.BROWSE_PAGE_SIZE
        self.paginator = KeysetPaginator(store, self.page_size, self.logger)
        self.facet_paginator = KeysetPaginator(store, config.FACET_PAGE_SIZE, self.logger)
        self.ingestor = SpreadsheetIngestor(store, logger=self.logger)

    # ─────────────────────────────────────────────────────────────
    # Stateless listing
    # ─────────────────────────────────────────────────────────────

    def list_page(
        self,
        query: QueryDescriptor,
        cursor: Optional[Cursor] = None,
        page_number: Optional[int] = None,
        page_size: Optional[int] = None,
        search_term: str = '',
        status_filters: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        One page for ``query`` starting at ``cursor``.

        With a search term or status facets the page is read at the facet
        page size and filtered after the fetch. ``has_next`` and
        ``next_cursor`` always describe the unfiltered page, so the walk
        still covers every row.

        Returns:
            {'records': [...], 'has_next': bool, 'next_cursor': Cursor | None,
             'scanned_count': int}

        Raises:
            ValueError: Unknown status facet.
        """
        facets = check_status_filters(status_filters)
        term = (search_term or '').strip()
        faceted = bool(term or facets)

        if page_number is None:
            page_number = 1 if cursor is None else 2
        paginator = self.facet_paginator if faceted else self.paginator
        if page_size and page_size != paginator.page_size:
            paginator = KeysetPaginator(self.store, page_size, self.logger)

        result = paginator.fetch_page(page_number, cursor, query)
        records = list(result.records)
        if faceted:
            records = filter_records(records, term, facets)
        return {
            'records': records,
            'has_next': result.has_next_page,
            'next_cursor': result.next_cursor,
            'scanned_count': len(result.records),
        }

    def view_records(
        self,
        session: PaginationSession,
        search_term: str = '',
        status_filters: Optional[List[str]] = None,
    ) -> List[OrderRecord]:
        """Loaded records of a session narrowed by search term and status facets."""
        facets = check_status_filters(status_filters)
        return filter_records(session.records, search_term, facets)

    # ─────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────

    def open_session(self) -> PaginationSession:
        """New Browse session with page 1 loaded."""
        return self.paginator.go_to_page(PaginationSession.new(), 1)

    def go_to_page(self, session: PaginationSession, page_number: int) -> PaginationSession:
        return self.paginator.go_to_page(session, page_number)

    def submit_search(self, session: PaginationSession, field_name: str, text: str) -> PaginationSession:
        session = search_controller.submit_search(session, field_name, text)
        return self.paginator.go_to_page(session, 1)

    def clear_search(self, session: PaginationSession) -> PaginationSession:
        session = search_controller.clear_search(session)
        return self.paginator.go_to_page(session, 1)

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    def ingest(self, content: bytes, filename: str) -> Tuple[IngestResult, Optional[PaginationSession]]:
        """
        Upsert a spreadsheet, then reload Browse page 1.

        Returns the ingest result and the refreshed session, or None for the
        session when nothing was written.
        """
        result = self.ingestor.ingest(content, filename)
        if result.accepted_count == 0:
            return result, None
        return result, self.open_session()

    def get_order(self, code: str) -> Optional[OrderRecord]:
        data = self.store.get(code)
        if data is None:
            return None
        return OrderRecord.from_store(code, data)

    def update_order(self, code: str, changes: Dict[str, Any]) -> Optional[OrderRecord]:
        """
        Merge field edits into an existing order.

        Returns:
            The updated record, or None if no order has this Code.

        Raises:
            ValueError: Unknown field, an attempt to change Code, or no changes.
        """
        updates = {}
        for name, value in (changes or {}).items():
            store_key = canonical_field(name)
            if store_key not in STORE_FIELDS:
                raise ValueError(f"Unknown order field: {name}")
            if store_key == 'Code':
                if clean_value(value) != code:
                    raise ValueError("Code cannot be changed")
                continue
            updates[store_key] = clean_value(value)

        if not updates:
            raise ValueError("No fields to update")

        if 'OrderDate' in updates:
            parsed = parse_order_date(updates['OrderDate'])
            if parsed is not None:
                updates['OrderDate'] = parsed.isoformat()

        if self.store.get(code) is None:
            return None

        self.store.update(code, updates)
        self.logger.info(f"Order {code} updated: {', '.join(sorted(updates))}", component="Orders")
        return self.get_order(code)
