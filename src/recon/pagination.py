"""
Keyset Pagination Engine

Walks the orders collection newest-first, one page at a time, resuming
each page from the (value, key) cursor left by the previous one. The
boundary row is requested again (limit + 1) and removed locally.

Session state is an immutable snapshot: every transition returns a new
PaginationSession. Each fetch carries the session generation it was issued
under, and results from a superseded generation are discarded.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

import config
from recon.errors import ReconError
from recon.models import (
    Cursor,
    CursorTable,
    OrderRecord,
    PageResult,
    QueryDescriptor,
    key_order,
    sort_value,
)
from utils.logger import get_logger


class SessionState(Enum):
    IDLE = 'IDLE'
    LOADING = 'LOADING'
    LOADED = 'LOADED'
    ERRORED = 'ERRORED'


def sort_descending(records: List[OrderRecord], order_field: str) -> List[OrderRecord]:
    """Newest first; ties broken by Code, descending, matching store key order."""
    return sorted(
        records,
        key=lambda r: (sort_value(order_field, r.value_of(order_field)), key_order(r.code)),
        reverse=True,
    )


def drop_boundary(records: List[OrderRecord], cursor_key: str) -> Tuple[List[OrderRecord], bool]:
    """Remove exactly one record whose Code equals the cursor key."""
    for idx, record in enumerate(records):
        if record.code == cursor_key:
            return records[:idx] + records[idx + 1:], True
    return records, False


class KeysetPaginator:
    """Fetch pages from an order store.

    The store must provide ``range_query(order_by, limit, end_value=None,
    end_key=None, equal_to=None)`` returning (key, child) pairs, as
    FirebaseOrderStore does.
    """

    def __init__(self, store, page_size: Optional[int] = None, logger=None):
        self.store = store
        self.page_size = page_size or config.BROWSE_PAGE_SIZE
        self.logger = logger or get_logger()

    def fetch_page(
        self,
        page_number: int,
        cursor: Optional[Cursor],
        query: QueryDescriptor,
        cursor_table: Optional[CursorTable] = None,
    ) -> PageResult:
        """
        Fetch one page.

        Args:
            page_number: 1-based page number.
            cursor: Entry cursor for the page; None only for page 1.
            query: Order field and optional exact-match predicate.
            cursor_table: Table to extend with the next page's cursor.

        Returns:
            PageResult with records newest first and the updated cursor table.

        Raises:
            MissingIndexError: The store has no index for the order field.
            RetrievalError: Any other store failure.
        """
        if page_number < 1:
            raise ValueError(f"Page number must be >= 1, got {page_number}")
        if (cursor is None) != (page_number == 1):
            raise ValueError("A cursor is required for every page after page 1, and only for those")

        cursor_table = cursor_table if cursor_table is not None else CursorTable()
        limit = self.page_size if cursor is None else self.page_size + 1
        predicate = query.filter

        try:
            entries = self.store.range_query(
                order_by=query.order_field,
                limit=limit,
                end_value=cursor.value if cursor else None,
                end_key=cursor.key if cursor else None,
                equal_to=predicate.exact_value if predicate else None,
            )
        except ReconError as e:
            self.logger.log_error(f"{query.label} page {page_number}", type(e).__name__, str(e))
            raise

        records = sort_descending(
            [OrderRecord.from_store(key, child) for key, child in entries],
            query.order_field,
        )

        if cursor is not None:
            records, removed = drop_boundary(records, cursor.key)
            if not removed:
                # Boundary row changed between fetches; keep the page size
                self.logger.debug(
                    f"{query.label} page {page_number}: boundary {cursor.key} not returned",
                    component="Pagination",
                )
                records = records[:self.page_size]

        has_next_page = len(records) > 0 and len(records) >= self.page_size

        next_cursor = None
        if records:
            next_cursor = Cursor.from_record(records[-1], query.order_field)
            cursor_table = cursor_table.with_cursor(page_number + 1, next_cursor)

        self.logger.log_page_fetch(query.label, page_number, len(records), has_next_page)
        return PageResult(
            page_number=page_number,
            records=tuple(records),
            has_next_page=has_next_page,
            cursor_table=cursor_table,
            next_cursor=next_cursor,
        )

    def execute(self, ticket: 'FetchTicket') -> PageResult:
        """Run the fetch a session issued."""
        return self.fetch_page(ticket.page_number, ticket.cursor, ticket.query, ticket.cursor_table)

    def go_to_page(self, session: 'PaginationSession', page_number: int) -> 'PaginationSession':
        """Begin, run and resolve a fetch in one call. Store errors are kept on the snapshot."""
        session, ticket = session.begin_fetch(page_number)
        if ticket is None:
            return session
        try:
            result = self.execute(ticket)
        except ReconError as e:
            return session.resolve(ticket, error=e)
        return session.resolve(ticket, result=result)


@dataclass(frozen=True)
class FetchTicket:
    """Everything one fetch needs, stamped with the issuing generation."""
    generation: int
    page_number: int
    cursor: Optional[Cursor]
    query: QueryDescriptor
    cursor_table: CursorTable


@dataclass(frozen=True)
class PaginationSession:
    """Snapshot of one pagination session."""
    query: QueryDescriptor
    cursor_table: CursorTable = field(default_factory=CursorTable)
    current_page: int = 1
    state: SessionState = SessionState.IDLE
    records: Tuple[OrderRecord, ...] = ()
    has_next_page: bool = False
    last_page: Optional[int] = None  # known end of data, if reached
    error: Optional[ReconError] = None
    generation: int = 0
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def new(cls, query: Optional[QueryDescriptor] = None) -> 'PaginationSession':
        return cls(query=query or QueryDescriptor.browse())

    def can_go_to(self, page_number: int) -> bool:
        """Page 1 always; later pages only once their entry cursor is known."""
        if page_number == 1:
            return True
        if page_number < 1 or not self.cursor_table.has_entry(page_number):
            return False
        return self.last_page is None or page_number <= self.last_page

    def begin_fetch(self, page_number: int) -> Tuple['PaginationSession', Optional[FetchTicket]]:
        """
        Move to LOADING for ``page_number``.

        Returns the unchanged session and no ticket when the page is not
        navigable yet.
        """
        if not self.can_go_to(page_number):
            return self, None
        generation = self.generation + 1
        ticket = FetchTicket(
            generation=generation,
            page_number=page_number,
            cursor=self.cursor_table.get(page_number),
            query=self.query,
            cursor_table=self.cursor_table,
        )
        return replace(self, state=SessionState.LOADING, generation=generation, error=None), ticket

    def resolve(
        self,
        ticket: FetchTicket,
        result: Optional[PageResult] = None,
        error: Optional[ReconError] = None,
    ) -> 'PaginationSession':
        """Apply a finished fetch. Stale tickets leave the session untouched."""
        if ticket.generation != self.generation:
            return self
        if error is not None:
            # No cursor is registered for a failed fetch
            return replace(self, state=SessionState.ERRORED, error=error)

        last_page = self.last_page
        if not result.has_next_page:
            last_page = result.page_number
        elif last_page is not None and last_page <= result.page_number:
            last_page = None

        return replace(
            self,
            state=SessionState.LOADED,
            current_page=result.page_number,
            records=result.records,
            has_next_page=result.has_next_page,
            cursor_table=result.cursor_table,
            last_page=last_page,
            error=None,
        )

    def reset(self, query: QueryDescriptor) -> 'PaginationSession':
        """
        Switch to ``query``: page 1, empty cursor table, IDLE.

        The generation moves forward so fetches issued for the old query are
        discarded when they land.
        """
        return replace(
            self,
            query=query,
            cursor_table=CursorTable(),
            current_page=1,
            state=SessionState.IDLE,
            records=(),
            has_next_page=False,
            last_page=None,
            error=None,
            generation=self.generation + 1,
        )
