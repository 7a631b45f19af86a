"""
Keyset pagination tests.

Walks an in-memory order collection through the real Firebase store adapter
and checks ordering, boundary de-duplication, next-page detection, cursor
bookkeeping and stale-response handling on session snapshots.
"""
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))
sys.path.insert(0, str(PROJECT_ROOT / 'tests'))

from fakes import make_order, make_store  # noqa: E402
from recon.errors import MissingIndexError, RetrievalError  # noqa: E402
from recon.models import Cursor, CursorTable, QueryDescriptor  # noqa: E402
from recon.pagination import KeysetPaginator, PaginationSession, SessionState  # noqa: E402
from firebase_admin import exceptions as firebase_exceptions  # noqa: E402


def _dates(n):
    """n distinct ISO dates, oldest first."""
    return [f"2024-{1 + i // 28:02d}-{1 + i % 28:02d}" for i in range(n)]


class PaginationTestCase(unittest.TestCase):

    def setUp(self):
        self.store, self.db = make_store()
        self.paginator = KeysetPaginator(self.store, page_size=3, logger=MagicMock())

    def seed_distinct(self, n):
        self.db.seed([make_order(f"C{i:03d}", d) for i, d in enumerate(_dates(n))])

    def walk(self, query):
        """Codes of every page from 1 until has_next_page is False."""
        table, cursor, seen, page_number = CursorTable(), None, [], 1
        while True:
            page = self.paginator.fetch_page(page_number, cursor, query, table)
            seen.extend(r.code for r in page.records)
            if not page.has_next_page:
                return seen
            table = page.cursor_table
            page_number += 1
            cursor = table.get(page_number)


class TestFetchPage(PaginationTestCase):

    def test_first_page_is_newest_first(self):
        self.db.seed([
            make_order("A", "2024-04-01"),
            make_order("B", "2024-05-01"),
            make_order("C", "2024-03-01"),
        ])
        page = self.paginator.fetch_page(1, None, QueryDescriptor.browse())
        self.assertEqual([r.code for r in page.records], ["B", "A", "C"])

    def test_may_precedes_april(self):
        self.db.seed([make_order("X", "2024-04-01"), make_order("Y", "2024-05-01")])
        page = self.paginator.fetch_page(1, None, QueryDescriptor.browse())
        self.assertEqual(page.records[0].order_date, "2024-05-01")
        self.assertEqual(page.records[1].order_date, "2024-04-01")

    def test_short_first_page_has_no_next(self):
        self.seed_distinct(2)
        page = self.paginator.fetch_page(1, None, QueryDescriptor.browse())
        self.assertFalse(page.has_next_page)

    def test_full_first_page_has_next_and_registers_cursor(self):
        self.seed_distinct(7)
        page = self.paginator.fetch_page(1, None, QueryDescriptor.browse())
        self.assertTrue(page.has_next_page)
        last = page.records[-1]
        self.assertEqual(page.cursor_table.get(2), Cursor(last.order_date, last.code))
        self.assertEqual(page.next_cursor, page.cursor_table.get(2))

    def test_cursor_page_excludes_cursor_key(self):
        self.seed_distinct(7)
        query = QueryDescriptor.browse()
        first = self.paginator.fetch_page(1, None, query)
        second = self.paginator.fetch_page(2, first.cursor_table.get(2), query, first.cursor_table)

        cursor_key = first.cursor_table.get(2).key
        self.assertNotIn(cursor_key, [r.code for r in second.records])
        self.assertEqual(len(second.records), 3)
        # Pages do not overlap and keep descending order across the boundary
        self.assertGreater(first.records[-1].order_date, second.records[0].order_date)
        self.assertTrue(second.has_next_page)

    def test_walk_every_page_without_gaps(self):
        self.seed_distinct(8)
        query = QueryDescriptor.browse()
        table, cursor, seen, page_number = CursorTable(), None, [], 1
        while True:
            page = self.paginator.fetch_page(page_number, cursor, query, table)
            seen.extend(r.code for r in page.records)
            if not page.has_next_page:
                break
            table = page.cursor_table
            page_number += 1
            cursor = table.get(page_number)
        self.assertEqual(seen, [f"C{i:03d}" for i in reversed(range(8))])
        self.assertEqual(page_number, 3)

    def test_ties_on_boundary_are_not_skipped_or_repeated(self):
        self.db.seed([make_order(code, "2024-05-01") for code in "ABCDEFG"])
        query = QueryDescriptor.browse()
        first = self.paginator.fetch_page(1, None, query)
        self.assertEqual([r.code for r in first.records], ["G", "F", "E"])
        second = self.paginator.fetch_page(2, first.cursor_table.get(2), query, first.cursor_table)
        self.assertEqual([r.code for r in second.records], ["D", "C", "B"])
        third = self.paginator.fetch_page(3, second.cursor_table.get(3), query, second.cursor_table)
        self.assertEqual([r.code for r in third.records], ["A"])
        self.assertFalse(third.has_next_page)

    def test_exactly_one_page_of_data_then_empty_page(self):
        self.seed_distinct(3)
        query = QueryDescriptor.browse()
        first = self.paginator.fetch_page(1, None, query)
        self.assertTrue(first.has_next_page)
        second = self.paginator.fetch_page(2, first.cursor_table.get(2), query, first.cursor_table)
        self.assertEqual(second.records, ())
        self.assertFalse(second.has_next_page)
        self.assertIsNone(second.cursor_table.get(3))

    def test_missing_boundary_row_keeps_page_size(self):
        self.seed_distinct(7)
        query = QueryDescriptor.browse()
        first = self.paginator.fetch_page(1, None, query)
        cursor = first.cursor_table.get(2)
        # Boundary row disappears between fetches
        del self.db.node(self.store.path)[cursor.key]
        second = self.paginator.fetch_page(2, cursor, query, first.cursor_table)
        self.assertEqual(len(second.records), 3)

    def test_search_applies_exact_match(self):
        self.db.seed([
            make_order("A", "2024-01-01", OrderNumber="SO-1001"),
            make_order("B", "2024-02-01", OrderNumber="SO-2002"),
            make_order("C", "2024-03-01", OrderNumber="SO-1001"),
        ])
        page = self.paginator.fetch_page(1, None, QueryDescriptor.search("OrderNumber", "SO-1001"))
        self.assertEqual(sorted(r.code for r in page.records), ["A", "C"])
        self.assertEqual(self.db.queries[-1][1], "OrderNumber")
        self.assertEqual(self.db.queries[-1][3], "SO-1001")

    def test_cursor_rules(self):
        with self.assertRaises(ValueError):
            self.paginator.fetch_page(2, None, QueryDescriptor.browse())
        with self.assertRaises(ValueError):
            self.paginator.fetch_page(1, Cursor("2024-01-01", "A"), QueryDescriptor.browse())
        with self.assertRaises(ValueError):
            self.paginator.fetch_page(0, None, QueryDescriptor.browse())

    def test_missing_index_propagates(self):
        self.db.indexed.discard("Material Number")
        with self.assertRaises(MissingIndexError) as ctx:
            self.paginator.fetch_page(1, None, QueryDescriptor.search("MaterialNumber", "MAT-1"))
        self.assertIn("Material Number", str(ctx.exception))


class TestLongWalks(PaginationTestCase):
    """Walks where every row ties on the order field and only keys separate pages."""

    def test_search_walks_every_page_once(self):
        self.db.seed(
            [make_order(f"S{i:02d}", _dates(12)[i], OrderNumber="SO-7") for i in range(12)]
            + [make_order(f"X{i:02d}", "2024-06-01", OrderNumber=f"SO-{i}") for i in range(5)]
        )
        seen = self.walk(QueryDescriptor.search("OrderNumber", "SO-7"))
        self.assertEqual(seen, [f"S{i:02d}" for i in reversed(range(12))])

    def test_browse_walk_past_hundreds_of_ties(self):
        self.db.seed([make_order(f"T{i:04d}", "2024-05-01") for i in range(700)])
        seen = self.walk(QueryDescriptor.browse())
        self.assertEqual(len(seen), 700)
        self.assertEqual(seen, [f"T{i:04d}" for i in reversed(range(700))])

    def test_search_walk_past_hundreds_of_matches(self):
        self.db.seed([make_order(f"M{i:04d}", OrderNumber="SO-BULK") for i in range(600)])
        seen = self.walk(QueryDescriptor.search("OrderNumber", "SO-BULK"))
        self.assertEqual(seen, [f"M{i:04d}" for i in reversed(range(600))])

    def test_search_walk_over_text_and_numeric_values(self):
        self.db.seed([
            make_order(f"N{i:02d}", SalesDocument=1004360 if i % 2 else "1004360")
            for i in range(10)
        ])
        seen = self.walk(QueryDescriptor.search("SalesDocument", "1004360"))
        self.assertEqual(seen, [f"N{i:02d}" for i in reversed(range(10))])

    def test_numeric_sales_document_found(self):
        self.db.seed([make_order("A", SalesDocument=1004360)])
        page = self.paginator.fetch_page(1, None, QueryDescriptor.search("SalesDocument", "1004360"))
        self.assertEqual([r.code for r in page.records], ["A"])
        self.assertEqual(page.records[0].sales_document, "1004360")


class TestPaginationSession(PaginationTestCase):

    def test_go_to_page_one_without_cursor(self):
        self.seed_distinct(5)
        session = self.paginator.go_to_page(PaginationSession.new(), 1)
        self.assertEqual(session.state, SessionState.LOADED)
        self.assertEqual(session.current_page, 1)
        self.assertEqual(len(session.records), 3)
        self.assertTrue(session.can_go_to(2))

    def test_unknown_page_rejected_without_fetch(self):
        self.seed_distinct(5)
        session = PaginationSession.new()
        self.assertFalse(session.can_go_to(2))
        after = self.paginator.go_to_page(session, 2)
        self.assertIs(after, session)
        self.assertEqual(self.db.queries, [])

    def test_back_navigation_reuses_cursor(self):
        self.seed_distinct(10)
        session = self.paginator.go_to_page(PaginationSession.new(), 1)
        session = self.paginator.go_to_page(session, 2)
        session = self.paginator.go_to_page(session, 3)
        page_two_cursor = session.cursor_table.get(2)
        session = self.paginator.go_to_page(session, 2)
        self.assertEqual(session.current_page, 2)
        self.assertEqual(session.cursor_table.get(2), page_two_cursor)
        self.assertEqual(self.db.queries[-1][2], page_two_cursor.value)

    def test_last_page_limits_navigation(self):
        self.seed_distinct(4)
        session = self.paginator.go_to_page(PaginationSession.new(), 1)
        session = self.paginator.go_to_page(session, 2)
        self.assertFalse(session.has_next_page)
        self.assertEqual(session.last_page, 2)
        self.assertFalse(session.can_go_to(3))

    def test_failed_fetch_registers_no_cursor(self):
        self.seed_distinct(5)
        self.db.fail_reads = firebase_exceptions.UnavailableError("down")
        session = self.paginator.go_to_page(PaginationSession.new(), 1)
        self.assertEqual(session.state, SessionState.ERRORED)
        self.assertIsInstance(session.error, RetrievalError)
        self.assertEqual(len(session.cursor_table), 0)

    def test_stale_response_is_discarded(self):
        self.seed_distinct(5)
        session = PaginationSession.new()
        session, first_ticket = session.begin_fetch(1)
        session, second_ticket = session.begin_fetch(1)
        stale = self.paginator.execute(first_ticket)

        unchanged = session.resolve(first_ticket, result=stale)
        self.assertIs(unchanged, session)
        self.assertEqual(unchanged.state, SessionState.LOADING)

        applied = session.resolve(second_ticket, result=self.paginator.execute(second_ticket))
        self.assertEqual(applied.state, SessionState.LOADED)

    def test_reset_discards_in_flight_fetch(self):
        self.seed_distinct(5)
        session, ticket = PaginationSession.new().begin_fetch(1)
        session = session.reset(QueryDescriptor.search("OrderNumber", "SO-C001"))
        result = self.paginator.execute(ticket)
        self.assertIs(session.resolve(ticket, result=result), session)


if __name__ == '__main__':
    unittest.main()
