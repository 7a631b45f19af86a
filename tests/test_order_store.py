"""
Firebase order store tests (mocked)
===================================

These tests verify that:
- range_query returns the newest children in ascending store order.
- The inclusive (value, key) bound drops ties above the cursor key, widening
  the request when ties crowd out older rows.
- Missing-index failures become MissingIndexError naming the field.
- Multi-path upserts land at <orders path>/<Code>.

All tests use the in-memory fake reference from tests/fakes.py.
"""
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))
sys.path.insert(0, str(PROJECT_ROOT / 'tests'))

from firebase_admin import exceptions as firebase_exceptions  # noqa: E402

from fakes import FakeDatabase, make_order, make_store  # noqa: E402
from recon.errors import MissingIndexError, RetrievalError, WriteError  # noqa: E402
from recon.order_store import is_valid_key  # noqa: E402


class TestRangeQuery(unittest.TestCase):

    def setUp(self):
        self.store, self.db = make_store()

    def test_latest_entries_ascending(self):
        self.db.seed([
            make_order("A", "2024-04-01"),
            make_order("B", "2024-05-01"),
            make_order("C", "2024-03-01"),
        ])
        entries = self.store.range_query("OrderDate", limit=2)
        self.assertEqual([k for k, _ in entries], ["A", "B"])

    def test_end_bound_excludes_ties_above_cursor_key(self):
        self.db.seed([make_order(code, "2024-05-01") for code in "ABCDE"])
        entries = self.store.range_query("OrderDate", limit=4, end_value="2024-05-01", end_key="C")
        self.assertEqual([k for k, _ in entries], ["A", "B", "C"])
        # First request was crowded by D and E, so a wider one followed
        limits = [q[4] for q in self.db.queries]
        self.assertEqual(limits[0], 4)
        self.assertGreater(limits[-1], 4)

    def test_end_bound_includes_older_values(self):
        self.db.seed([
            make_order("A", "2024-03-01"),
            make_order("B", "2024-04-01"),
            make_order("C", "2024-05-01"),
        ])
        entries = self.store.range_query("OrderDate", limit=3, end_value="2024-04-01", end_key="B")
        self.assertEqual([k for k, _ in entries], ["A", "B"])

    def test_equal_to_filters(self):
        self.db.seed([
            make_order("A", OrderNumber="SO-1001"),
            make_order("B", OrderNumber="SO-2002"),
            make_order("C", OrderNumber="SO-1001"),
        ])
        entries = self.store.range_query("OrderNumber", limit=10, equal_to="SO-1001")
        self.assertEqual([k for k, _ in entries], ["A", "C"])

    def test_numeric_keys_follow_database_order(self):
        self.db.seed([make_order(code, "2024-05-01") for code in ("9", "10", "11")])
        entries = self.store.range_query("OrderDate", limit=3, end_value="2024-05-01", end_key="10")
        self.assertEqual([k for k, _ in entries], ["9", "10"])

    def test_widening_continues_past_hundreds_of_ties(self):
        self.db.seed([make_order(f"T{i:04d}", "2024-05-01") for i in range(700)])
        entries = self.store.range_query("OrderDate", limit=4, end_value="2024-05-01", end_key="T0010")
        self.assertEqual([k for k, _ in entries], ["T0007", "T0008", "T0009", "T0010"])
        self.assertGreater(self.db.queries[-1][4], 700)

    def test_numeric_text_matches_numeric_children(self):
        self.db.seed([
            make_order("A", SalesDocument=1004360),
            make_order("B", SalesDocument="1004360"),
            make_order("C", SalesDocument="1004361"),
        ])
        entries = self.store.range_query("SalesDocument", limit=10, equal_to="1004360")
        self.assertEqual([k for k, _ in entries], ["A", "B"])
        self.assertEqual([q[3] for q in self.db.queries], ["1004360", 1004360])

    def test_non_numeric_text_runs_one_query(self):
        self.db.seed([make_order("A", OrderNumber="007")])
        entries = self.store.range_query("OrderNumber", limit=10, equal_to="007")
        self.assertEqual([k for k, _ in entries], ["A"])
        self.assertEqual(len(self.db.queries), 1)

    def test_mixed_type_matches_respect_cursor_key(self):
        self.db.seed([
            make_order(code, SalesDocument=1004360 if code in "ACE" else "1004360")
            for code in "ABCDEF"
        ])
        entries = self.store.range_query(
            "SalesDocument", limit=2, end_value="1004360", end_key="D", equal_to="1004360",
        )
        self.assertEqual([k for k, _ in entries], ["C", "D"])

    def test_missing_index_names_field(self):
        self.db.indexed.discard("Material Number")
        with self.assertRaises(MissingIndexError) as ctx:
            self.store.range_query("Material Number", limit=10, equal_to="MAT-1")
        self.assertEqual(ctx.exception.field, "Material Number")
        self.assertIn("Material Number", str(ctx.exception))
        self.assertIn(".indexOn", str(ctx.exception))

    def test_other_failures_are_retrieval_errors(self):
        self.db.fail_reads = firebase_exceptions.UnavailableError("backend down")
        with self.assertRaises(RetrievalError) as ctx:
            self.store.range_query("OrderDate", limit=10)
        self.assertIn("backend down", str(ctx.exception))

    def test_empty_collection(self):
        self.assertEqual(self.store.range_query("OrderDate", limit=10), [])


class TestWrites(unittest.TestCase):

    def setUp(self):
        self.store, self.db = make_store()

    def test_multi_update_writes_under_orders_path(self):
        self.store.multi_update({
            "/order_management/master_recon_file/C1": make_order("C1"),
            "/order_management/master_recon_file/C2": make_order("C2"),
        })
        self.assertEqual(sorted(self.db.orders()), ["C1", "C2"])
        self.assertEqual(len(self.db.updates), 1)

    def test_multi_update_failure_is_write_error(self):
        self.db.fail_writes = firebase_exceptions.PermissionDeniedError("denied")
        with self.assertRaises(WriteError):
            self.store.multi_update({"/order_management/master_recon_file/C1": make_order("C1")})

    def test_update_merges_fields(self):
        self.db.seed([make_order("C1", Status="")])
        self.store.update("C1", {"Status": "Shipped"})
        stored = self.db.orders()["C1"]
        self.assertEqual(stored["Status"], "Shipped")
        self.assertEqual(stored["OrderNumber"], "SO-C1")

    def test_get_missing_returns_none(self):
        self.assertIsNone(self.store.get("nope"))
        self.assertIsNone(self.store.get("bad/key"))

    def test_invalid_keys(self):
        for key in ("", "a.b", "a$b", "a#b", "a[b", "a]b", "a/b"):
            self.assertFalse(is_valid_key(key), key)
        self.assertTrue(is_valid_key("ORD-1001_A"))


class TestCustomPath(unittest.TestCase):

    def test_path_is_configurable(self):
        store, db = make_store(FakeDatabase(), path="/staging/recon/")
        self.assertEqual(store.path, "staging/recon")
        self.assertEqual(store.path_for("C1"), "staging/recon/C1")


if __name__ == '__main__':
    unittest.main()
