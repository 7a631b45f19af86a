"""
Tests for the reconciliation record model, value normalization and the
immutable cursor table.
"""
import sys
import unittest
from datetime import date, datetime
from pathlib import Path

# Ensure src/ is on path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / 'src'))

from recon.models import (  # noqa: E402
    Cursor,
    CursorTable,
    OrderRecord,
    QueryDescriptor,
    QueryMode,
    canonical_field,
    clean_value,
    key_order,
    numeric_variant,
    parse_order_date,
    sort_value,
)


class TestCleanValue(unittest.TestCase):

    def test_whole_float_loses_artifact(self):
        self.assertEqual(clean_value(1004360.0), "1004360")
        self.assertEqual(clean_value("1004360.0"), "1004360")

    def test_fractional_float_kept(self):
        self.assertEqual(clean_value(12.5), "12.5")

    def test_none_is_empty(self):
        self.assertEqual(clean_value(None), "")

    def test_dates(self):
        self.assertEqual(clean_value(datetime(2024, 5, 1)), "2024-05-01")
        self.assertEqual(clean_value(date(2024, 5, 1)), "2024-05-01")

    def test_strips_whitespace(self):
        self.assertEqual(clean_value("  SO-1001 "), "SO-1001")


class TestOrderDate(unittest.TestCase):

    def test_us_format(self):
        self.assertEqual(parse_order_date("05/01/2024"), date(2024, 5, 1))

    def test_iso_format(self):
        self.assertEqual(parse_order_date("2024-05-01"), date(2024, 5, 1))

    def test_unparseable(self):
        self.assertIsNone(parse_order_date("next tuesday"))
        self.assertIsNone(parse_order_date(""))

    def test_dates_sort_newer_higher(self):
        self.assertGreater(sort_value("OrderDate", "2024-05-01"), sort_value("OrderDate", "2024-04-01"))
        self.assertGreater(sort_value("OrderDate", "2024-05-01"), sort_value("OrderDate", "04/30/2024"))

    def test_numeric_strings_compare_numerically(self):
        self.assertGreater(sort_value("OrderNumber", "100"), sort_value("OrderNumber", "99"))

    def test_empty_sorts_lowest(self):
        self.assertLess(sort_value("OrderDate", ""), sort_value("OrderDate", "garbage"))


class TestKeyOrder(unittest.TestCase):

    def test_integer_keys_before_strings(self):
        self.assertLess(key_order("999"), key_order("A1"))

    def test_integer_keys_numeric(self):
        self.assertLess(key_order("9"), key_order("10"))

    def test_leading_zero_is_string(self):
        self.assertEqual(key_order("007")[0], 1)


class TestNumericVariant(unittest.TestCase):

    def test_integer_text(self):
        self.assertEqual(numeric_variant("1004360"), 1004360)
        self.assertIsInstance(numeric_variant("1004360"), int)

    def test_fractional_text(self):
        self.assertEqual(numeric_variant("12.5"), 12.5)

    def test_text_that_would_not_survive_as_a_number(self):
        for text in ("007", "12.50", "12.0", "1e3", "-0", "SO-1001", ""):
            self.assertIsNone(numeric_variant(text), text)


class TestOrderRecord(unittest.TestCase):

    def test_store_round_trip_keeps_space_in_material_number(self):
        record = OrderRecord(code="C1", material_number="MAT-9")
        data = record.to_store_dict()
        self.assertEqual(data["Material Number"], "MAT-9")
        self.assertEqual(data["Code"], "C1")

    def test_unknown_store_keys_go_to_extras(self):
        record = OrderRecord.from_store("C1", {"OrderNumber": "SO-1", "Notes": "x"})
        self.assertEqual(record.order_number, "SO-1")
        self.assertEqual(record.extras, {"Notes": "x"})
        self.assertNotIn("Notes", record.to_store_dict())

    def test_value_of_accepts_alias(self):
        record = OrderRecord(code="C1", material_number="MAT-9")
        self.assertEqual(record.value_of("MaterialNumber"), "MAT-9")
        self.assertEqual(canonical_field("Material"), "Material Number")


class TestQueryDescriptor(unittest.TestCase):

    def test_browse_orders_by_date(self):
        query = QueryDescriptor.browse()
        self.assertEqual(query.mode, QueryMode.BROWSE)
        self.assertEqual(query.order_field, "OrderDate")
        self.assertIsNone(query.filter)

    def test_search_orders_by_search_field(self):
        query = QueryDescriptor.search("OrderNumber", "  SO-1001 ")
        self.assertEqual(query.mode, QueryMode.SEARCH)
        self.assertEqual(query.order_field, "OrderNumber")
        self.assertEqual(query.filter.exact_value, "SO-1001")

    def test_search_rejects_empty_text(self):
        with self.assertRaises(ValueError):
            QueryDescriptor.search("OrderNumber", "   ")

    def test_search_rejects_unindexed_field(self):
        with self.assertRaises(ValueError):
            QueryDescriptor.search("ClubName", "x")


class TestCursorTable(unittest.TestCase):

    def test_page_one_always_has_entry(self):
        table = CursorTable()
        self.assertTrue(table.has_entry(1))
        self.assertIsNone(table.get(1))
        self.assertFalse(table.has_entry(2))

    def test_with_cursor_returns_new_table(self):
        table = CursorTable()
        grown = table.with_cursor(2, Cursor("2024-05-01", "C9"))
        self.assertEqual(len(table), 0)
        self.assertEqual(grown.get(2), Cursor("2024-05-01", "C9"))
        self.assertEqual(grown.max_page, 2)

    def test_page_one_cursor_rejected(self):
        with self.assertRaises(ValueError):
            CursorTable().with_cursor(1, Cursor("x", "y"))


if __name__ == '__main__':
    unittest.main()
