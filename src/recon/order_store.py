"""
Order Store

Firebase Realtime Database access for the master reconciliation node.
Reuses the credential resolution in config.py.

The Admin SDK only exposes a value bound for ``end_at``; the inclusive
(value, key) bound that keyset pagination needs is emulated by widening
``limit_to_last`` past the ties that sort above the cursor key.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin import exceptions as firebase_exceptions

import config
from recon.errors import MissingIndexError, RetrievalError, WriteError
from recon.models import key_order, numeric_variant

# Characters Firebase refuses in a child key
INVALID_KEY_CHARS = re.compile(r'[.$#\[\]/]')

_INDEX_NOT_DEFINED = re.compile(r'index not defined', re.IGNORECASE)


Entry = Tuple[str, Dict[str, Any]]


def is_valid_key(key: str) -> bool:
    return bool(key) and not INVALID_KEY_CHARS.search(key)


def _get_app():
    """Initialize the default Firebase app once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        creds_path = config.get_credentials_path()
        if creds_path:
            cred = credentials.Certificate(creds_path)
        else:
            cred = credentials.ApplicationDefault()
        return firebase_admin.initialize_app(cred, {'databaseURL': config.FIREBASE_DATABASE_URL})


def _same_value(a: Any, b: Any) -> bool:
    return a == b or str(a) == str(b)


class FirebaseOrderStore:
    """
    Range reads and batched upserts against the orders node.

    For tests, inject a fake root reference via ``from_reference(root)``,
    avoiding any real API calls.
    """

    def __init__(self, root: Optional[object] = None, path: Optional[str] = None):
        if root is None:
            _get_app()
            root = db.reference('/')
        self._root = root
        self.path = (path or config.ORDERS_PATH).strip('/')
        self._collection = root.child(self.path)

    @classmethod
    def from_reference(cls, root: object, path: Optional[str] = None) -> 'FirebaseOrderStore':
        """Helper for unit tests to inject a fake database reference."""
        return cls(root=root, path=path)

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    def range_query(
        self,
        order_by: str,
        limit: int,
        end_value: Any = None,
        end_key: Optional[str] = None,
        equal_to: Any = None,
    ) -> List[Entry]:
        """
        Return up to ``limit`` of the highest-ordered children.

        Args:
            order_by: Child field to order by (needs an ".indexOn" rule).
            limit: Maximum entries returned.
            end_value: Inclusive upper bound on the order field.
            end_key: With ``end_value``, drops ties whose key sorts above it.
            equal_to: Exact-match predicate on ``order_by``. Numeric text
                also matches children stored as numbers.

        Returns:
            (key, child) pairs in ascending store order.
        """
        if end_key is None:
            return self._fetch(order_by, limit, end_value, equal_to)

        bound_value = equal_to if equal_to is not None else end_value
        request = limit
        while True:
            entries = self._fetch(order_by, request, end_value, equal_to)
            kept = [
                (key, child) for key, child in entries
                if not self._above_bound(key, child, order_by, bound_value, end_key)
            ]
            dropped = len(entries) - len(kept)
            # A short window means the collection is exhausted, so this ends
            if len(kept) >= limit or len(entries) < request or dropped == 0:
                return kept[-limit:]
            # Ties above the cursor sit at the top of the window; if nothing
            # survived, their count is still unknown
            request = limit + dropped if kept else request * 2

    def get(self, code: str) -> Optional[Dict[str, Any]]:
        """Fetch a single order by Code. Returns None if not found."""
        if not is_valid_key(code):
            return None
        try:
            data = self._collection.child(code).get()
        except firebase_exceptions.FirebaseError as e:
            raise RetrievalError(str(e)) from e
        return data if isinstance(data, dict) else None

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    def path_for(self, code: str) -> str:
        return f"{self.path}/{code}"

    def multi_update(self, updates: Dict[str, Dict[str, Any]]) -> None:
        """Apply a multi-path update at the database root in one request."""
        if not updates:
            return
        try:
            self._root.update(updates)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise WriteError(str(e)) from e

    def update(self, code: str, changes: Dict[str, Any]) -> None:
        """Merge ``changes`` into one order."""
        if not is_valid_key(code):
            raise WriteError(f"Invalid order code: {code!r}")
        try:
            self._collection.child(code).update(changes)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise WriteError(str(e)) from e

    # ─────────────────────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def _child_value(child: Any, order_by: str) -> Any:
        return child.get(order_by) if isinstance(child, dict) else None

    @classmethod
    def _above_bound(cls, key: str, child: Any, order_by: str, bound_value: Any, end_key: str) -> bool:
        """A tie on the bound value whose key sorts after the cursor key."""
        if not _same_value(cls._child_value(child, order_by), bound_value):
            return False
        return key_order(key) > key_order(end_key)

    def _fetch(self, order_by: str, limit: int, end_value: Any, equal_to: Any) -> List[Entry]:
        if equal_to is None:
            return self._run(order_by, limit, end_value=end_value)

        # equal_to matches by type; a value typed into a search box may be
        # stored as a number when it came from a spreadsheet cell
        candidates = [equal_to]
        if isinstance(equal_to, str):
            number = numeric_variant(equal_to)
            if number is not None:
                candidates.append(number)

        merged: Dict[str, Any] = {}
        for candidate in candidates:
            merged.update(self._run(order_by, limit, equal_to=candidate))
        # Every match ties on the value, so key order is store order
        entries = sorted(merged.items(), key=lambda kv: key_order(kv[0]))
        return entries[-limit:]

    def _run(self, order_by: str, limit: int, end_value: Any = None, equal_to: Any = None) -> List[Entry]:
        query = self._collection.order_by_child(order_by)
        if equal_to is not None:
            query = query.equal_to(equal_to)
        elif end_value is not None:
            query = query.end_at(end_value)
        query = query.limit_to_last(limit)

        try:
            snapshot = query.get()
        except firebase_exceptions.FirebaseError as e:
            if _INDEX_NOT_DEFINED.search(str(e)):
                raise MissingIndexError(order_by, self.path) from e
            raise RetrievalError(str(e)) from e

        if not snapshot:
            return []
        if isinstance(snapshot, list):
            # Integer-like keys come back as a sparse list
            snapshot = {str(i): v for i, v in enumerate(snapshot) if v is not None}
        entries = list(snapshot.items())
        entries.sort(key=lambda kv: (self._store_order(self._child_value(kv[1], order_by)), key_order(kv[0])))
        return entries

    @staticmethod
    def _store_order(value: Any) -> Tuple[int, Any]:
        """Firebase child ordering: missing < false < true < numbers < strings."""
        if value is None:
            return (0, 0)
        if isinstance(value, bool):
            return (1, int(value))
        if isinstance(value, (int, float)):
            return (2, value)
        if isinstance(value, str):
            return (3, value)
        return (4, 0)
