"""
API helper functions shared across route modules.
Provides the process-wide ReconService, error translation and serializers.
"""
from typing import Any, Dict, Iterable, Optional

from fastapi import HTTPException, status

from recon.errors import MissingIndexError, ParseError, ReconError, RetrievalError, WriteError
from recon.models import Cursor, OrderRecord
from recon.pagination import PaginationSession
from recon.presentation import to_rows

# Will be initialized in main.py when the app starts
_service = None


def init_service(service):
    """Install the ReconService used by the routes. Called from main.py and tests."""
    global _service
    _service = service


def get_recon_service():
    """
    Return the ReconService, connecting to Firebase on first use.

    Usable as a FastAPI dependency.
    """
    global _service
    if _service is None:
        from recon.order_store import FirebaseOrderStore
        from recon.service import ReconService
        try:
            _service = ReconService(FirebaseOrderStore())
        except ValueError as e:
            # Missing credentials or database URL
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Order store not configured: {e}",
            )
    return _service


def http_error(error: ReconError) -> HTTPException:
    """Translate a ReconError into the HTTP response the UI acts on."""
    if isinstance(error, MissingIndexError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "missing_index", "field": error.field, "message": str(error)},
        )
    if isinstance(error, ParseError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, (RetrievalError, WriteError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def cursor_dict(cursor: Optional[Cursor]) -> Optional[Dict[str, Any]]:
    if cursor is None:
        return None
    return {"value": cursor.value, "key": cursor.key}


def record_dict(record: OrderRecord) -> Dict[str, Any]:
    return to_rows([record])[0]


def session_dict(session: PaginationSession, records: Optional[Iterable[OrderRecord]] = None) -> Dict[str, Any]:
    """Client view of a pagination snapshot; ``records`` overrides the loaded page."""
    query = session.query
    return {
        "session_id": session.session_id,
        "mode": query.mode.value,
        "order_field": query.order_field,
        "search": (
            {"field": query.filter.field, "value": query.filter.exact_value}
            if query.filter else None
        ),
        "state": session.state.value,
        "current_page": session.current_page,
        "has_next_page": session.has_next_page,
        "known_pages": [1] + [page for page, _ in session.cursor_table.items() if session.can_go_to(page)],
        "last_page": session.last_page,
        "records": to_rows(session.records if records is None else records),
        "error": str(session.error) if session.error else None,
    }
