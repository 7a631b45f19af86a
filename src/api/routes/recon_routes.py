"""
Reconciliation session routes - open a browse session, page through it,
switch into and out of exact-match search.

Each session is an immutable PaginationSession snapshot kept in memory.
Store reads run in a worker thread; a reply that lands after a newer
navigation or search was issued is discarded by the snapshot's generation
check.
"""
import asyncio
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from api.auth.dependencies import get_current_user
from api.helpers import get_recon_service, http_error, session_dict
from recon import search_controller
from recon.errors import ReconError
from recon.pagination import PaginationSession
from recon.presentation import check_status_filters

router = APIRouter()

# ── Pydantic models ──────────────────────────────────────────────

class SearchRequest(BaseModel):
    """Exact-match search on one indexed field."""
    field: str = Field(..., description="OrderNumber, Material Number or SalesDocument")
    text: str = Field(..., description="Exact value to match")


class SessionResponse(BaseModel):
    """Current snapshot of a pagination session."""
    session_id: str
    mode: str
    order_field: str
    search: Optional[Dict[str, str]] = None
    state: str
    current_page: int
    has_next_page: bool
    known_pages: List[int]
    last_page: Optional[int] = None
    records: List[Dict[str, Any]] = []
    error: Optional[str] = None


# ── In-memory session store ───────────────────────────────────────

_recon_sessions: Dict[str, Dict[str, Any]] = {}


def _get_session(session_id: str, user: dict) -> PaginationSession:
    entry = _recon_sessions.get(session_id)
    if not entry or entry["user_id"] != user["id"]:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return entry["session"]


def save_session(session: PaginationSession, user: dict) -> None:
    _recon_sessions[session.session_id] = {"user_id": user["id"], "session": session}


def _check_facets(status_filters: Optional[List[str]]) -> List[str]:
    try:
        return check_status_filters(status_filters)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _view(session: PaginationSession, service, q: Optional[str], facets: List[str]) -> Dict[str, Any]:
    """Snapshot with the loaded page narrowed by ``q`` and status facets."""
    if not (q or "").strip() and not facets:
        return session_dict(session)
    return session_dict(session, service.view_records(session, q or "", facets))


async def _navigate(session: PaginationSession, page_number: int, user: dict, service) -> PaginationSession:
    """Fetch ``page_number`` for a stored session and apply the reply if still current."""
    session, ticket = session.begin_fetch(page_number)
    if ticket is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Page {page_number} is not reachable yet; visit the pages before it first",
        )
    save_session(session, user)

    result, error = None, None
    try:
        result = await asyncio.to_thread(service.paginator.execute, ticket)
    except ReconError as e:
        error = e

    entry = _recon_sessions.get(session.session_id)
    current = entry["session"] if entry else session
    latest = current.resolve(ticket, result=result, error=error)
    save_session(latest, user)

    if error is not None and latest.generation == ticket.generation:
        raise http_error(error)
    return latest


# ── Routes ────────────────────────────────────────────────────────

@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a browse session on page 1",
)
async def open_session(
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    """Newest orders first."""
    session = PaginationSession.new()
    save_session(session, user)
    session = await _navigate(session, 1, user, service)
    return session_dict(session)


@router.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    summary="Current session snapshot",
)
async def get_session(
    session_id: str,
    q: Optional[str] = Query(None, description="Substring over order, sales document, batch, material and club"),
    status_filter: Optional[List[str]] = Query(None, alias="status", description="Status facet; repeat to OR several"),
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    """Pass ``q`` or ``status`` to narrow the loaded page without another fetch."""
    facets = _check_facets(status_filter)
    return _view(_get_session(session_id, user), service, q, facets)


@router.get(
    "/sessions/{session_id}/pages/{page_number}",
    response_model=SessionResponse,
    summary="Go to a page",
)
async def go_to_page(
    session_id: str,
    page_number: int,
    q: Optional[str] = Query(None, description="Substring filter over the loaded page"),
    status_filter: Optional[List[str]] = Query(None, alias="status", description="Status facet; repeat to OR several"),
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    """
    Page 1 is always reachable. Any other page must already have been
    reached from the page before it; otherwise 409. ``q`` and ``status``
    narrow the page that comes back.
    """
    facets = _check_facets(status_filter)
    session = _get_session(session_id, user)
    session = await _navigate(session, page_number, user, service)
    return _view(session, service, q, facets)


@router.post(
    "/sessions/{session_id}/search",
    response_model=SessionResponse,
    summary="Search by exact value",
)
async def submit_search(
    session_id: str,
    request: SearchRequest,
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    """Switch to search mode; always lands on page 1 with fresh cursors."""
    session = _get_session(session_id, user)
    try:
        session = search_controller.submit_search(session, request.field, request.text)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    save_session(session, user)
    session = await _navigate(session, 1, user, service)
    return session_dict(session)


@router.delete(
    "/sessions/{session_id}/search",
    response_model=SessionResponse,
    summary="Clear search and return to browsing",
)
async def clear_search(
    session_id: str,
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    session = search_controller.clear_search(_get_session(session_id, user))
    save_session(session, user)
    session = await _navigate(session, 1, user, service)
    return session_dict(session)


@router.delete(
    "/sessions/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Close a session",
)
async def close_session(session_id: str, user: dict = Depends(get_current_user)):
    _get_session(session_id, user)
    _recon_sessions.pop(session_id, None)
