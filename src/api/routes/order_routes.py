"""
Order routes - stateless page listing, spreadsheet upload, single-order
read and manual edit.

Upload and edit require the admin capability.
"""
import asyncio
import os
from typing import List, Dict, Any, Optional

from fastapi import APIRouter, HTTPException, status, Depends, UploadFile, File, Query
from pydantic import BaseModel, Field

import config
from api.auth.dependencies import get_current_user, get_current_admin
from api.helpers import cursor_dict, get_recon_service, http_error, record_dict, session_dict
from api.routes.recon_routes import save_session
from recon.errors import ReconError
from recon.models import Cursor, QueryDescriptor

router = APIRouter()

# ── Pydantic models ──────────────────────────────────────────────

class OrderPageResponse(BaseModel):
    """One page of orders, newest first."""
    records: List[Dict[str, Any]]
    has_next: bool
    next_cursor: Optional[Dict[str, Any]] = None
    scanned_count: int = 0


class UploadResponse(BaseModel):
    """Result of a spreadsheet upload."""
    accepted_count: int
    skipped_count: int = 0
    skipped: List[Dict[str, Any]] = []
    message: str
    session: Optional[Dict[str, Any]] = None


class OrderUpdateRequest(BaseModel):
    """Fields to overwrite on one order, keyed by storage name."""
    changes: Dict[str, Any] = Field(..., description='e.g. {"Status": "Shipped"}')


# ── Routes ────────────────────────────────────────────────────────

@router.get(
    "",
    response_model=OrderPageResponse,
    summary="List one page of orders",
)
async def list_orders(
    field: Optional[str] = Query(None, description="Indexed field for exact-match search"),
    value: Optional[str] = Query(None, description="Exact value to match"),
    cursor_value: Optional[str] = Query(None, description="next_cursor.value from the previous page"),
    cursor_key: Optional[str] = Query(None, description="next_cursor.key from the previous page"),
    page_size: Optional[int] = Query(None, ge=1, le=1000),
    q: Optional[str] = Query(None, description="Substring filter applied to the fetched page"),
    status_filter: Optional[List[str]] = Query(None, alias="status", description="Status facet; repeat to OR several"),
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    """
    Without ``field`` this browses by OrderDate. Pass the previous page's
    ``next_cursor`` back as ``cursor_value`` and ``cursor_key`` to continue.

    ``q`` and ``status`` switch to the facet page size and filter each fetched
    page; keep following ``next_cursor`` while ``has_next`` even when a page
    comes back empty after filtering.
    """
    if (cursor_value is None) != (cursor_key is None):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="cursor_value and cursor_key must be given together",
        )

    try:
        query = QueryDescriptor.search(field, value or "") if field else QueryDescriptor.browse()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    cursor = Cursor(value=cursor_value, key=cursor_key) if cursor_key is not None else None

    try:
        page = await asyncio.to_thread(
            service.list_page, query, cursor, None, page_size, q or "", status_filter,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except ReconError as e:
        raise http_error(e)

    return OrderPageResponse(
        records=[record_dict(r) for r in page["records"]],
        has_next=page["has_next"],
        next_cursor=cursor_dict(page["next_cursor"]),
        scanned_count=page["scanned_count"],
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a reconciliation spreadsheet",
)
async def upload_orders(
    file: UploadFile = File(..., description="Spreadsheet (.xlsx or .xls), first sheet is read"),
    user: dict = Depends(get_current_admin),
    service=Depends(get_recon_service),
):
    """
    Upsert every row with a Code. Returns the accepted count and, when
    anything was written, a fresh browse session on page 1.
    """
    content = await file.read()
    if len(content) > config.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {config.MAX_UPLOAD_MB} MB",
        )

    filename = os.path.basename(file.filename or "upload")
    try:
        result, session = await asyncio.to_thread(service.ingest, content, filename)
    except ReconError as e:
        raise http_error(e)

    body = result.to_dict()
    if session is not None:
        save_session(session, user)
        body["session"] = session_dict(session)
    return UploadResponse(**body)


@router.get(
    "/{code}",
    summary="Get one order",
)
async def get_order(
    code: str,
    user: dict = Depends(get_current_user),
    service=Depends(get_recon_service),
):
    try:
        record = await asyncio.to_thread(service.get_order, code)
    except ReconError as e:
        raise http_error(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return record_dict(record)


@router.patch(
    "/{code}",
    summary="Edit one order",
)
async def update_order(
    code: str,
    request: OrderUpdateRequest,
    user: dict = Depends(get_current_admin),
    service=Depends(get_recon_service),
):
    """Overwrite the given fields. Code itself cannot change."""
    try:
        record = await asyncio.to_thread(service.update_order, code, request.changes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except ReconError as e:
        raise http_error(e)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return record_dict(record)
