"""
Spreadsheet Ingestion Pipeline

Reads the first sheet of an uploaded workbook, normalizes every row into the
canonical OrderRecord shape and writes all accepted rows to the store in a
single multi-path update keyed by Code.

Pipeline:
1. SpreadsheetReader.read_rows  -> header-keyed row mappings
2. normalize_row                -> OrderRecord | ValidationSkipped
3. build_upsert                 -> {"/<orders path>/<Code>": record}
4. store.multi_update           -> one atomic write
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import openpyxl
import xlrd

import config
from recon.errors import ParseError, ReconError, ValidationSkipped
from recon.models import STORE_FIELDS, OrderRecord, clean_value, parse_order_date
from recon.order_store import is_valid_key
from utils.logger import get_logger

NO_VALID_RECORDS_MESSAGE = "No valid records found (checking 'Code' column)."

Row = Dict[str, Any]

# Compact header token -> storage key. Covers the spellings seen in exports.
_HEADER_TOKENS: Dict[str, str] = {
    'CODE': 'Code',
    'ORDERNUMBER': 'OrderNumber',
    'ORDERNO': 'OrderNumber',
    'SALESDOCUMENT': 'SalesDocument',
    'SALESDOC': 'SalesDocument',
    'ORDERDATE': 'OrderDate',
    'BATCHNUMBER': 'BatchNumber',
    'BATCHNO': 'BatchNumber',
    'BATCH': 'BatchNumber',
    'YEAR': 'Year',
    'MATERIALNUMBER': 'Material Number',
    'MATERIALNO': 'Material Number',
    'MATERIAL': 'Material Number',
    'CLUBNAME': 'ClubName',
    'CLUB': 'ClubName',
    'ORDERTYPE': 'OrderType',
    'STATUS': 'Status',
    'CDD': 'CDD',
    'UPSTRACKINGNUMBER': 'UPSTrackingNumber',
    'UPSTRACKING': 'UPSTrackingNumber',
    'TRACKINGNUMBER': 'UPSTrackingNumber',
}


def norm_header(header: Any) -> str:
    """Map a spreadsheet header to its storage key; unknown headers are kept as written."""
    text = str(header or '').strip()
    token = re.sub(r'[^A-Z0-9]', '', text.upper())
    return _HEADER_TOKENS.get(token, text)


# ═══════════════════════════════════════════════════════════════════
# READING
# ═══════════════════════════════════════════════════════════════════

class SpreadsheetReader:
    """Turn workbook bytes into row mappings (header -> cell value), first sheet only."""

    def __init__(self, allowed_formats: Optional[Iterable[str]] = None):
        formats = allowed_formats or config.ALLOWED_UPLOAD_FORMATS
        self.allowed_formats = {f.strip().lower().lstrip('.') for f in formats if f.strip()}

    def read_rows(self, content: bytes, filename: str) -> List[Row]:
        """
        Parse the workbook.

        Raises:
            ParseError: Empty upload, unsupported extension or unreadable workbook.
        """
        if not content:
            raise ParseError("the uploaded file is empty")

        extension = Path(filename or '').suffix.lower().lstrip('.')
        if extension not in self.allowed_formats:
            raise ParseError(
                f"unsupported file type '.{extension}' "
                f"(expected one of: {', '.join(sorted(self.allowed_formats))})"
            )

        if extension == 'xls':
            grid = self._read_xls(content)
        else:
            grid = self._read_xlsx(content)

        return self._to_mappings(grid)

    @staticmethod
    def _read_xlsx(content: bytes) -> List[List[Any]]:
        try:
            wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            # Corrupt archives surface as BadZipFile, KeyError or InvalidFileException
            raise ParseError(str(e) or type(e).__name__) from e
        try:
            if not wb.worksheets:
                raise ParseError("the workbook has no sheets")
            ws = wb.worksheets[0]
            return [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    @staticmethod
    def _read_xls(content: bytes) -> List[List[Any]]:
        try:
            book = xlrd.open_workbook(file_contents=content)
        except Exception as e:
            # XLRDError, or CompDocError for a damaged OLE container
            raise ParseError(str(e) or type(e).__name__) from e
        if book.nsheets == 0:
            raise ParseError("the workbook has no sheets")

        sheet = book.sheet_by_index(0)
        grid = []
        for r in range(sheet.nrows):
            row = []
            for c in range(sheet.ncols):
                cell = sheet.cell(r, c)
                if cell.ctype == xlrd.XL_CELL_DATE:
                    row.append(xlrd.xldate.xldate_as_datetime(cell.value, book.datemode))
                elif cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                    row.append(None)
                else:
                    row.append(cell.value)
            grid.append(row)
        return grid

    @staticmethod
    def _to_mappings(grid: List[List[Any]]) -> List[Row]:
        if not grid:
            return []

        header = [str(h).strip() if h is not None else '' for h in grid[0]]
        rows = []
        for raw in grid[1:]:
            if not raw or all(clean_value(v) == '' for v in raw):
                continue
            row = {}
            for idx, value in enumerate(raw):
                if idx < len(header) and header[idx]:
                    row[header[idx]] = value
            rows.append(row)
        return rows


# ═══════════════════════════════════════════════════════════════════
# NORMALIZATION
# ═══════════════════════════════════════════════════════════════════

def normalize_row(row: Row, row_index: int) -> Union[OrderRecord, ValidationSkipped]:
    """
    Validate one row and build the canonical record.

    Every value becomes a string; OrderDate is rewritten as YYYY-MM-DD when it
    parses; OrderType falls back to the configured default. Headers outside
    the canonical set are kept in ``extras``.
    """
    values: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for header, raw in row.items():
        store_key = norm_header(header)
        if store_key in STORE_FIELDS:
            # First non-empty spelling wins when two headers map to one field
            if not values.get(store_key):
                values[store_key] = raw
        else:
            extras[store_key] = raw

    code = clean_value(values.get('Code'))
    if not code:
        return ValidationSkipped(row_index, "missing Code")
    if not is_valid_key(code):
        return ValidationSkipped(row_index, f"Code '{code}' contains characters not allowed in a key (. $ # [ ] /)")

    fields = {
        STORE_FIELDS[key]: clean_value(raw)
        for key, raw in values.items()
        if key != 'Code'
    }

    order_date = parse_order_date(values.get('OrderDate'))
    if order_date is not None:
        fields['order_date'] = order_date.isoformat()

    if not fields.get('order_type'):
        fields['order_type'] = config.DEFAULT_ORDER_TYPE

    return OrderRecord(code=code, extras=extras, **fields)


def build_upsert(records: Iterable[OrderRecord], base_path: str) -> Dict[str, Dict[str, str]]:
    """Multi-path update payload. A repeated Code keeps its last row."""
    base = base_path.strip('/')
    return {f"/{base}/{record.code}": record.to_store_dict() for record in records}


# ═══════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════

@dataclass
class IngestResult:
    """Outcome of one upload."""
    accepted_count: int
    skipped_count: int = 0
    skipped: List[ValidationSkipped] = field(default_factory=list)
    message: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'accepted_count': self.accepted_count,
            'skipped_count': self.skipped_count,
            'skipped': [{'row_index': s.row_index, 'reason': s.reason} for s in self.skipped],
            'message': self.message,
        }


class SpreadsheetIngestor:
    """Parse, validate and upsert one uploaded workbook."""

    def __init__(self, store, reader: Optional[SpreadsheetReader] = None, logger=None):
        self.store = store
        self.reader = reader or SpreadsheetReader()
        self.logger = logger or get_logger()

    def ingest(self, content: bytes, filename: str) -> IngestResult:
        """
        Raises:
            ParseError: The file could not be read.
            WriteError: The store rejected the batch.
        """
        try:
            rows = self.reader.read_rows(content, filename)
        except ParseError as e:
            self.logger.log_error(f"Ingest {filename}", "ParseError", e.reason)
            raise

        accepted: List[OrderRecord] = []
        skipped: List[ValidationSkipped] = []
        for index, row in enumerate(rows, start=1):
            outcome = normalize_row(row, index)
            if isinstance(outcome, ValidationSkipped):
                skipped.append(outcome)
            else:
                accepted.append(outcome)

        for skip in skipped:
            self.logger.debug(f"{filename} row {skip.row_index} skipped: {skip.reason}", component="Ingestion")

        if not accepted:
            self.logger.warning(f"{filename} - {NO_VALID_RECORDS_MESSAGE}", component="Ingestion")
            return IngestResult(
                accepted_count=0,
                skipped_count=len(skipped),
                skipped=skipped,
                message=NO_VALID_RECORDS_MESSAGE,
            )

        updates = build_upsert(accepted, self.store.path)
        try:
            self.store.multi_update(updates)
        except ReconError as e:
            self.logger.log_error(f"Ingest {filename}", type(e).__name__, str(e))
            raise

        self.logger.log_ingest_complete(filename, len(accepted), len(skipped))
        return IngestResult(
            accepted_count=len(accepted),
            skipped_count=len(skipped),
            skipped=skipped,
            message=f"Successfully processed {len(accepted)} records.",
        )
