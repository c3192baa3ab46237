"""
.xlsx helpers for bulk imports and their downloadable templates.
"""

import io
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import UploadFile
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from sponsorship_admin.core.exceptions import ValidationFailedError

EXCEL_MAX_ROWS = 1000
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

Row = Dict[str, Any]


def _norm(value: Any) -> str:
    return (str(value).strip().lower() if value is not None else "").replace(" ", "_")


def _blank(row: Sequence[Any]) -> bool:
    return not row or all(c is None or (isinstance(c, str) and not c.strip()) for c in row)


async def read_xlsx_rows(
    file: UploadFile,
    required: Iterable[str],
    any_of: Iterable[str] = (),
) -> List[Tuple[int, Row]]:
    """
    Rows of the first sheet as (row_number, {normalized_header: value}). First row = headers.
    Raises ValidationFailedError on a bad file, a missing column, or too many rows.
    """
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise ValidationFailedError("File must be an Excel file (.xlsx)")
    content = await file.read()
    if not content:
        raise ValidationFailedError("File is empty")
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationFailedError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.active
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row:
            raise ValidationFailedError("Excel file has no header row")
        headers = [_norm(c) for c in header_row]

        for h in required:
            if h not in headers:
                raise ValidationFailedError(f"Missing required column: {h}. Found: {headers}")
        any_of = list(any_of)
        if any_of and not any(h in headers for h in any_of):
            raise ValidationFailedError(f"Excel must have one of the columns {any_of}. Found: {headers}")

        rows: List[Tuple[int, Row]] = []
        for row_num, row in enumerate(rows_iter, start=2):
            if _blank(row):
                continue
            if len(rows) >= EXCEL_MAX_ROWS:
                raise ValidationFailedError(f"Maximum {EXCEL_MAX_ROWS} data rows allowed")
            rows.append((row_num, {h: (row[i] if i < len(row) else None) for i, h in enumerate(headers) if h}))
        return rows
    finally:
        wb.close()


def build_xlsx(sheet_title: str, headers: Sequence[str], rows: Iterable[Sequence[Any]] = ()) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title
    ws.append(list(headers))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(list(row))
    for i, h in enumerate(headers, start=1):
        ws.column_dimensions[ws.cell(row=1, column=i).column_letter].width = max(14, len(h) + 4)
    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()


def cell_str(row: Row, key: str) -> str:
    v = row.get(key)
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        # Numeric admission numbers come back as floats
        v = int(v)
    return str(v).strip()


def cell_date(row: Row, key: str) -> Optional[date]:
    v = row.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    text = str(v).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%m/%d/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"{key}: unrecognized date '{text}'")


def cell_float(row: Row, key: str) -> Optional[float]:
    v = row.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        raise ValueError(f"{key}: '{v}' is not a number")


def cell_bool(row: Row, key: str) -> bool:
    v = row.get(key)
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return bool(v)
    return _norm(v) in ("true", "yes", "y", "1", "x")
