"""
grid.py — Decode spreadsheet bytes into a ragged grid of typed cells.

Supports the two binary dialects the scheduling exports arrive in:
    OOXML workbooks (.xlsx / .xlsm)  — read with openpyxl
    legacy BIFF workbooks (.xls)     — read with xlrd

Only the first sheet is read. Cell values keep their native type:
    text   → str
    number → int / float
    date   → datetime.datetime (when the source marks the cell as a date)
    empty  → ABSENT

Coercion into dates, numbers or tokens happens later in normalize.py.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Iterable, Union

from sheet_tally.errors import DecodeError

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


class _Absent:
    """A grid position with no value. Distinct from a text cell holding ''."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

CellValue = Union[str, int, float, date, datetime, time, _Absent]


def is_blank(value: Any) -> bool:
    return value is ABSENT or value is None or (isinstance(value, str) and value.strip() == "")


@dataclass(frozen=True)
class Grid:
    rows: tuple[tuple[CellValue, ...], ...]
    sheet_name: str = ""
    sheet_names: tuple[str, ...] = ()
    source_format: str = ""
    warnings: tuple[str, ...] = field(default=())

    @classmethod
    def from_rows(cls, rows: Iterable[Iterable[Any]], **kwargs: Any) -> "Grid":
        """Build a grid from plain row lists; None becomes ABSENT and trailing gaps are trimmed."""
        built = [_trim_row(tuple(ABSENT if v is None else v for v in row)) for row in rows]
        while built and not any(v is not ABSENT for v in built[-1]):
            built.pop()
        return cls(rows=tuple(built), **kwargs)

    def __len__(self) -> int:
        return len(self.rows)

    def row(self, row_idx: int) -> tuple[CellValue, ...]:
        if 0 <= row_idx < len(self.rows):
            return self.rows[row_idx]
        return ()

    def width(self, row_idx: int) -> int:
        return len(self.row(row_idx))

    def cell(self, row_idx: int, col_idx: int) -> CellValue:
        row = self.row(row_idx)
        if 0 <= col_idx < len(row):
            return row[col_idx]
        return ABSENT

    def without_blank_rows(self) -> "Grid":
        kept = tuple(row for row in self.rows if any(not is_blank(v) for v in row))
        return Grid(
            rows=kept,
            sheet_name=self.sheet_name,
            sheet_names=self.sheet_names,
            source_format=self.source_format,
            warnings=self.warnings,
        )


def _trim_row(row: tuple[CellValue, ...]) -> tuple[CellValue, ...]:
    end = len(row)
    while end and row[end - 1] is ABSENT:
        end -= 1
    return row[:end]


def sniff_format(raw: bytes) -> str | None:
    if raw.startswith(ZIP_MAGIC):
        return "xlsx"
    if raw.startswith(OLE2_MAGIC):
        return "xls"
    return None


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT READERS
# ══════════════════════════════════════════════════════════════════════════════

def _openpyxl_value(value: Any) -> CellValue:
    if value is None:
        return ABSENT
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return value


def _decode_xlsx(raw: bytes) -> tuple[list[list[CellValue]], str, list[str]]:
    from openpyxl import load_workbook

    try:
        wb = load_workbook(io.BytesIO(raw), data_only=True)
    except Exception as exc:
        raise DecodeError(f"Could not open workbook: {exc}") from exc

    try:
        sheet_names = list(wb.sheetnames)
        if not wb.worksheets:
            raise DecodeError("Workbook contains no sheets")
        ws = wb.worksheets[0]
        rows = [
            [_openpyxl_value(v) for v in row]
            for row in ws.iter_rows(values_only=True)
        ]
        return rows, ws.title, sheet_names
    finally:
        wb.close()


def _xlrd_value(cell, datemode: int) -> CellValue:
    import xlrd

    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return ABSENT
    if ctype == xlrd.XL_CELL_TEXT:
        return cell.value
    if ctype == xlrd.XL_CELL_NUMBER:
        value = float(cell.value)
        return int(value) if value.is_integer() else value
    if ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
        except (xlrd.xldate.XLDateError, ValueError, OverflowError):
            return float(cell.value)
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return "TRUE" if cell.value else "FALSE"
    if ctype == xlrd.XL_CELL_ERROR:
        return xlrd.error_text_from_code.get(cell.value, "#ERR")
    return cell.value


def _decode_xls(raw: bytes) -> tuple[list[list[CellValue]], str, list[str]]:
    import xlrd

    try:
        book = xlrd.open_workbook(file_contents=raw)
    except Exception as exc:
        raise DecodeError(f"Could not open legacy workbook: {exc}") from exc

    if book.nsheets == 0:
        raise DecodeError("Workbook contains no sheets")
    sheet = book.sheet_by_index(0)
    rows = [
        [_xlrd_value(sheet.cell(r, c), book.datemode) for c in range(sheet.row_len(r))]
        for r in range(sheet.nrows)
    ]
    return rows, sheet.name, book.sheet_names()


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def decode(raw: bytes, name: str | None = None) -> Grid:
    """
    Decode a spreadsheet byte buffer into a Grid built from its first sheet.

    Raises:
        DecodeError  if the bytes are not an .xlsx/.xls container, cannot be
                     opened, or hold no sheets.
    """
    label = name or "<bytes>"
    if not raw:
        raise DecodeError(f"{label}: empty input")

    source_format = sniff_format(raw)
    if source_format == "xlsx":
        rows, sheet_name, sheet_names = _decode_xlsx(raw)
    elif source_format == "xls":
        rows, sheet_name, sheet_names = _decode_xls(raw)
    else:
        raise DecodeError(f"{label}: not a recognisable spreadsheet (.xlsx or .xls)")

    warnings: list[str] = []
    if len(sheet_names) > 1:
        others = [s for s in sheet_names if s != sheet_name]
        warnings.append(
            f"Multiple sheets found ({len(sheet_names)} total); used '{sheet_name}'. Ignored: {others}"
        )

    grid = Grid.from_rows(
        rows,
        sheet_name=sheet_name,
        sheet_names=tuple(sheet_names),
        source_format=source_format,
        warnings=tuple(warnings),
    )
    logger.info("Decoded %s (%s, sheet %r): %d rows", label, source_format, sheet_name, len(grid))
    return grid
