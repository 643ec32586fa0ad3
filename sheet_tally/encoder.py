from __future__ import annotations

import io
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from sheet_tally.metrics import FIELD_ORDER, SCORE_FIELD, MetricRow

SHEET_TITLE = "Compiled Data"
PERCENT_FORMAT = "0.0%"

# Display width (characters) per output column, in FIELD_ORDER.
COLUMN_WIDTHS = (15, 8, 22, 18, 20, 18, 18, 14, 20, 16, 22)


def _style_sheet(ws, col_widths: Iterable[int]) -> None:
    """Bold header, frozen header row, fixed column widths."""
    font = Font(bold=True)
    for cell in ws[1]:
        cell.font = font
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def encode(rows: Iterable[MetricRow]) -> bytes:
    """Serialise metric rows as a single-sheet .xlsx workbook and return its bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    ws.append(list(FIELD_ORDER))
    for row in rows:
        ws.append(row.as_values())

    score_col = FIELD_ORDER.index(SCORE_FIELD) + 1
    for row_idx in range(2, ws.max_row + 1):
        cell = ws.cell(row=row_idx, column=score_col)
        if isinstance(cell.value, (int, float)):
            cell.number_format = PERCENT_FORMAT

    _style_sheet(ws, COLUMN_WIDTHS)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
