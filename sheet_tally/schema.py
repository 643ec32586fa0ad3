"""
schema.py — Locate metadata, the date/header axis and the data region.

Two fixed layouts are supported, chosen by the caller:

    word-filter   row 1: [_, company, station]
                  row 3: header/date axis starting at column 2
                  row 4+: categorical data cells under each header

    metric        row 0: [label, date, date, ..., 'Total']
                  rows 1-9: the nine metric rows, in fixed order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sheet_tally.errors import SchemaError
from sheet_tally.grid import Grid, is_blank
from sheet_tally.normalize import cell_text

logger = logging.getLogger(__name__)

WORD_FILTER = "word-filter"
METRIC = "metric"
VARIANTS = (WORD_FILTER, METRIC)

UNKNOWN_COMPANY = "Unknown Company"
UNKNOWN_STATION = "Unknown Station"

WORD_FILTER_MIN_ROWS = 4
WORD_FILTER_META_ROW = 1
WORD_FILTER_HEADER_ROW = 3
WORD_FILTER_DATA_ROW = 4
WORD_FILTER_DATA_COL = 2

METRIC_MIN_ROWS = 2
METRIC_HEADER_ROW = 0
METRIC_FIRST_DATE_COL = 1
METRIC_ROW_INDICES = tuple(range(1, 10))
TOTAL_LABEL = "Total"


@dataclass(frozen=True)
class HeaderColumn:
    column: int
    raw: Any


@dataclass(frozen=True)
class WordFilterLayout:
    grid: Grid
    company: str
    station: str
    header_columns: tuple[HeaderColumn, ...]
    data_rows: range

    @property
    def data_columns(self) -> tuple[int, ...]:
        return tuple(h.column for h in self.header_columns)


@dataclass(frozen=True)
class MetricLayout:
    grid: Grid
    header_columns: tuple[HeaderColumn, ...]
    metric_rows: tuple[int, ...] = METRIC_ROW_INDICES


def _meta_text(grid: Grid, row: int, col: int, placeholder: str) -> str:
    value = cell_text(grid.cell(row, col)).strip()
    return value or placeholder


def locate_word_filter(grid: Grid) -> WordFilterLayout:
    if len(grid) < WORD_FILTER_MIN_ROWS:
        raise SchemaError(
            f"Word-filter sheet needs at least {WORD_FILTER_MIN_ROWS} rows, found {len(grid)}"
        )

    header_columns = []
    for col in range(WORD_FILTER_DATA_COL, grid.width(WORD_FILTER_HEADER_ROW)):
        value = grid.cell(WORD_FILTER_HEADER_ROW, col)
        if is_blank(value):
            logger.debug("Skipping column %d: empty header", col)
            continue
        header_columns.append(HeaderColumn(column=col, raw=value))

    return WordFilterLayout(
        grid=grid,
        company=_meta_text(grid, WORD_FILTER_META_ROW, 1, UNKNOWN_COMPANY),
        station=_meta_text(grid, WORD_FILTER_META_ROW, 2, UNKNOWN_STATION),
        header_columns=tuple(header_columns),
        data_rows=range(WORD_FILTER_DATA_ROW, len(grid)),
    )


def _is_total(value: Any) -> bool:
    return isinstance(value, str) and value.strip() == TOTAL_LABEL


def locate_metric(grid: Grid) -> MetricLayout:
    # The metric rows are addressed after blank rows are dropped.
    compact = grid.without_blank_rows()
    if len(compact) < METRIC_MIN_ROWS:
        raise SchemaError(
            f"Metric sheet needs a date row and at least one metric row, found {len(compact)} rows"
        )

    header_columns = []
    for col in range(METRIC_FIRST_DATE_COL, compact.width(METRIC_HEADER_ROW)):
        value = compact.cell(METRIC_HEADER_ROW, col)
        if is_blank(value) or _is_total(value):
            logger.debug("Skipping column %d: empty or total header", col)
            continue
        header_columns.append(HeaderColumn(column=col, raw=value))

    return MetricLayout(grid=compact, header_columns=tuple(header_columns))


def locate(grid: Grid, variant: str) -> "WordFilterLayout | MetricLayout":
    if variant == WORD_FILTER:
        return locate_word_filter(grid)
    if variant == METRIC:
        return locate_metric(grid)
    raise ValueError(f"Unknown layout variant '{variant}'. Supported: {', '.join(VARIANTS)}")
