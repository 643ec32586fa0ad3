"""
metrics.py — Fixed-row metric extraction over the metric layout.

One MetricRow per date column: the nine metric rows under that column are
read as numbers, and a Sunday-start week number is derived from the date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sheet_tally.grid import Grid, is_blank
from sheet_tally.normalize import cell_text, normalize_date, normalize_number, week_number
from sheet_tally.schema import MetricLayout

logger = logging.getLogger(__name__)

DATE_FIELD = "Date"
WEEK_FIELD = "Week#"

# Attribute name → header text, in metric-row order (rows 1-9).
METRIC_COLUMNS = (
    ("capacity_reliability_score", "Capacity reliability score"),
    ("completed_routes", "Completed routes"),
    ("amazon_paid_cancels", "Amazon paid cancels"),
    ("dsp_dropped_routes", "DSP dropped routes"),
    ("reliability_target", "Reliability target"),
    ("route_target", "Route target"),
    ("flex_up_route_target", "Flex-up route target"),
    ("final_scheduled", "Final scheduled"),
    ("dsp_available_capacity", "DSP available capacity"),
)
METRIC_ATTRS = tuple(attr for attr, _ in METRIC_COLUMNS)
FIELD_ORDER = (DATE_FIELD, WEEK_FIELD) + tuple(header for _, header in METRIC_COLUMNS)
SCORE_FIELD = METRIC_COLUMNS[0][1]


@dataclass(frozen=True)
class MetricRow:
    date: str
    week: int
    capacity_reliability_score: float = 0
    completed_routes: float | None = None
    amazon_paid_cancels: float | None = None
    dsp_dropped_routes: float | None = None
    reliability_target: float | None = None
    route_target: float | None = None
    flex_up_route_target: float | None = None
    final_scheduled: float | None = None
    dsp_available_capacity: float | None = None

    def metric_values(self) -> tuple:
        return tuple(getattr(self, attr) for attr in METRIC_ATTRS)

    def as_values(self) -> list[Any]:
        return [self.date, self.week, *self.metric_values()]

    def as_record(self) -> dict[str, Any]:
        return dict(zip(FIELD_ORDER, self.as_values()))


def _metric_values(values: dict[str, Any]) -> dict[str, Any]:
    score = values.get("capacity_reliability_score")
    values["capacity_reliability_score"] = score or 0
    return values


def extract_metric_rows(layout: MetricLayout) -> list[MetricRow]:
    grid = layout.grid
    rows = []
    for header in layout.header_columns:
        iso = normalize_date(header.raw)
        if iso is None:
            logger.debug("Skipping column %d: header %r is not a date", header.column, header.raw)
            continue
        values = {
            attr: normalize_number(grid.cell(row_idx, header.column))
            for attr, row_idx in zip(METRIC_ATTRS, layout.metric_rows)
        }
        rows.append(MetricRow(date=iso, week=week_number(iso), **_metric_values(values)))
    return rows


def read_compiled(grid: Grid) -> list[MetricRow]:
    """
    Read a compiled workbook (header row of field names, one row per date)
    back into MetricRows. Rows without a readable date are skipped; the week
    number is always re-derived from the date.
    """
    header = [cell_text(v).strip() for v in grid.row(0)]
    positions = {name: idx for idx, name in enumerate(header) if name}
    if DATE_FIELD not in positions:
        return []

    attr_for_header = {name: attr for attr, name in METRIC_COLUMNS}
    rows = []
    for row_idx in range(1, len(grid)):
        raw_date = grid.cell(row_idx, positions[DATE_FIELD])
        if is_blank(raw_date):
            continue
        iso = normalize_date(raw_date)
        if iso is None:
            continue
        values = {
            attr_for_header[name]: normalize_number(grid.cell(row_idx, col))
            for name, col in positions.items()
            if name in attr_for_header
        }
        rows.append(MetricRow(date=iso, week=week_number(iso), **_metric_values(values)))
    return rows


def rows_frame(rows: list[MetricRow]):
    """Compiled rows as a DataFrame with the output column order."""
    import pandas as pd

    return pd.DataFrame([row.as_values() for row in rows], columns=list(FIELD_ORDER))

