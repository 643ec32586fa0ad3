"""
word_filter.py — Categorical counting over the word-filter layout.

For every dated header column, count the data cells whose token is currently
included by the session's FilterState. Counts are a pure projection of the
retained grid and the filter state; they are recomputed from scratch on
every call and never updated in place.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from sheet_tally.filters import FilterState
from sheet_tally.normalize import cell_text, display_date, normalize_date, normalize_token
from sheet_tally.schema import WordFilterLayout


@dataclass(frozen=True)
class AggregatedCount:
    date: str
    label: str
    raw: Any
    column: int
    count: int

    def as_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["raw"] = cell_text(self.raw)
        return payload


def column_tokens(layout: WordFilterLayout, column: int) -> list[str]:
    grid = layout.grid
    return [normalize_token(grid.cell(row, column)) for row in layout.data_rows]


def extract_tokens(layout: WordFilterLayout) -> set[str]:
    """Distinct tokens under every non-empty header; empty-header columns are not scanned."""
    tokens: set[str] = set()
    for column in layout.data_columns:
        tokens.update(column_tokens(layout, column))
    return tokens


def count_included(layout: WordFilterLayout, state: FilterState) -> list[AggregatedCount]:
    counts = []
    for header in layout.header_columns:
        count = sum(1 for token in column_tokens(layout, header.column) if state.is_included(token))
        canonical = normalize_date(header.raw) or cell_text(header.raw).strip()
        counts.append(
            AggregatedCount(
                date=canonical,
                label=display_date(header.raw),
                raw=header.raw,
                column=header.column,
                count=count,
            )
        )
    return counts


def counts_frame(counts: list[AggregatedCount]):
    import pandas as pd

    return pd.DataFrame(
        [{"Date": c.label, "Column": c.column, "Count": c.count} for c in counts],
        columns=["Date", "Column", "Count"],
    )
