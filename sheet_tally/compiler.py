"""
compiler.py — Merge metric rows from a batch of documents into one workbook.

Public API:
    result = compile_documents([("week1.xlsx", raw1), ("week2.xls", raw2)])
    result.rows       — MetricRows from every readable document, sorted by date
    result.workbook   — encoded .xlsx bytes of result.rows
    result.failures   — DocumentFailure per document that could not be read

A document that cannot be decoded or located is skipped and reported; the
batch only fails (EmptyResultError) when no document yields any row.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence

from sheet_tally.encoder import encode
from sheet_tally.errors import DocumentFailure, EmptyResultError, SheetTallyError
from sheet_tally.grid import decode
from sheet_tally.metrics import MetricRow, extract_metric_rows
from sheet_tally.schema import locate_metric

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "Capacity-Reliability-Compiled"
OUTPUT_STAMP_ENV = "SHEET_TALLY_OUTPUT_STAMP"


@dataclass
class CompileResult:
    rows: list[MetricRow]
    workbook: bytes
    documents_total: int
    documents_ok: int
    failures: list[DocumentFailure] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        text = f"Successfully compiled {len(self.rows)} rows from {self.documents_ok} file(s)."
        if self.failures:
            names = ", ".join(f.name for f in self.failures)
            text += f" Processed {self.documents_ok} of {self.documents_total} documents; failures: {names}"
        return text


def merge(collections: Iterable[Sequence[MetricRow]]) -> list[MetricRow]:
    """
    Pool every collection and sort by canonical date.

    ISO dates sort correctly as strings. The sort is stable, and rows sharing
    a date are all kept.
    """
    pooled = [row for rows in collections for row in rows]
    if not pooled:
        raise EmptyResultError("No valid data could be extracted from the uploaded files.")
    return sorted(pooled, key=lambda row: row.date)


def extract_document(raw: bytes, name: str | None = None) -> list[MetricRow]:
    grid = decode(raw, name)
    return extract_metric_rows(locate_metric(grid))


def compile_documents(documents: Iterable[tuple[str, bytes]]) -> CompileResult:
    collections: list[list[MetricRow]] = []
    failures: list[DocumentFailure] = []
    warnings: list[str] = []
    total = 0

    for name, raw in documents:
        total += 1
        try:
            rows = extract_document(raw, name)
        except SheetTallyError as exc:
            logger.warning("Could not process file %s: %s", name, exc)
            failures.append(DocumentFailure.from_exception(name, exc))
            continue
        if not rows:
            warnings.append(f"{name}: no date columns found")
        collections.append(rows)

    try:
        rows = merge(collections)
    except EmptyResultError as exc:
        message = f"{exc} Processed {len(collections)} of {total} documents"
        if failures:
            message += "; failures: " + ", ".join(f"{f.name} ({f.message})" for f in failures)
        raise EmptyResultError(message, failures=failures, documents_total=total) from exc
    logger.info("Compiled %d rows from %d of %d documents", len(rows), len(collections), total)
    return CompileResult(
        rows=rows,
        workbook=encode(rows),
        documents_total=total,
        documents_ok=len(collections),
        failures=failures,
        warnings=warnings,
    )


def output_stamp() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def default_output_name() -> str:
    return f"{OUTPUT_PREFIX}-{output_stamp()}.xlsx"
