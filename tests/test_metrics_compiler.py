from __future__ import annotations

import io
import os
import sys
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from sheet_tally.compiler import OUTPUT_STAMP_ENV, compile_documents, default_output_name, extract_document, merge
from sheet_tally.encoder import SHEET_TITLE, encode
from sheet_tally.errors import EmptyResultError
from sheet_tally.grid import Grid, decode
from sheet_tally.metrics import FIELD_ORDER, MetricRow, extract_metric_rows, read_compiled, rows_frame
from sheet_tally.schema import locate_metric
from workbooks import metric_rows, xlsx_bytes

MARCH = xlsx_bytes(metric_rows(
    [datetime(2024, 3, 10), "Total"],
    [["98.5%", 40, 1, 0, "95%", 42, 3, 44, "-"], [None] * 9],
))
JANUARY = xlsx_bytes(metric_rows(
    ["2024-01-05"],
    [[0.91, 38, None, 2, 0.95, 40, 2, 41, 45]],
))
FEBRUARY = xlsx_bytes(metric_rows(
    [45342],
    [["90%", 39, 0, 1, "95%", 40, 0, 40, 40]],
))


def row(date: str, week: int, score: float = 0, **values) -> MetricRow:
    return MetricRow(date=date, week=week, capacity_reliability_score=score, **values)


class MetricExtractionTests(unittest.TestCase):
    def test_one_row_per_date_column(self):
        (extracted,) = extract_document(MARCH, "march.xlsx")
        self.assertEqual(extracted.date, "2024-03-10")
        self.assertEqual(extracted.week, 11)
        self.assertAlmostEqual(extracted.capacity_reliability_score, 0.985)
        self.assertEqual(extracted.completed_routes, 40)
        self.assertEqual(extracted.reliability_target, 0.95)
        self.assertEqual(extracted.final_scheduled, 44)
        self.assertIsNone(extracted.dsp_available_capacity)

    def test_serial_header_is_a_date(self):
        (extracted,) = extract_document(FEBRUARY, "feb.xlsx")
        self.assertEqual(extracted.date, "2024-02-20")
        self.assertEqual(extracted.week, 8)

    def test_values_come_from_the_headers_own_column(self):
        grid = Grid.from_rows(metric_rows(
            ["2024-03-04", None, "2024-03-06"],
            [[0.9, 10], [0.1, 99], [0.8, 20]],
        ))
        rows = extract_metric_rows(locate_metric(grid))
        self.assertEqual([r.date for r in rows], ["2024-03-04", "2024-03-06"])
        self.assertEqual([r.completed_routes for r in rows], [10, 20])

    def test_non_date_headers_produce_no_row(self):
        grid = Grid.from_rows(metric_rows(["Week 10", "2024-03-06"], [[0.9], [0.8]]))
        rows = extract_metric_rows(locate_metric(grid))
        self.assertEqual([r.date for r in rows], ["2024-03-06"])

    def test_missing_score_defaults_to_zero_and_other_metrics_to_null(self):
        grid = Grid.from_rows(metric_rows(["2024-03-06"], [["-", None, "n/a"]]))
        (extracted,) = extract_metric_rows(locate_metric(grid))
        self.assertEqual(extracted.capacity_reliability_score, 0)
        self.assertIsNone(extracted.completed_routes)
        self.assertIsNone(extracted.amazon_paid_cancels)

    def test_record_uses_output_column_order(self):
        record = row("2024-03-10", 11, 0.5, completed_routes=3).as_record()
        self.assertEqual(list(record), list(FIELD_ORDER))
        self.assertEqual(record["Date"], "2024-03-10")
        self.assertEqual(record["Week#"], 11)
        self.assertEqual(record["Completed routes"], 3)

    def test_frame_view(self):
        frame = rows_frame([row("2024-03-10", 11, 0.5)])
        self.assertEqual(list(frame.columns), list(FIELD_ORDER))
        self.assertEqual(len(frame), 1)


class MergeTests(unittest.TestCase):
    def test_rows_are_sorted_by_date_across_documents(self):
        merged = merge([
            [row("2024-03-10", 11)],
            [row("2024-01-05", 1)],
            [row("2024-02-20", 8)],
        ])
        self.assertEqual([r.date for r in merged], ["2024-01-05", "2024-02-20", "2024-03-10"])

    def test_equal_dates_keep_input_order(self):
        first = row("2024-03-10", 11, 0.1)
        second = row("2024-03-10", 11, 0.2)
        merged = merge([[first], [row("2024-01-01", 1)], [second]])
        self.assertIs(merged[1], first)
        self.assertIs(merged[2], second)

    def test_nothing_to_merge_is_an_error(self):
        with self.assertRaises(EmptyResultError):
            merge([])
        with self.assertRaises(EmptyResultError):
            merge([[], []])


class CompileDocumentsTests(unittest.TestCase):
    def test_batch_is_merged_in_date_order(self):
        result = compile_documents([("march.xlsx", MARCH), ("jan.xlsx", JANUARY), ("feb.xlsx", FEBRUARY)])
        self.assertEqual([r.date for r in result.rows], ["2024-01-05", "2024-02-20", "2024-03-10"])
        self.assertEqual(result.summary, "Successfully compiled 3 rows from 3 file(s).")
        self.assertEqual(result.failures, [])

    def test_broken_documents_are_reported_not_fatal(self):
        result = compile_documents([("jan.xlsx", JANUARY), ("notes.xlsx", b"not a workbook")])
        self.assertEqual(len(result.rows), 1)
        self.assertEqual(result.documents_ok, 1)
        self.assertEqual(result.documents_total, 2)
        self.assertEqual([(f.name, f.error_kind) for f in result.failures], [("notes.xlsx", "decode")])
        self.assertIn("failures: notes.xlsx", result.summary)

    def test_documents_without_dates_are_warned_about(self):
        undated = xlsx_bytes(metric_rows(["Week 10"], [[0.9]]))
        result = compile_documents([("jan.xlsx", JANUARY), ("undated.xlsx", undated)])
        self.assertEqual(result.warnings, ["undated.xlsx: no date columns found"])

    def test_batch_with_no_rows_raises(self):
        with self.assertRaises(EmptyResultError) as ctx:
            compile_documents([("notes.xlsx", b"not a workbook"), ("stub.xlsx", b"PK\x03\x04x")])
        self.assertEqual([f.name for f in ctx.exception.failures], ["notes.xlsx", "stub.xlsx"])
        self.assertEqual({f.error_kind for f in ctx.exception.failures}, {"decode"})
        self.assertEqual(ctx.exception.documents_total, 2)
        self.assertIn("Processed 0 of 2 documents; failures: notes.xlsx", str(ctx.exception))
        self.assertIn("stub.xlsx", str(ctx.exception))
        with self.assertRaises(EmptyResultError):
            compile_documents([])

    def test_default_output_name_honours_stamp_override(self):
        with mock.patch.dict(os.environ, {OUTPUT_STAMP_ENV: "2024-04-01"}):
            self.assertEqual(default_output_name(), "Capacity-Reliability-Compiled-2024-04-01.xlsx")


class EncoderTests(unittest.TestCase):
    def setUp(self):
        self.rows = compile_documents([("march.xlsx", MARCH), ("jan.xlsx", JANUARY)]).rows
        self.raw = encode(self.rows)

    def test_workbook_layout_and_formatting(self):
        wb = load_workbook(io.BytesIO(self.raw))
        ws = wb.active
        self.assertEqual(ws.title, SHEET_TITLE)
        self.assertEqual([c.value for c in ws[1]], list(FIELD_ORDER))
        self.assertEqual(ws["A2"].value, "2024-01-05")
        self.assertEqual(ws["C2"].number_format, "0.0%")
        self.assertEqual(ws.column_dimensions["A"].width, 15)
        self.assertEqual(ws.freeze_panes, "A2")
        self.assertTrue(ws["A1"].font.bold)

    def test_compiled_workbook_reads_back_to_the_same_rows(self):
        self.assertEqual(read_compiled(decode(self.raw, "compiled.xlsx")), self.rows)


if __name__ == "__main__":
    unittest.main()
