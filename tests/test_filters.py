from __future__ import annotations

import sys
import threading
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sheet_tally.filters import FilterState, classify_default, is_numeric_text, matching_tokens, token_label
from sheet_tally.normalize import BLANK


class ClassifyDefaultTests(unittest.TestCase):
    def test_blank_numeric_and_dsp_work_start_excluded(self):
        for token in (BLANK, "0", "12", "3.5", "-2", "1e3", " 7 ", "0x1F", "Infinity",
                      "DSP Initiated Work - Training", "dsp initiated work"):
            with self.subTest(token=token):
                self.assertFalse(classify_default(token))

    def test_everything_else_starts_included(self):
        for token in ("Called Out", "Late", "45%", "1,000", "Route 7", "Work DSP initiated", "__blank__"):
            with self.subTest(token=token):
                self.assertTrue(classify_default(token))

    def test_numeric_text_requires_the_whole_token(self):
        self.assertTrue(is_numeric_text(".5"))
        self.assertFalse(is_numeric_text("5 routes"))
        self.assertFalse(is_numeric_text(""))

    def test_blank_token_has_a_readable_label(self):
        self.assertEqual(token_label(BLANK), "[Blank Cell]")
        self.assertEqual(token_label("Late"), "Late")


class FilterStateTests(unittest.TestCase):
    def test_ingest_assigns_defaults_once(self):
        state = FilterState()
        added = state.ingest(["Called Out", "12", BLANK])
        self.assertEqual(added, ["Called Out", "12", BLANK])
        self.assertEqual(state.as_dict(), {"12": False, "Called Out": True, BLANK: False})
        self.assertEqual(state.ingest(["12", "Late"]), ["Late"])

    def test_reingest_never_overwrites_a_toggled_flag(self):
        state = FilterState()
        state.ingest(["Called Out", "12"])
        self.assertFalse(state.toggle("Called Out"))
        self.assertTrue(state.toggle("12"))
        state.ingest(["Called Out", "12"])
        self.assertFalse(state["Called Out"])
        self.assertTrue(state["12"])

    def test_toggle_of_unknown_token_flips_its_default(self):
        state = FilterState()
        self.assertTrue(state.toggle(BLANK))
        self.assertFalse(state.toggle("Late"))
        self.assertEqual(len(state), 2)

    def test_unknown_tokens_read_as_included(self):
        state = FilterState()
        self.assertTrue(state.is_included("never seen"))
        self.assertNotIn("never seen", state)

    def test_set_many_and_views(self):
        state = FilterState()
        state.ingest(["A", "B", "C"])
        state.set_many(["A", "C"], False)
        self.assertEqual(state.included(), ["B"])
        self.assertEqual(state.excluded(), ["A", "C"])

    def test_copy_is_independent(self):
        state = FilterState()
        state.ingest(["A"])
        clone = state.copy()
        clone.toggle("A")
        self.assertTrue(state["A"])
        self.assertFalse(clone["A"])

    def test_concurrent_ingest_keeps_one_entry_per_token(self):
        state = FilterState()
        tokens = [f"token-{i}" for i in range(200)] + [str(i) for i in range(200)]
        threads = [threading.Thread(target=state.ingest, args=(tokens,)) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self.assertEqual(len(state), 400)
        self.assertEqual(len(state.excluded()), 200)


class MatchingTokensTests(unittest.TestCase):
    def test_empty_search_matches_everything(self):
        self.assertEqual(matching_tokens(["b", "a"]), ["b", "a"])

    def test_search_term_is_lower_cased(self):
        tokens = ["called out", "Called Out", "late"]
        self.assertEqual(matching_tokens(tokens, "CALLED"), ["called out"])
        self.assertEqual(matching_tokens(tokens, "at"), ["late"])


if __name__ == "__main__":
    unittest.main()
