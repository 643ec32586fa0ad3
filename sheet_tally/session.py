"""
session.py — Interactive word-filter session.

A session owns the uploaded documents (their grids are retained so counts
can be recomputed), the token inventory, and the FilterState. Counts are
never cached: every call to counts() is a full recomputation against the
current flags.
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from sheet_tally.errors import DocumentFailure, SheetTallyError
from sheet_tally.filters import FilterState, matching_tokens
from sheet_tally.grid import decode
from sheet_tally.schema import WordFilterLayout, locate_word_filter
from sheet_tally.word_filter import AggregatedCount, count_included, extract_tokens

logger = logging.getLogger(__name__)


@dataclass
class WordFilterDocument:
    doc_id: str
    name: str
    layout: WordFilterLayout
    tokens: frozenset[str]
    warnings: tuple[str, ...] = ()

    @property
    def company(self) -> str:
        return self.layout.company

    @property
    def station(self) -> str:
        return self.layout.station


@dataclass
class IngestResult:
    documents: list[WordFilterDocument] = field(default_factory=list)
    failures: list[DocumentFailure] = field(default_factory=list)
    new_tokens: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        total = len(self.documents) + len(self.failures)
        text = f"Processed {len(self.documents)} of {total} documents"
        if self.failures:
            text += "; failures: " + ", ".join(f"{f.name} ({f.message})" for f in self.failures)
        return text


def _prepare(name: str, raw: bytes) -> "tuple[WordFilterLayout, set[str], tuple[str, ...]] | SheetTallyError":
    try:
        grid = decode(raw, name)
        layout = locate_word_filter(grid)
    except SheetTallyError as exc:
        return exc
    return layout, extract_tokens(layout), grid.warnings


class WordFilterSession:
    def __init__(self, max_workers: int = 1) -> None:
        self.max_workers = max_workers
        self.reset()

    def reset(self) -> None:
        self.documents: dict[str, WordFilterDocument] = {}
        self.filter_state = FilterState()
        self._tokens: set[str] = set()
        self._ids = itertools.count(1)

    @property
    def inventory(self) -> list[str]:
        return sorted(self._tokens)

    def add_documents(self, documents: Iterable[tuple[str, bytes]]) -> IngestResult:
        """
        Decode and register a batch of documents.

        Decoding runs on a thread pool when max_workers > 1. Folding tokens
        into the inventory and FilterState happens afterwards, one document
        at a time, in upload order.
        """
        items = list(documents)
        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(lambda item: _prepare(*item), items))
        else:
            outcomes = [_prepare(name, raw) for name, raw in items]

        result = IngestResult()
        for (name, _), outcome in zip(items, outcomes):
            if isinstance(outcome, SheetTallyError):
                logger.warning("Error processing file %s: %s", name, outcome)
                result.failures.append(DocumentFailure.from_exception(name, outcome))
                continue
            layout, tokens, warnings = outcome
            doc = WordFilterDocument(
                doc_id=f"{name}-{next(self._ids)}",
                name=name,
                layout=layout,
                tokens=frozenset(tokens),
                warnings=warnings,
            )
            self.documents[doc.doc_id] = doc
            self._tokens.update(tokens)
            result.new_tokens.extend(self.filter_state.ingest(sorted(tokens)))
            result.documents.append(doc)

        result.new_tokens.sort()
        logger.info("%s", result.summary)
        return result

    def remove_document(self, doc_id: str) -> bool:
        # The inventory and flags outlive the document they came from.
        return self.documents.pop(doc_id, None) is not None

    def toggle(self, token: str) -> bool:
        return self.filter_state.toggle(token)

    def set_many(self, tokens: Iterable[str], value: bool) -> None:
        self.filter_state.set_many(tokens, value)

    def set_visible(self, search: str, value: bool) -> list[str]:
        """Select all / none among the inventory tokens matching a search term."""
        visible = matching_tokens(self.inventory, search)
        self.set_many(visible, value)
        return visible

    def counts(self) -> dict[str, list[AggregatedCount]]:
        return {
            doc_id: count_included(doc.layout, self.filter_state)
            for doc_id, doc in self.documents.items()
        }
