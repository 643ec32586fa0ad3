from __future__ import annotations

import logging
import re
import threading
from typing import Iterable, Iterator, Mapping

from sheet_tally.normalize import BLANK

logger = logging.getLogger(__name__)

DSP_EXCLUSION_PREFIX = "dsp initiated work"
BLANK_LABEL = "[Blank Cell]"

NUMERIC_TEXT_RE = re.compile(
    r"""^(?:
        [+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?
      | [+-]?Infinity
      | 0[xX][0-9a-fA-F]+
      | 0[bB][01]+
      | 0[oO][0-7]+
    )$""",
    re.VERBOSE,
)


def is_numeric_text(text: str) -> bool:
    stripped = text.strip()
    return bool(stripped) and NUMERIC_TEXT_RE.match(stripped) is not None


def classify_default(token: str) -> bool:
    """
    Default inclusion for a token seen for the first time.

    Blank cells, purely numeric text and DSP-initiated work categories start
    excluded; every other token starts included. '45%' is not purely numeric,
    so it starts included.
    """
    if token == BLANK:
        return False
    if is_numeric_text(token):
        return False
    if token.lower().startswith(DSP_EXCLUSION_PREFIX):
        return False
    return True


def token_label(token: str) -> str:
    return BLANK_LABEL if token == BLANK else token


def matching_tokens(tokens: Iterable[str], search: str = "") -> list[str]:
    """Tokens visible under a search box: substring match on the lower-cased term."""
    needle = search.lower()
    return [token for token in tokens if not needle or needle in token]


class FilterState(Mapping[str, bool]):
    """
    Inclusion flag per token, owned by one interactive session.

    A token's default is computed once, on first sight. Later ingestion only
    adds tokens that are missing; it never rewrites a flag already present,
    so user toggles survive re-uploads. Writes go through a lock so a batch
    of documents can be folded in from worker threads.
    """

    def __init__(self, flags: Mapping[str, bool] | None = None) -> None:
        self._flags: dict[str, bool] = dict(flags or {})
        self._lock = threading.Lock()

    def __getitem__(self, token: str) -> bool:
        return self._flags[token]

    def __iter__(self) -> Iterator[str]:
        return iter(self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"FilterState({self._flags!r})"

    def is_included(self, token: str) -> bool:
        # Tokens never ingested count as included.
        return self._flags.get(token, True)

    def ingest(self, tokens: Iterable[str]) -> list[str]:
        """Add default entries for unseen tokens. Returns the tokens that were added."""
        added: list[str] = []
        with self._lock:
            for token in tokens:
                if token in self._flags:
                    continue
                self._flags[token] = classify_default(token)
                added.append(token)
        if added:
            logger.debug("Filter state gained %d tokens", len(added))
        return added

    def toggle(self, token: str) -> bool:
        with self._lock:
            current = self._flags.get(token)
            if current is None:
                current = classify_default(token)
            self._flags[token] = not current
            return self._flags[token]

    def set_many(self, tokens: Iterable[str], value: bool) -> None:
        with self._lock:
            for token in tokens:
                self._flags[token] = value

    def included(self) -> list[str]:
        return sorted(t for t, flag in self._flags.items() if flag)

    def excluded(self) -> list[str]:
        return sorted(t for t, flag in self._flags.items() if not flag)

    def copy(self) -> "FilterState":
        with self._lock:
            return FilterState(self._flags)

    def as_dict(self) -> dict[str, bool]:
        return dict(sorted(self._flags.items()))
