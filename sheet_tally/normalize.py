"""
normalize.py — Turn raw grid cells into canonical dates, numbers and tokens.

Every interpretation of a cell's original representation lives here, so the
extractors never branch on whether a date arrived as a native date cell, a
serial day-number or a string.

All calendar arithmetic uses naive ``datetime.date`` values. Nothing consults
the process's local timezone, so a document yields the same dates wherever it
is processed.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta
from typing import Any

from sheet_tally.grid import ABSENT

BLANK = "__BLANK__"

# 1900 date system. Serials below 60 sit before the phantom 1900-02-29.
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_EPOCH_PRE_LEAP = date(1899, 12, 31)
EXCEL_PHANTOM_LEAP_SERIAL = 60

ISO_PREFIX_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:$|[T\s])")
YMD_SLASH_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
US_DATE_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2}|\d{4})$")
LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

TEXT_DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%a, %b %d, %Y",
    "%A, %B %d, %Y",
)


# ══════════════════════════════════════════════════════════════════════════════
# DATES
# ══════════════════════════════════════════════════════════════════════════════

def serial_to_date(serial: float) -> date | None:
    """Convert a spreadsheet day-serial (1900 system) to a calendar date; time of day is dropped."""
    if isinstance(serial, float) and not math.isfinite(serial):
        return None
    days = int(math.floor(serial))
    if days < 1:
        return None
    try:
        if days < EXCEL_PHANTOM_LEAP_SERIAL:
            return EXCEL_EPOCH_PRE_LEAP + timedelta(days=days)
        if days == EXCEL_PHANTOM_LEAP_SERIAL:
            return date(1900, 3, 1)
        return EXCEL_EPOCH + timedelta(days=days)
    except OverflowError:
        return None


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_date_text(value: str) -> date | None:
    v = " ".join(value.split())
    if not v:
        return None

    m = ISO_PREFIX_RE.match(v)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = YMD_SLASH_RE.match(v)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    # Month-first, as the scheduling exports are US-formatted.
    m = US_DATE_RE.match(v)
    if m:
        month, day, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if len(m.group(3)) == 2:
            year = 2000 + year if year < 50 else 1900 + year
        return _safe_date(year, month, day)

    for fmt in TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    return None


def to_calendar_date(raw: Any) -> date | None:
    if raw is ABSENT or raw is None or isinstance(raw, (bool, time)):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)):
        return serial_to_date(raw)
    if isinstance(raw, str):
        return _parse_date_text(raw)
    return None


def normalize_date(raw: Any) -> str | None:
    """Return the cell as a canonical ``YYYY-MM-DD`` string, or None when it is not a date."""
    parsed = to_calendar_date(raw)
    if parsed is None:
        return None
    return parsed.isoformat()


def week_number(value: "str | date") -> int:
    """
    Sunday-start week of the year; week 1 is the week holding January 1.

    ceil((day_of_year + weekday_of_jan1) / 7), with weekday 0 = Sunday.
    """
    d = date.fromisoformat(value) if isinstance(value, str) else value
    jan1 = date(d.year, 1, 1)
    day_of_year = (d - jan1).days + 1
    jan1_weekday = (jan1.weekday() + 1) % 7
    return math.ceil((day_of_year + jan1_weekday) / 7)


# ══════════════════════════════════════════════════════════════════════════════
# NUMBERS
# ══════════════════════════════════════════════════════════════════════════════

def normalize_number(raw: Any) -> "int | float | None":
    """
    Numeric value of a metric cell.

    None for empty cells, '-', dates and text without a leading number. A '%'
    anywhere in a string divides the parsed value by 100. Like the exports'
    own reader, text is parsed up to the first non-numeric character, so
    '12 routes' gives 12. 'Infinity' is not a metric value and gives None.
    """
    if raw is ABSENT or raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and math.isnan(raw):
            return None
        return raw
    if not isinstance(raw, str):
        return None

    stripped = raw.strip()
    if stripped in ("", "-"):
        return None
    candidate = raw.replace("%", "", 1).strip()
    m = LEADING_NUMBER_RE.match(candidate)
    if not m:
        return None
    value = float(m.group(0))
    if "%" in raw:
        return value / 100
    return value


# ══════════════════════════════════════════════════════════════════════════════
# TOKENS
# ══════════════════════════════════════════════════════════════════════════════

def cell_text(raw: Any) -> str:
    """Display text of a cell, without trimming. Integral floats lose their '.0'."""
    if raw is ABSENT or raw is None:
        return ""
    if isinstance(raw, bool):
        return "TRUE" if raw else "FALSE"
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    if isinstance(raw, datetime):
        if raw.time() == time(0, 0):
            return raw.date().isoformat()
        return raw.isoformat(sep=" ")
    if isinstance(raw, (date, time)):
        return raw.isoformat()
    return str(raw)


def normalize_token(raw: Any) -> str:
    token = cell_text(raw).strip()
    return token if token else BLANK


# ══════════════════════════════════════════════════════════════════════════════
# DISPLAY
# ══════════════════════════════════════════════════════════════════════════════

def display_date(raw: Any) -> str:
    """Header value as 'Mar 5, 2024' when it reads as a date, else its text ('N/A' when empty)."""
    parsed = to_calendar_date(raw)
    if parsed is not None:
        return f"{parsed:%b} {parsed.day}, {parsed.year}"
    text = cell_text(raw).strip()
    return text or "N/A"


def preview_date(iso: str) -> str:
    year, month, day = iso.split("-")
    return f"{month}/{day}/{year}"


def format_percent(value: "float | None") -> str:
    if value is None:
        return "-"
    return f"{value * 100:.1f}%"
