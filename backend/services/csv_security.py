"""CSV cell hygiene for chat-history imports and templates."""

from __future__ import annotations

import unicodedata
from typing import Optional

# Formula trigger characters used by spreadsheet apps.
CSV_INJECTION_CHARS = ("=", "+", "-", "@")


def _skip_invisible(value: str, idx: int) -> int:
    while idx < len(value):
        ch = value[idx]
        if ch.isspace() or unicodedata.category(ch) == "Cf":
            idx += 1
            continue
        break
    return idx


def sanitize_csv_field(value: Optional[str]) -> str:
    """
    Neutralize a value before it is written into a CSV file we hand out.

    Control characters become spaces; values starting with a formula trigger
    are prefixed with an apostrophe.
    """
    if value is None:
        return ""

    normalized = "".join(
        " " if unicodedata.category(ch) in ("Cc", "Zl", "Zp") else ch
        for ch in str(value)
    )

    idx = _skip_invisible(normalized, 0)
    if idx < len(normalized) and normalized[idx] in CSV_INJECTION_CHARS:
        return "'" + normalized
    return normalized


def strip_csv_formula_guard(value: str) -> str:
    """
    Undo a spreadsheet formula guard on import.

    Exports from spreadsheet tools often prefix text such as "-ok" or "=)"
    with an apostrophe. Remove one apostrophe when it directly protects a
    formula trigger, so the message text matches what was typed.
    """
    if not isinstance(value, str) or not value.startswith("'"):
        return value

    idx = _skip_invisible(value, 1)
    if idx < len(value) and value[idx] in CSV_INJECTION_CHARS:
        return value[1:]
    if value.startswith("''"):
        idx = _skip_invisible(value, 2)
        if idx < len(value) and value[idx] in CSV_INJECTION_CHARS:
            return value[1:]
    return value


def clean_cell(value: Optional[str]) -> str:
    """Trim, unify line endings and drop NUL characters from a parsed cell."""
    if value is None:
        return ""
    cleaned = (
        str(value)
        .replace("\r\n", "\n")
        .replace("\r", "\n")
        .replace("\x00", "")
        .strip()
    )
    return strip_csv_formula_guard(cleaned)
