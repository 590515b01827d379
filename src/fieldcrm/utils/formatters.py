"""Normalization and formatting helpers shared by the engines."""

import re
from datetime import datetime, timezone
from typing import Optional

_WHITESPACE = re.compile(r"\s+")


def normalize_key(value: Optional[str]) -> str:
    """Case-insensitive lookup key: trimmed, single-spaced, casefolded."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value.strip()).casefold()


def normalize_serial(value: Optional[str]) -> Optional[str]:
    """Trimmed upper-case serial, or None when nothing is left."""
    if value is None:
        return None
    cleaned = value.strip().upper()
    return cleaned or None


def utc_now_iso() -> str:
    """Current UTC time with microseconds, sortable as text."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse a stored timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_quantity(value: float) -> str:
    """Drop the trailing .0 on whole quantities."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def cell_text(value) -> str:
    """Trimmed text of an imported cell; spreadsheet numbers like 12345.0
    come back as "12345"."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()
