from __future__ import annotations

import os
from typing import Optional


def getenv_str(name: str, default: Optional[str] = None) -> str:
    v = os.getenv(name)
    return v if v is not None else default


def getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "on"}


# Below this many characters the document is treated as scanned/image-based
MIN_TEXT_LENGTH = getenv_int("SP_MIN_TEXT_LENGTH", 50)

# A block must yield at least this many rows to be emitted as a table
MIN_ROWS_FOR_TABLE = getenv_int("SP_MIN_ROWS_FOR_TABLE", 2)

# Credit card rows with longer descriptions are preamble that slipped through
MAX_DESCRIPTION_LENGTH = getenv_int("SP_MAX_DESCRIPTION_LENGTH", 150)

# Security limits for text extraction
MAX_PAGES = getenv_int("SP_MAX_PAGES", 200)
MAX_CHARS_PER_PAGE = getenv_int("SP_MAX_CHARS_PER_PAGE", 20000)

# Pages are extracted in parallel
PDF_MAX_WORKERS = getenv_int("SP_PDF_MAX_WORKERS", os.cpu_count() or 4)

# Placeholder balance for rows without a running balance (credit card statements)
BALANCE_FALLBACK = getenv_str("SP_BALANCE_FALLBACK", "0.00")

# Emit parse events through the JSON logger
JSON_EVENTS = getenv_bool("SP_JSON_EVENTS", True)
