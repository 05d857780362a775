from __future__ import annotations

import re
from typing import List, Optional

from statement_parser.models import ColumnInfo

_GAP_RE = re.compile(r"(\s{2,})")

WITHDRAWAL_RE = re.compile(r"withdrawal|debit", re.IGNORECASE)
DEPOSIT_RE = re.compile(r"deposit|credit", re.IGNORECASE)
BALANCE_RE = re.compile(r"balance", re.IGNORECASE)


def extract_header_column_positions(header_line: str) -> List[ColumnInfo]:
    """
    Derive column spans from a header line with its original spacing.

    The line is split on runs of two or more spaces; offsets are counted
    against the untrimmed line so they line up with data lines.
    """
    columns: List[ColumnInfo] = []
    pos = 0
    for part in _GAP_RE.split(header_line):
        if _GAP_RE.fullmatch(part):
            pos += len(part)
            continue
        if part.strip():
            start = pos
            end = pos + len(part)
            columns.append(ColumnInfo(name=part.strip(), start_pos=start, center_pos=(start + end) / 2))
            pos = end
        else:
            pos += len(part)
    return columns


def find_column_for_amount(amount_pos: float, columns: List[ColumnInfo]) -> Optional[int]:
    """Index of the column whose centre is nearest; ties go to the first column."""
    best_idx: Optional[int] = None
    best_distance = float("inf")
    for idx, col in enumerate(columns):
        distance = abs(amount_pos - col.center_pos)
        if distance < best_distance:
            best_distance = distance
            best_idx = idx
    return best_idx


def find_column(columns: List[ColumnInfo], pattern: re.Pattern) -> Optional[int]:
    for idx, col in enumerate(columns):
        if pattern.search(col.name):
            return idx
    return None
