from __future__ import annotations

import re
from typing import List, Optional

from statement_parser.patterns import DEFAULT_PATTERNS, LinePatterns

_CELL_SPLIT_RE = re.compile(r"\s{2,}")
_HAS_LETTER_RE = re.compile(r"[A-Za-z]")


def split_cells(line: str) -> List[str]:
    return [cell for cell in _CELL_SPLIT_RE.split(line.strip()) if cell]


class LineClassifier:
    """
    Per-line predicates that decide whether a statement line is data,
    a table header, a summary/end marker or boilerplate.

    Segmenters must test summary/end before non-transaction, and both
    before date-start.
    """

    def __init__(self, patterns: LinePatterns = DEFAULT_PATTERNS) -> None:
        self.patterns = patterns

    def extract_date(self, line: str) -> Optional[str]:
        trimmed = line.strip()
        for pattern in self.patterns.date_patterns:
            match = pattern.match(trimmed)
            if match:
                return match.group(0)
        return None

    def starts_with_date(self, line: str) -> bool:
        return self.extract_date(line) is not None

    def is_header_line(self, line: str) -> bool:
        cells = split_cells(line)
        if len(cells) < 2:
            return False
        if not all(_HAS_LETTER_RE.search(cell) for cell in cells):
            return False
        return bool(self.patterns.header_keywords.match(cells[0]))

    def is_summary_or_end_line(self, line: str) -> bool:
        return any(p.search(line) for p in self.patterns.summary_patterns)

    def is_non_transaction_line(self, line: str) -> bool:
        return any(p.search(line) for p in self.patterns.skip_patterns)

    def find_amounts(self, text: str) -> List[str]:
        return self.patterns.amount.findall(text)

    def strip_amounts(self, text: str) -> str:
        return self.patterns.amount.sub("", text).strip()


default_classifier = LineClassifier()
