from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Pattern, Tuple


_MONTHS = "JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC"

AMOUNT_RE = re.compile(r"\b\d{1,3}(?:,\d{3})*\.\d{2}\b")


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p, flags) for p in patterns)


@dataclass(frozen=True)
class LinePatterns:
    """
    Regex tables used to classify statement lines.

    Instances are immutable; derive a per-bank variant with `with_extra`.
    """

    date_patterns: Tuple[Pattern[str], ...]
    header_keywords: Pattern[str]
    summary_patterns: Tuple[Pattern[str], ...]
    skip_patterns: Tuple[Pattern[str], ...]
    amount: Pattern[str] = AMOUNT_RE
    foreign_currency: Pattern[str] = re.compile(
        r"\b(YEN|USD|EUR|GBP|JPY|AUD|NZD|MYR|HKD|THB|IDR|CNY|KRW|DOLLARS?|EUROS?|POUNDS?|PESOS?)\b",
        re.IGNORECASE,
    )

    def with_extra(
        self,
        summary: Tuple[str, ...] = (),
        skip: Tuple[str, ...] = (),
    ) -> "LinePatterns":
        return replace(
            self,
            summary_patterns=self.summary_patterns + _compile(*summary),
            skip_patterns=self.skip_patterns + _compile(*skip),
        )


DEFAULT_PATTERNS = LinePatterns(
    # First match wins. "D MON" comes first, so "01 Sep 2024" yields the date
    # "01 Sep" and the printed year stays at the front of the description.
    date_patterns=(
        re.compile(rf"^\d{{1,2}}\s+({_MONTHS})\b", re.IGNORECASE),  # 29 AUG
        re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}"),  # 05/09/2024
        re.compile(r"^\d{1,2}-\d{1,2}-\d{2,4}"),  # 05-09-2024
        re.compile(r"^\d{1,2}\s+\w{3}\s+\d{2,4}"),  # 05 Sep 2024
    ),
    header_keywords=re.compile(
        r"^(date|description|withdrawal|deposit|balance|amount|debit|credit|transaction|particulars|reference)",
        re.IGNORECASE,
    ),
    summary_patterns=_compile(
        r"^\s*total\b",
        r"\btotal\s*$",
        r"^-+\s*total\b",
        r"\bend\s+of\s+transaction",
        r"\bend\s+of\s+statement\b",
        r"\btotal\s+balance\b",
        r"\bclosing\s+balance\b",
        r"\bbalance\s+carried\s+forward\b",
        r"\bbalance\s+b\/?f\b.*total",
        r"\binterest\s+credit\s+total\b",
        r"\binterest\s+earned\b",
        r"\binterest\s+credit\b(?!.*fast)",  # not "Inward Credit-FAST"
        r"^-{3,}",
    ),
    # Balance B/F is not skipped: it seeds the running balance
    skip_patterns=_compile(
        r"\bprevious\s+balance\b",
        r"\bnew\s+transactions\b",
        r"\bstatement\s+date\b",
        r"\bcredit\s+limit\b",
        r"\bminimum\s+payment\b",
        r"\bpayment\s+due\b",
        r"\bplease\s+settle\b",
        r"\bplease\s+refer\b",
        r"\bfinance\s+charge\b",
        r"\btax\s+invoice\b",
        r"\bgst\s+registration\b",
        r"\bco\.\s*reg\b",
        r"\bcard\s+no\.?\s*:",
        r"\bsignature\s+card\s+no",
        r"\bvisa\s+signature\s+card",
        r"\baltitude\s+visa",
        r"\b\d{4}\s+\d{4}\s+\d{4}\s+\d{4}\b",
        r"\d+\.\d{2}\s+CR\s*$",
        r"per\s+annum\b",
        r"late\s+payment\s+charge\b",
        r"\$\s*\$",
        r"\$\d{1,3}(?:,\d{3})*\.\d{2}",
        r"ref\s*no\s*:",
    ),
)
