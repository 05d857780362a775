from __future__ import annotations

import re

PAN_MASK = "****-****-****-****"
NUMBER_MASK = "**********"
REF_ID_MASK = "<ref_id_redacted>"

# Applied in order; earlier masks must not be re-matched by later patterns
_PAN_RE = re.compile(r"\b\d{4}[ -]?\d{4}[ -]?\d{4}[ -]?\d{4}\b")
_DASHED_NUMBER_RE = re.compile(r"\b\d{3,}(?:-\d{3,})+\b")
_LONG_DIGITS_RE = re.compile(r"\b\d{9,}\b")
# case-sensitive: lowercase words are never reference ids
_REF_ID_RE = re.compile(r"\b(?=[A-Z0-9]*\d)(?=[A-Z0-9]*[A-Z])[A-Z0-9]{10,}\b")


def sanitize_description(text: str) -> str:
    """Mask card numbers, account-like digit runs and reference ids in a description."""
    if not text:
        return text
    s = _PAN_RE.sub(PAN_MASK, text)
    s = _DASHED_NUMBER_RE.sub(NUMBER_MASK, s)
    s = _LONG_DIGITS_RE.sub(NUMBER_MASK, s)
    s = _REF_ID_RE.sub(REF_ID_MASK, s)
    return s
