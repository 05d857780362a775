from __future__ import annotations

import hashlib
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from typing import List, Optional, Tuple

import pdfplumber

from statement_parser import config
from statement_parser.json_logger import get_json_logger
from statement_parser.models import PageText

logger = get_json_logger("statement_parser.text_extraction")


def extract_page_texts(content: bytes, max_workers: Optional[int] = None) -> List[PageText]:
    """
    Extract plain text per page with pdfplumber.

    Layout mode keeps horizontal spacing so header column positions line up
    with amounts on data lines. Pages with no text layer yield empty text;
    the caller decides whether the document is usable.
    """
    document_id = hashlib.sha256(content).hexdigest()

    def process_single_page(idx: int) -> Tuple[int, str]:
        with pdfplumber.open(BytesIO(content)) as pdf_local:
            page = pdf_local.pages[idx]
            text = page.extract_text(layout=True) or ""
            # layout mode pads lines on the right
            text = "\n".join(line.rstrip() for line in text.splitlines())
            if len(text) > config.MAX_CHARS_PER_PAGE:
                text = text[: config.MAX_CHARS_PER_PAGE]
            return idx, text

    with pdfplumber.open(BytesIO(content)) as pdf:
        pages_count = len(pdf.pages)
    if pages_count > config.MAX_PAGES:
        logger.warning(
            "pdf_pages_exceed_limit",
            extra={"extra": {"document_id": document_id, "pages": pages_count, "max_pages": config.MAX_PAGES}},
        )
    indices = list(range(min(pages_count, config.MAX_PAGES)))

    workers = max(1, max_workers or config.PDF_MAX_WORKERS)
    results = {}
    if workers == 1 or len(indices) <= 1:
        for i in indices:
            idx, text = process_single_page(i)
            results[idx] = text
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            for idx, text in executor.map(process_single_page, indices):
                results[idx] = text

    pages = [PageText(page=idx + 1, text=results[idx]) for idx in sorted(results)]
    logger.info(
        "pdf_text_extracted",
        extra={"extra": {"document_id": document_id, "pages": pages_count, "chars": sum(len(p.text) for p in pages)}},
    )
    return pages
