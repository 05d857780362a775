from __future__ import annotations

import argparse
import json
import os
from typing import Any, Dict, List, Optional

from statement_parser.extract_tables import UnsupportedDocument, extract_tables_from_pdf
from statement_parser.metadata import derive_statement_metadata


def summarize(path: str, content: bytes, include_rows: bool = False, currency: str = "SGD") -> Dict[str, Any]:
    tables = extract_tables_from_pdf(content)
    table = tables[0]
    metadata = derive_statement_metadata(table, default_currency=currency)
    summary: Dict[str, Any] = {
        "file": path,
        "statement_type": table.statement_type.value,
        "inferred_year": table.inferred_year,
        "period_start": metadata.period_start.isoformat(),
        "period_end": metadata.period_end.isoformat(),
        "transactions": len(table.rows),
    }
    if include_rows:
        summary["headers"] = table.headers
        summary["rows"] = [row.as_cells() for row in table.rows]
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Parse PDF bank/credit card statements and print a summary")
    parser.add_argument("paths", nargs="+", help="PDF file paths")
    parser.add_argument("--rows", action="store_true", help="Include parsed rows in the output")
    parser.add_argument("--currency", default="SGD", help="Currency reported in the metadata (default: SGD)")
    args = parser.parse_args(argv)

    failures = 0
    for path in args.paths:
        if not os.path.exists(path):
            print(json.dumps({"file": path, "error": "not_found"}))
            failures += 1
            continue
        with open(path, "rb") as f:
            content = f.read()
        try:
            print(json.dumps(summarize(path, content, include_rows=args.rows, currency=args.currency)))
        except UnsupportedDocument as e:
            print(json.dumps({"file": path, "error": "unsupported", "detail": str(e)}))
            failures += 1
    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
