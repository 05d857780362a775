import os
import sys

# Keep parser events on the regular logging tree during tests
os.environ.setdefault("SP_JSON_EVENTS", "false")


def pytest_sessionstart(session):
    # Ensure project root is on sys.path so `statement_parser` and `upload_service` resolve
    project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


# --- Test utilities: Fake in-memory statement repository ---
import asyncio
import copy
import uuid
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from db.models import Statement, Transaction, TransactionImport


class FakeStatementRepository:
    """
    Mirrors StatementRepositoryPg over dicts.

    Writes are visible immediately; rollback() restores the state of the
    last commit(). Put a method name in `fail_on` to make it raise
    SQLAlchemyError, or in `yield_on` to hand control to other tasks after
    it has read.
    """

    def __init__(self) -> None:
        self._tables = {"statements": {}, "transaction_imports": {}, "transactions": {}}
        self._committed = copy.deepcopy(self._tables)
        self.fail_on = set()
        self.yield_on = set()
        self.commit_count = 0
        self.rollback_count = 0
        self._clock = datetime(2024, 10, 1, tzinfo=timezone.utc)

    def _maybe_fail(self, op: str) -> None:
        if op in self.fail_on:
            raise SQLAlchemyError(f"simulated failure in {op}")

    async def _maybe_yield(self, op: str) -> None:
        if op in self.yield_on:
            await asyncio.sleep(0)

    def _now(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    # Statements
    async def get_statement_by_hash(self, user_id, sha256):
        self._maybe_fail("get_statement_by_hash")
        for rec in self._tables["statements"].values():
            if rec["uploaded_by"] == user_id and rec["source_file_sha256"] == sha256:
                return Statement(**rec)
        return None

    async def create_statement(self, **fields):
        self._maybe_fail("create_statement")
        for rec in self._tables["statements"].values():
            if rec["uploaded_by"] == fields["uploaded_by"] and rec["source_file_sha256"] == fields["source_file_sha256"]:
                raise IntegrityError("INSERT INTO statements", {}, Exception("duplicate key uq_statements_user_file"))
        now = self._now()
        rec = {"id": uuid.uuid4(), "status": "ingesting", "created_at": now, "updated_at": now, **fields}
        self._tables["statements"][rec["id"]] = rec
        return Statement(**rec)

    async def get_statement(self, statement_id):
        self._maybe_fail("get_statement")
        rec = self._tables["statements"].get(statement_id)
        return Statement(**rec) if rec else None

    async def get_statement_for_update(self, statement_id):
        # no row locks here; the conditional set_status is what keeps commits apart
        self._maybe_fail("get_statement_for_update")
        rec = self._tables["statements"].get(statement_id)
        statement = Statement(**rec) if rec else None
        await self._maybe_yield("get_statement_for_update")
        return statement

    async def list_statements(self, user_id, statuses=None, limit=200):
        self._maybe_fail("list_statements")
        recs = [r for r in self._tables["statements"].values() if r["uploaded_by"] == user_id]
        if statuses is not None:
            allowed = set(statuses)
            recs = [r for r in recs if r["status"] in allowed]
        recs.sort(key=lambda r: r["created_at"], reverse=True)
        return [Statement(**r) for r in recs[:limit]]

    async def set_status(self, statement_id, status, expected=None):
        self._maybe_fail("set_status")
        rec = self._tables["statements"].get(statement_id)
        if rec is None or (expected is not None and rec["status"] != expected):
            return False
        rec["status"] = status
        return True

    async def delete_statement(self, statement_id):
        self._maybe_fail("delete_statement")
        imports = self._tables["transaction_imports"]
        for import_id in [k for k, v in imports.items() if v["statement_id"] == statement_id]:
            del imports[import_id]
        self._tables["statements"].pop(statement_id, None)

    # Staged imports
    async def add_imports(self, rows):
        self._maybe_fail("add_imports")
        for row in rows:
            rec = {"id": uuid.uuid4(), "notes": None, "existing_transaction_id": None, "created_at": self._now(), **row}
            self._tables["transaction_imports"][rec["id"]] = rec
        return len(rows)

    async def list_imports(self, statement_id, resolution="pending"):
        self._maybe_fail("list_imports")
        recs = [
            r
            for r in self._tables["transaction_imports"].values()
            if r["statement_id"] == statement_id and (resolution is None or r["resolution"] == resolution)
        ]
        recs.sort(key=lambda r: (r["date"], r.get("statement_page") or 0, r.get("line_number") or 0))
        imports = [TransactionImport(**r) for r in recs]
        await self._maybe_yield("list_imports")
        return imports

    async def get_import(self, import_id):
        self._maybe_fail("get_import")
        rec = self._tables["transaction_imports"].get(import_id)
        return TransactionImport(**rec) if rec else None

    async def set_import_notes(self, import_id, notes):
        self._maybe_fail("set_import_notes")
        self._tables["transaction_imports"][import_id]["notes"] = notes

    async def set_import_resolutions(self, resolutions):
        self._maybe_fail("set_import_resolutions")
        for import_id, resolution in resolutions.items():
            self._tables["transaction_imports"][import_id]["resolution"] = resolution

    # Transactions
    async def find_existing_identifiers(self, user_id, identifiers):
        wanted = set(identifiers)
        return {
            r["transaction_identifier"]: r["id"]
            for r in self._tables["transactions"].values()
            if r["user_id"] == user_id and r["transaction_identifier"] in wanted
        }

    async def get_transactions(self, transaction_ids):
        self._maybe_fail("get_transactions")
        ids = set(transaction_ids)
        return {k: Transaction(**v) for k, v in self._tables["transactions"].items() if k in ids}

    async def insert_transactions(self, rows):
        self._maybe_fail("insert_transactions")
        inserted = 0
        for row in rows:
            taken = any(
                r["user_id"] == row["user_id"] and r["transaction_identifier"] == row["transaction_identifier"]
                for r in self._tables["transactions"].values()
            )
            if taken:
                continue
            rec = {"id": uuid.uuid4(), "created_at": self._now(), **row}
            self._tables["transactions"][rec["id"]] = rec
            inserted += 1
        return inserted

    def _active(self, user_id, month=None, statement_id=None, status="active"):
        return [
            r
            for r in self._tables["transactions"].values()
            if r["user_id"] == user_id
            and r["status"] == status
            and (month is None or r["month_bucket"] == month)
            and (statement_id is None or r["statement_id"] == statement_id)
        ]

    async def list_transactions(self, user_id, month=None, statement_id=None, status="active", limit=1000):
        self._maybe_fail("list_transactions")
        recs = self._active(user_id, month, statement_id, status)
        recs.sort(key=lambda r: (r.get("statement_page") or 0, r.get("line_number") or 0))
        recs.sort(key=lambda r: r["date"], reverse=True)
        return [Transaction(**r) for r in recs[:limit]]

    async def list_months(self, user_id):
        self._maybe_fail("list_months")
        months = {r["month_bucket"] for r in self._tables["transactions"].values() if r["user_id"] == user_id}
        return sorted(months, reverse=True)

    async def summarize_transactions(self, user_id, month=None, statement_id=None):
        from decimal import Decimal

        self._maybe_fail("summarize_transactions")
        recs = self._active(user_id, month, statement_id)
        spent = sum((Decimal(r["amount"]) for r in recs if Decimal(r["amount"]) > 0), Decimal("0"))
        statements = {r["statement_id"] for r in recs if r["statement_id"] is not None}
        return spent, len(recs), len(statements)

    async def commit(self):
        self._maybe_fail("commit")
        self._committed = copy.deepcopy(self._tables)
        self.commit_count += 1

    async def rollback(self):
        self._tables = copy.deepcopy(self._committed)
        self.rollback_count += 1

    # Test helpers
    def rows(self, table: str):
        return list(self._tables[table].values())

    def seed_transaction(self, user_id, identifier, **fields):
        from datetime import date
        from decimal import Decimal

        rec = {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "statement_id": None,
            "transaction_identifier": identifier,
            "date": date(2024, 9, 1),
            "month_bucket": "2024-09",
            "description": "seeded",
            "amount": Decimal("10.00"),
            "balance": None,
            "statement_page": None,
            "line_number": None,
            "status": "active",
            "created_at": self._now(),
            **fields,
        }
        self._tables["transactions"][rec["id"]] = rec
        self._committed = copy.deepcopy(self._tables)
        return rec["id"]


@pytest_asyncio.fixture
async def fake_repo():
    # Provide a fresh fake repository per test function
    repo = FakeStatementRepository()
    yield repo
