import uuid
from datetime import date
from decimal import Decimal

import pytest

from schemas.statements import StatementMetadata
from statement_parser.models import StatementType
from transactions.identifier import generate_transaction_identifier
from upload_service.errors import PersistenceError
from upload_service.ingest import build_import_rows, file_sha256, ingest
from upload_service.models import TransactionRowIn

USER = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER = uuid.UUID("00000000-0000-0000-0000-000000000002")
PDF = b"%PDF-1.4 statement bytes"

METADATA = StatementMetadata(
    period_start=date(2024, 9, 20),
    period_end=date(2024, 9, 25),
    currency="SGD",
    statement_type_guess=StatementType.CREDIT_CARD,
)

ROWS = [
    TransactionRowIn(date="20 SEP", description="GRAB TAXI", amount="15.40", statement_page=1, line_number=6),
    TransactionRowIn(date="25 SEP", description="NETFLIX.COM", amount="19.98", statement_page=1, line_number=9),
]


@pytest.mark.asyncio
async def test_ingest_stages_pending_imports(fake_repo):
    result = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)

    assert not result.is_duplicate
    assert result.count == 2
    assert result.status == "parsed"
    assert result.skipped == 0

    (statement,) = fake_repo.rows("statements")
    assert statement["id"] == result.statement_id
    assert statement["source_file_sha256"] == file_sha256(PDF)
    assert statement["statement_type"] == "credit_card"
    assert statement["status"] == "parsed"

    imports = fake_repo.rows("transaction_imports")
    assert {i["resolution"] for i in imports} == {"pending"}
    grab = next(i for i in imports if i["description"] == "GRAB TAXI")
    assert grab["date"] == date(2024, 9, 20)
    assert grab["month_bucket"] == "2024-09"
    assert grab["amount"] == Decimal("15.40")
    assert grab["balance"] is None
    assert grab["existing_transaction_id"] is None
    assert grab["transaction_identifier"].startswith("20240920-15.40-0.00-")


@pytest.mark.asyncio
async def test_reingesting_same_bytes_is_a_duplicate(fake_repo):
    first = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)
    second = await ingest(fake_repo, "renamed.pdf", PDF, ROWS, METADATA, USER)

    assert second.is_duplicate
    assert second.statement_id == first.statement_id
    assert second.status == "parsed"
    assert len(fake_repo.rows("statements")) == 1
    assert len(fake_repo.rows("transaction_imports")) == 2


@pytest.mark.asyncio
async def test_same_bytes_for_another_user_is_new(fake_repo):
    await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)
    other = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, OTHER_USER)
    assert not other.is_duplicate
    assert len(fake_repo.rows("statements")) == 2


@pytest.mark.asyncio
async def test_concurrent_duplicate_is_resolved_by_unique_constraint(fake_repo):
    first = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)

    real_lookup = fake_repo.get_statement_by_hash
    calls = []

    async def racing_lookup(user_id, sha):
        calls.append(sha)
        if len(calls) == 1:
            return None
        return await real_lookup(user_id, sha)

    fake_repo.get_statement_by_hash = racing_lookup
    result = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)

    assert result.is_duplicate
    assert result.statement_id == first.statement_id
    assert fake_repo.rollback_count == 1
    assert len(fake_repo.rows("statements")) == 1


@pytest.mark.asyncio
async def test_known_identifiers_are_linked_to_stored_transactions(fake_repo):
    identifier = generate_transaction_identifier(
        date="20 SEP", amount="15.40", balance="0.00", description="GRAB TAXI", default_year=2024
    )
    stored_id = fake_repo.seed_transaction(USER, identifier)

    await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)

    linked = {i["description"]: i["existing_transaction_id"] for i in fake_repo.rows("transaction_imports")}
    assert linked == {"GRAB TAXI": stored_id, "NETFLIX.COM": None}


@pytest.mark.asyncio
async def test_other_users_transactions_are_not_duplicates(fake_repo):
    identifier = generate_transaction_identifier(
        date="20 SEP", amount="15.40", balance="0.00", description="GRAB TAXI", default_year=2024
    )
    fake_repo.seed_transaction(OTHER_USER, identifier)

    await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)
    assert all(i["existing_transaction_id"] is None for i in fake_repo.rows("transaction_imports"))


@pytest.mark.asyncio
async def test_statement_without_usable_rows_is_marked_failed(fake_repo):
    rows = [TransactionRowIn(date="31/02/2024", description="BAD", amount="1.00")]
    result = await ingest(fake_repo, "bad.pdf", PDF, rows, METADATA, USER)

    assert result.status == "failed"
    assert result.count == 0
    assert result.skipped == 1
    assert fake_repo.rows("statements")[0]["status"] == "failed"
    assert fake_repo.rows("transaction_imports") == []


@pytest.mark.asyncio
async def test_staging_failure_removes_the_statement(fake_repo):
    fake_repo.fail_on.add("add_imports")

    with pytest.raises(PersistenceError) as exc:
        await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)

    assert exc.value.retryable
    assert fake_repo.rows("statements") == []
    assert fake_repo.rows("transaction_imports") == []

    # the upload can simply be retried
    fake_repo.fail_on.clear()
    retry = await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)
    assert not retry.is_duplicate
    assert retry.count == 2


@pytest.mark.asyncio
async def test_statement_creation_failure(fake_repo):
    fake_repo.fail_on.add("create_statement")
    with pytest.raises(PersistenceError):
        await ingest(fake_repo, "cc.pdf", PDF, ROWS, METADATA, USER)
    assert fake_repo.rows("statements") == []


def test_build_import_rows_years_balances_and_skips():
    statement_id = uuid.uuid4()
    rows = [
        TransactionRowIn(date="02/01/2025", description="NEW YEAR", amount="12.50", balance="4,987.50"),
        TransactionRowIn(date="28 DEC", description="XMAS", amount="1,000", balance=""),
        TransactionRowIn(date="29 DEC", description="BROKEN", amount="abc"),
    ]
    out = build_import_rows(statement_id, rows, default_year=2024)

    assert [r["description"] for r in out] == ["NEW YEAR", "XMAS"]
    assert out[0]["date"] == date(2025, 1, 2)
    assert out[0]["balance"] == Decimal("4987.50")
    assert out[0]["transaction_identifier"].startswith("20250102-12.50-4987.50-")
    assert out[1]["date"] == date(2024, 12, 28)
    assert out[1]["amount"] == Decimal("1000.00")
    assert out[1]["balance"] is None
    assert out[1]["transaction_identifier"].startswith("20241228-1000.00-0.00-")
    assert all(r["statement_id"] == statement_id and r["resolution"] == "pending" for r in out)


def test_row_model_coerces_numbers_and_blank_balances():
    row = TransactionRowIn(date="20 SEP", description="X", amount=Decimal("1.50"), balance="  ")
    assert row.amount == "1.50"
    assert row.balance is None
