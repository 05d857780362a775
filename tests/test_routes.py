import uuid

import pytest
from fastapi.testclient import TestClient

from conftest import FakeStatementRepository
from main import get_app
from settings.config import settings
from settings.deps import get_statement_repo
from statement_parser.extract_tables import CONSOLIDATED_HEADERS, UnsupportedDocument
from statement_parser.models import ParsedRow, ParsedTable, StatementType
from transactions.identifier import generate_transaction_identifier
from upload_service import upload_route

USER = uuid.UUID("00000000-0000-0000-0000-000000000001")
HEADERS = {"X-User-ID": str(USER)}
PDF = ("cc.pdf", b"%PDF-1.4 fake", "application/pdf")


def _row(date, description, amount, line_number):
    identifier = generate_transaction_identifier(
        date=date, amount=amount, balance="0.00", description=description, default_year=2024
    )
    return ParsedRow(
        date=date,
        description=description,
        amount=amount,
        balance="0.00",
        identifier=identifier,
        page=1,
        line_number=line_number,
    )


def _fake_tables(content):
    return [
        ParsedTable(
            page=1,
            headers=list(CONSOLIDATED_HEADERS),
            rows=[_row("20 SEP", "GRAB TAXI", "15.40", 6), _row("25 SEP", "NETFLIX.COM", "19.98", 9)],
            inferred_year=2024,
            statement_type=StatementType.CREDIT_CARD,
        )
    ]


@pytest.fixture
def repo():
    return FakeStatementRepository()


@pytest.fixture
def client(repo, monkeypatch):
    monkeypatch.setattr(upload_route, "extract_tables_from_pdf", _fake_tables)
    app = get_app()
    app.dependency_overrides[get_statement_repo] = lambda: repo
    # no context manager: the lifespan (database startup) is not run
    return TestClient(app)


def _ingest(client, **data):
    return client.post("/statements/ingest", files={"file": PDF}, data=data, headers=HEADERS)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_parse_returns_rows_and_metadata(client):
    res = client.post("/statements/parse", files={"file": PDF}, headers=HEADERS)
    assert res.status_code == 200
    body = res.json()
    (table,) = body["tables"]
    assert table["page"] == 1
    assert table["headers"] == CONSOLIDATED_HEADERS
    assert table["rows"][0][:4] == ["20 SEP", "GRAB TAXI", "15.40", "0.00"]
    assert table["rows"][0][4].startswith("20240920-15.40-0.00-")
    assert body["metadata"]["period_start"] == "2024-09-20"
    assert body["metadata"]["period_end"] == "2024-09-25"
    assert body["metadata"]["statement_type_guess"] == "credit_card"


def test_missing_or_invalid_user_header(client):
    assert client.post("/statements/parse", files={"file": PDF}).status_code == 400
    res = client.post("/statements/parse", files={"file": PDF}, headers={"X-User-ID": "not-a-uuid"})
    assert res.status_code == 400


def test_non_pdf_upload_is_rejected(client):
    res = client.post("/statements/parse", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=HEADERS)
    assert res.status_code == 400
    assert res.json()["detail"] == "Only PDF files are allowed."


def test_oversized_upload_is_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_MB", 0)
    res = client.post("/statements/parse", files={"file": PDF}, headers=HEADERS)
    assert res.status_code == 413


def test_unsupported_document(client, monkeypatch):
    def unsupported(content):
        raise UnsupportedDocument()

    monkeypatch.setattr(upload_route, "extract_tables_from_pdf", unsupported)
    res = client.post("/statements/parse", files={"file": PDF}, headers=HEADERS)
    assert res.status_code == 422
    assert "text-based, tabular statements" in res.json()["detail"]


def test_ingest_then_duplicate(client, repo):
    first = _ingest(client, bank="Citi", currency="usd")
    assert first.status_code == 200
    body = first.json()
    assert body["result"]["is_duplicate"] is False
    assert body["result"]["count"] == 2
    assert body["result"]["status"] == "parsed"
    assert body["metadata"]["currency"] == "USD"
    assert body["metadata"]["bank"] == "Citi"

    second = _ingest(client).json()
    assert second["result"]["is_duplicate"] is True
    assert second["result"]["statement_id"] == body["result"]["statement_id"]
    assert len(repo.rows("statements")) == 1


def test_ingest_storage_failure_is_retryable(client, repo):
    repo.fail_on.add("add_imports")
    assert _ingest(client).status_code == 503
    repo.fail_on.clear()
    assert _ingest(client).json()["result"]["is_duplicate"] is False


def test_review_draft_and_commit_flow(client, repo):
    statement_id = _ingest(client).json()["result"]["statement_id"]

    pending = client.get("/statements/pending", headers=HEADERS).json()
    assert [(s["id"], s["status"]) for s in pending] == [(statement_id, "reviewing")]

    review = client.get(f"/statements/{statement_id}/review", headers=HEADERS).json()
    assert [t["description"] for t in review["new_transactions"]] == ["GRAB TAXI", "NETFLIX.COM"]
    assert review["duplicates"] == []

    netflix = next(i["id"] for i in repo.rows("transaction_imports") if i["description"] == "NETFLIX.COM")
    res = client.put(f"/statements/imports/{netflix}/draft", json={"action": "reject"}, headers=HEADERS)
    assert res.status_code == 204

    res = client.post(f"/statements/{statement_id}/commit", json={"decisions": []}, headers=HEADERS)
    assert res.status_code == 200
    assert res.json() == {
        "success": True,
        "statement_id": statement_id,
        "accepted": 1,
        "rejected": 1,
        "inserted": 1,
    }

    again = client.post(f"/statements/{statement_id}/commit", json={"decisions": []}, headers=HEADERS)
    assert again.status_code == 409

    listed = client.get("/statements", headers=HEADERS).json()
    assert listed[0]["status"] == "ingested"
    assert client.get("/statements/pending", headers=HEADERS).json() == []


def test_unknown_statement_is_404(client):
    missing = uuid.uuid4()
    assert client.get(f"/statements/{missing}/review", headers=HEADERS).status_code == 404
    assert client.post(f"/statements/{missing}/commit", json={}, headers=HEADERS).status_code == 404
    assert client.delete(f"/statements/{missing}", headers=HEADERS).status_code == 404
    res = client.put(f"/statements/imports/{missing}/draft", json={"action": "accept"}, headers=HEADERS)
    assert res.status_code == 404


def test_other_users_statement_is_hidden(client):
    statement_id = _ingest(client).json()["result"]["statement_id"]
    other = {"X-User-ID": str(uuid.uuid4())}
    assert client.get(f"/statements/{statement_id}/review", headers=other).status_code == 404
    assert client.get("/statements", headers=other).json() == []


def test_delete_statement(client, repo):
    statement_id = _ingest(client).json()["result"]["statement_id"]
    assert client.delete(f"/statements/{statement_id}", headers=HEADERS).status_code == 204
    assert repo.rows("statements") == []
    assert client.get(f"/statements/{statement_id}/review", headers=HEADERS).status_code == 404


def test_duplicate_upload_is_answered_before_parsing(client, repo, monkeypatch):
    calls = []

    def counting_tables(content):
        calls.append(content)
        return _fake_tables(content)

    monkeypatch.setattr(upload_route, "extract_tables_from_pdf", counting_tables)
    first = _ingest(client, bank="Citi", currency="usd").json()
    second = _ingest(client)

    assert len(calls) == 1
    assert second.status_code == 200
    body = second.json()
    assert body["result"] == {
        "statement_id": first["result"]["statement_id"],
        "is_duplicate": True,
        "count": 0,
        "status": "parsed",
        "skipped": 0,
    }
    # metadata comes from the stored statement, not the new form fields
    assert body["metadata"]["bank"] == "Citi"
    assert body["metadata"]["currency"] == "USD"
    assert body["metadata"]["statement_type_guess"] == "credit_card"
    assert body["metadata"]["period_start"] == "2024-09-20"


def test_duplicate_upload_survives_a_parser_change(client, repo, monkeypatch):
    statement_id = _ingest(client).json()["result"]["statement_id"]

    def unsupported(content):
        raise UnsupportedDocument()

    monkeypatch.setattr(upload_route, "extract_tables_from_pdf", unsupported)
    res = _ingest(client)
    assert res.status_code == 200
    assert res.json()["result"]["is_duplicate"] is True
    assert res.json()["result"]["statement_id"] == statement_id


def test_duplicate_lookup_failure_is_retryable(client, repo):
    repo.fail_on.add("get_statement_by_hash")
    assert _ingest(client).status_code == 503
    assert repo.rows("statements") == []


def test_read_failures_are_503(client, repo):
    statement_id = _ingest(client).json()["result"]["statement_id"]

    repo.fail_on.add("list_statements")
    assert client.get("/statements", headers=HEADERS).status_code == 503
    assert client.get("/statements/pending", headers=HEADERS).status_code == 503

    repo.fail_on = {"get_statement"}
    assert client.get(f"/statements/{statement_id}/review", headers=HEADERS).status_code == 503
    assert client.delete(f"/statements/{statement_id}", headers=HEADERS).status_code == 503

    repo.fail_on = {"get_statement_for_update"}
    res = client.post(f"/statements/{statement_id}/commit", json={"decisions": []}, headers=HEADERS)
    assert res.status_code == 503
    assert repo.rows("statements")[0]["status"] == "parsed"
