import json

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.database import get_db
from app.main import app
from app.routers.deps import (
    get_detection_invoker,
    get_model_invoker,
    get_session_factory,
    get_similarity_index,
)
from app.schemas.document import DocumentDetection

from conftest import batch_of, call, complete_draft


@pytest.fixture
def client(session_factory, invoker, index):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_model_invoker] = lambda: invoker
    app.dependency_overrides[get_detection_invoker] = lambda: invoker
    app.dependency_overrides[get_similarity_index] = lambda: index
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(user):
    return {"X-User-Id": user.id}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_missing_user_header_is_unauthorized(client):
    response = client.get("/api/documents")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing X-User-Id header"


def test_register_and_process_document(client, headers, invoker):
    created = client.post("/api/documents", json={"filename": "receipt.txt"}, headers=headers)
    assert created.status_code == 200
    document_id = created.json()["id"]
    assert created.json()["processing_status"] == "pending"

    invoker.queue_structured(DocumentDetection(
        document_type="single_receipt", transaction_count=1, processing_mode="single", confidence=0.92,
    ))
    processed = client.post(
        f"/api/documents/{document_id}/process", json={"raw_text": "SHOPRITE 2,500.00"}, headers=headers
    )

    assert processed.status_code == 200
    body = processed.json()
    assert body["processing_status"] == "processed"
    assert body["detection"]["processing_mode"] == "single"


def test_initiate_and_approve_over_http(client, headers, invoker, index, document):
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(complete_draft(0), complete_draft(1)))

    initiated = client.post("/api/sequential/initiate", json={"document_id": document.id}, headers=headers)
    assert initiated.status_code == 200
    session_id = initiated.json()["session_id"]
    assert initiated.json()["total_records"] == 2

    current = client.get(f"/api/sequential/{session_id}/current", headers=headers).json()
    assert current["current_index"] == 0
    assert current["current_record"]["transaction"]["description"] == "Purchase 0"

    approved = client.post(f"/api/sequential/{session_id}/approve", json={"index": 0}, headers=headers)
    assert approved.status_code == 200
    assert approved.json()["current_index"] == 1

    wrong = client.post(f"/api/sequential/{session_id}/approve", json={"index": 0}, headers=headers)
    assert wrong.status_code == 400

    info = client.get(f"/api/sequential/{session_id}", headers=headers).json()
    assert info["total_processed"] == 1
    assert [r["review_status"] for r in info["records"]] == ["approved", "pending"]


def test_error_body_hides_operation_outside_development(client, headers, monkeypatch):
    response = client.get("/api/sequential/missing", headers=headers)
    assert response.status_code == 404
    assert response.json() == {"detail": "Batch session not found!"}

    monkeypatch.setattr(settings, "mode", "development")
    response = client.get("/api/sequential/missing", headers=headers)
    assert response.json() == {"detail": "Batch session not found!", "operation": "get_session_info"}


def test_initiate_stream_ends_with_complete(client, headers, invoker, document):
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(complete_draft(0)))

    response = client.post("/api/sequential/initiate/stream", json={"document_id": document.id}, headers=headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [json.loads(line[len("data: "):]) for line in response.text.splitlines() if line.startswith("data: ")]
    assert events[0]["step"] == "validating"
    assert events[-1]["step"] == "complete"
    assert events[-1]["metadata"]["total_records"] == 1
    assert [e["progress"] for e in events] == sorted(e["progress"] for e in events)


def test_initiate_stream_reports_errors(client, headers):
    response = client.post("/api/sequential/initiate/stream", json={"document_id": "missing"}, headers=headers)

    events = [json.loads(line[len("data: "):]) for line in response.text.splitlines() if line.startswith("data: ")]
    assert events[-1] == {**events[-1], "step": "error", "message": "Document not found!"}


def test_clarification_session_over_http(client, headers, invoker, document):
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(complete_draft(1), complete_draft(0)))
    client.post("/api/sequential/initiate", json={"document_id": document.id}, headers=headers)

    sessions = client.get("/api/clarifications", params={"document_id": document.id}, headers=headers)

    assert sessions.status_code == 200
    assert sessions.json() == []
    assert client.get("/api/clarifications/missing", headers=headers).status_code == 404
