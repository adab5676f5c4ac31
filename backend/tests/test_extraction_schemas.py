import pytest
from pydantic import ValidationError

from app.schemas.extraction import ExtractionRecord, RecordDraft, TransactionDraft, TransactionFields

from conftest import complete_draft, incomplete_draft


def _fields(**overrides):
    data = dict(
        transaction_type="EXPENSE",
        amount=100.0,
        currency="NGN",
        transaction_direction="outbound",
        description="Lunch",
        time_sent="2026-01-10T12:00:00",
    )
    data.update(overrides)
    return TransactionFields(**data)


def test_complete_record_requires_transaction():
    with pytest.raises(ValidationError):
        ExtractionRecord(record_index=0, is_complete=True, confidence_score=1.0)


def test_complete_record_rejects_missing_fields():
    with pytest.raises(ValidationError):
        ExtractionRecord(
            record_index=0,
            is_complete=True,
            confidence_score=1.0,
            transaction=_fields(),
            missing_fields=["amount"],
        )


def test_incomplete_record_rejects_transaction():
    with pytest.raises(ValidationError):
        ExtractionRecord(
            record_index=0,
            is_complete=False,
            confidence_score=0.4,
            transaction=_fields(),
            missing_fields=["amount"],
        )


def test_incomplete_record_requires_missing_fields():
    with pytest.raises(ValidationError):
        ExtractionRecord(record_index=0, is_complete=False, confidence_score=0.4)


def test_needs_clarification_mirrors_completeness():
    record = ExtractionRecord(record_index=0, is_complete=True, confidence_score=1.0, transaction=_fields())
    assert record.needs_clarification is False
    assert record.model_dump()["needs_clarification"] is False


def test_complete_draft_becomes_complete_record():
    record = complete_draft(2).to_record()

    assert record.is_complete
    assert record.record_index == 2
    assert record.transaction.amount == 2500.0
    assert record.missing_fields is None
    assert record.questions is None


def test_draft_claiming_completeness_with_absent_fields_is_demoted():
    draft = RecordDraft(
        record_index=0,
        is_complete=True,
        confidence_score=1.0,
        transaction=TransactionDraft(transaction_type="EXPENSE", currency="NGN", description="Taxi"),
    )

    record = draft.to_record()

    assert not record.is_complete
    assert record.transaction is None
    assert {"amount", "transaction_direction", "time_sent"} <= set(record.missing_fields)
    assert {q.field for q in record.questions} >= {"amount", "time_sent"}
    assert record.confidence_score < 1.0


def test_incomplete_draft_keeps_model_questions():
    record = incomplete_draft(1, ["description"]).to_record()

    assert not record.is_complete
    assert record.missing_fields == ["description"]
    assert record.questions[0].question == "What is the description?"


def test_draft_without_transaction_lists_every_required_field():
    record = RecordDraft(record_index=0, is_complete=False).to_record()

    assert not record.is_complete
    assert "amount" in record.missing_fields
    assert len(record.questions) == len(record.missing_fields)


def test_record_index_override():
    assert complete_draft(5).to_record(record_index=0).record_index == 0


def test_counterparty_follows_direction():
    assert _fields(transaction_direction="inbound", sender_name="Payer").counterparty_name == "Payer"
    assert _fields(receiver_name="Payee").counterparty_name == "Payee"
