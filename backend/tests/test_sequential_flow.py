import pytest

from app.errors import AppError
from app.models.batch_session import BatchSession
from app.models.clarification import ClarificationSession
from app.models.transaction import Transaction
from app.schemas.sequential import InitiateRequest, RecordApproval, TransactionEdit
from app.services.clarification_service import ClarificationService
from app.services.progress import ProgressReporter
from app.services.sequential_service import SequentialService

from conftest import FakeIndex, batch_of, call, complete_draft, incomplete_draft


def service(db, invoker, index):
    return SequentialService(db, invoker, index)


async def initiate(db, invoker, index, document, user, *drafts, reporter=None):
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(*drafts))
    return await service(db, invoker, index).initiate(InitiateRequest(document_id=document.id), user.id, reporter)


@pytest.mark.asyncio
async def test_three_records_approved_in_order(db, user, invoker, index, document):
    result = await initiate(
        db, invoker, index, document, user, complete_draft(0), complete_draft(1), complete_draft(2)
    )
    assert result.total_records == 3
    assert result.clarification_session_id is None

    svc = service(db, invoker, index)
    first = await svc.approve(result.session_id, user.id, 0)
    assert first.current_index == 1
    assert first.next_record.record_index == 1
    assert first.is_complete is False

    await svc.approve(result.session_id, user.id, 1)
    last = await svc.approve(result.session_id, user.id, 2)

    assert last.is_complete is True
    assert last.next_record is None
    batch = db.get(BatchSession, result.session_id)
    assert batch.status == "completed"
    assert batch.total_processed == 3
    assert batch.total_skipped == 0
    db.refresh(document)
    assert document.processed_transactions == 3
    assert len(index.indexed) == 3
    assert db.query(Transaction).count() == 3


@pytest.mark.asyncio
async def test_committed_transaction_fields(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0, amount=1234.5))

    approved = await service(db, invoker, index).approve(result.session_id, user.id, 0)

    transaction = approved.created_transaction
    assert transaction.amount == 1234.5
    assert transaction.currency == "NGN"
    assert transaction.transaction_type == "EXPENSE"
    assert transaction.status == "confirmed"
    assert transaction.reference_number
    assert transaction.summary == "Expense of 1,234.50 NGN: Purchase 0 (Merchant 0)"
    assert index.indexed == [(transaction.id, transaction.summary)]


@pytest.mark.asyncio
async def test_initiate_resumes_existing_session(db, user, invoker, index, document):
    first = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))

    second = await service(db, invoker, index).initiate(InitiateRequest(document_id=document.id), user.id)

    assert second.resumed is True
    assert second.session_id == first.session_id
    assert second.total_records == 2
    assert invoker.tool_call_count == 1
    assert db.query(BatchSession).count() == 1


@pytest.mark.asyncio
async def test_cursor_only_accepts_current_index(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))
    svc = service(db, invoker, index)

    with pytest.raises(AppError) as exc:
        await svc.approve(result.session_id, user.id, 1)
    assert exc.value.status_code == 400
    assert "does not match" in exc.value.message

    await svc.approve(result.session_id, user.id, 0)
    with pytest.raises(AppError):
        await svc.approve(result.session_id, user.id, 0)
    assert db.get(BatchSession, result.session_id).current_index == 1


@pytest.mark.asyncio
async def test_incomplete_record_cannot_be_approved(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, incomplete_draft(0), complete_draft(1))

    assert result.clarification_session_id is not None
    session = db.get(ClarificationSession, result.clarification_session_id)
    assert session.status == "active"
    assert session.record_index == 0

    with pytest.raises(AppError) as exc:
        await service(db, invoker, index).approve(result.session_id, user.id, 0)
    assert exc.value.message == "Transaction data is incomplete. Please complete clarification first."


@pytest.mark.asyncio
async def test_skip_closes_session_and_advances(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, incomplete_draft(0), incomplete_draft(1))

    skipped = await service(db, invoker, index).skip(result.session_id, user.id, 0)

    assert skipped.skipped_index == 0
    assert skipped.current_index == 1
    batch = db.get(BatchSession, result.session_id)
    assert batch.records[0].review_status == "skipped"
    assert db.get(ClarificationSession, result.clarification_session_id).status == "completed"
    # The next incomplete record gets its own session
    assert batch.records[1].clarification_session_id is not None
    assert batch.records[1].clarification_session_id != result.clarification_session_id


@pytest.mark.asyncio
async def test_skipping_last_record_completes_batch(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0))

    skipped = await service(db, invoker, index).skip(result.session_id, user.id, 0)

    assert skipped.is_complete is True
    batch = db.get(BatchSession, result.session_id)
    assert batch.status == "completed"
    assert batch.total_skipped == 1


@pytest.mark.asyncio
async def test_goto_opens_and_closes_sessions(db, user, invoker, index, document):
    result = await initiate(
        db, invoker, index, document, user, complete_draft(0), complete_draft(1), incomplete_draft(2)
    )
    svc = service(db, invoker, index)

    moved = await svc.goto(result.session_id, user.id, 2)
    assert moved.previous_index == 0
    assert moved.current_index == 2
    row = db.get(BatchSession, result.session_id).records[2]
    opened = db.get(ClarificationSession, row.clarification_session_id)
    assert opened.status == "active"

    back = await svc.goto(result.session_id, user.id, 1)
    assert back.current_record.record_index == 1
    db.refresh(opened)
    assert opened.status == "completed"

    with pytest.raises(AppError) as exc:
        await svc.goto(result.session_id, user.id, 3)
    assert exc.value.message == "Invalid transaction index. Must be between 0 and 2"


@pytest.mark.asyncio
async def test_goto_reopens_completed_batch(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))
    svc = service(db, invoker, index)
    await svc.skip(result.session_id, user.id, 0)
    await svc.skip(result.session_id, user.id, 1)
    assert db.get(BatchSession, result.session_id).status == "completed"

    await svc.goto(result.session_id, user.id, 0)
    batch = db.get(BatchSession, result.session_id)
    assert batch.status == "in_progress"
    assert batch.completed_at is None

    # A skipped record can still be approved once revisited
    approved = await svc.approve(result.session_id, user.id, 0)
    assert approved.created_transaction.amount == 2500.0


@pytest.mark.asyncio
async def test_skipped_incomplete_record_can_be_clarified_after_goto(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, incomplete_draft(0), complete_draft(1))
    svc = service(db, invoker, index)
    await svc.skip(result.session_id, user.id, 0)

    moved = await svc.goto(result.session_id, user.id, 0)
    session_id = moved.current_record.clarification_session_id
    assert session_id is not None
    assert session_id != result.clarification_session_id

    invoker.queue_tool_calls()
    invoker.queue_structured(complete_draft(0, amount=1800.0))
    reply = await ClarificationService(db, invoker).send_message(session_id, user.id, "It was groceries at Shoprite")
    assert reply.record.is_complete is True

    approved = await svc.approve(result.session_id, user.id, 0)

    assert approved.created_transaction.amount == 1800.0
    batch = db.get(BatchSession, result.session_id)
    assert batch.records[0].review_status == "approved"
    assert db.get(ClarificationSession, session_id).status == "completed"


@pytest.mark.asyncio
async def test_approve_many_collects_per_record_errors(db, user, invoker, index, document):
    result = await initiate(
        db, invoker, index, document, user, complete_draft(0), complete_draft(1), complete_draft(2)
    )
    svc = service(db, invoker, index)

    outcome = await svc.approve_many(result.session_id, user.id, [
        RecordApproval(index=0, edits=TransactionEdit(transaction_date="not-a-date")),
        RecordApproval(index=1, edits=TransactionEdit(amount=99.0, description="Fixed")),
        RecordApproval(index=2, approved=False),
        RecordApproval(index=7),
    ])

    assert outcome.total_created == 1
    assert outcome.created_transactions[0].index == 1
    assert outcome.created_transactions[0].transaction.amount == 99.0
    assert outcome.created_transactions[0].transaction.description == "Fixed"
    assert {e.index: e.error for e in outcome.errors} == {
        0: "Invalid transaction date",
        7: "Invalid transaction index",
    }
    assert outcome.status == "in_progress"

    batch = db.get(BatchSession, result.session_id)
    assert [r.review_status for r in batch.records] == ["pending", "approved", "skipped"]
    assert batch.current_index == 0

    rest = await svc.approve_many(result.session_id, user.id, [RecordApproval(index=0)])
    assert rest.status == "completed"
    db.refresh(batch)
    assert batch.total_processed == 2
    assert batch.total_skipped == 1


@pytest.mark.asyncio
async def test_zero_records_fails_the_batch(db, user, invoker, index, document):
    with pytest.raises(AppError) as exc:
        await initiate(db, invoker, index, document, user)

    assert exc.value.status_code == 400
    batch = db.query(BatchSession).one()
    assert batch.status == "failed"
    assert batch.error_message == "No transactions found in document"


@pytest.mark.asyncio
async def test_no_tool_calls_fails_the_batch(db, user, invoker, index, document):
    invoker.queue_tool_calls()
    reporter = ProgressReporter()

    with pytest.raises(AppError):
        await service(db, invoker, index).initiate(InitiateRequest(document_id=document.id), user.id, reporter)

    batch = db.query(BatchSession).one()
    assert batch.status == "failed"
    assert batch.error_message == "AI did not call any tools. Cannot proceed with extraction."
    assert reporter.events[-1].step == "error"


@pytest.mark.asyncio
async def test_initiate_reports_progress(db, user, invoker, index, document):
    reporter = ProgressReporter()

    await initiate(db, invoker, index, document, user, complete_draft(0), reporter=reporter)

    steps = [e.step for e in reporter.events]
    assert steps[0] == "validating"
    assert steps[-1] == "complete"
    assert steps.count("complete") == 1
    progress = [e.progress for e in reporter.events]
    assert progress == sorted(progress)
    assert reporter.events[-1].metadata["total_records"] == 1


@pytest.mark.asyncio
async def test_complete_marks_remaining_skipped(db, user, invoker, index, document):
    result = await initiate(
        db, invoker, index, document, user, complete_draft(0), incomplete_draft(1), complete_draft(2)
    )
    svc = service(db, invoker, index)
    await svc.approve(result.session_id, user.id, 0)

    done = await svc.complete(result.session_id, user.id)

    assert done.total_processed == 1
    assert done.total_skipped == 2
    batch = db.get(BatchSession, result.session_id)
    assert [r.review_status for r in batch.records] == ["approved", "skipped", "skipped"]
    assert db.query(ClarificationSession).filter(ClarificationSession.status != "completed").count() == 0


@pytest.mark.asyncio
async def test_rejected_batch_is_closed(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, incomplete_draft(0))
    svc = service(db, invoker, index)

    rejected = await svc.reject(result.session_id, user.id)

    assert rejected.success is True
    assert db.get(BatchSession, result.session_id).status == "rejected"
    assert db.get(ClarificationSession, result.clarification_session_id).status == "completed"
    with pytest.raises(AppError):
        await svc.skip(result.session_id, user.id, 0)
    with pytest.raises(AppError):
        await svc.goto(result.session_id, user.id, 0)


@pytest.mark.asyncio
async def test_embedding_failure_leaves_record_pending(db, user, invoker, document):
    result = await initiate(db, invoker, FakeIndex(), document, user, complete_draft(0))

    with pytest.raises(AppError) as exc:
        await service(db, invoker, FakeIndex(fail=True)).approve(result.session_id, user.id, 0)

    assert exc.value.status_code == 502
    batch = db.get(BatchSession, result.session_id)
    assert batch.records[0].review_status == "pending"
    assert batch.current_index == 0
    assert batch.total_processed == 0
    assert db.query(Transaction).count() == 0


@pytest.mark.asyncio
async def test_initiate_validation(db, user, other_user, invoker, index, document):
    svc = service(db, invoker, index)

    with pytest.raises(AppError) as exc:
        await svc.initiate(InitiateRequest(), user.id)
    assert exc.value.status_code == 400

    with pytest.raises(AppError) as exc:
        await svc.initiate(InitiateRequest(document_id=document.id), other_user.id)
    assert exc.value.status_code == 403

    with pytest.raises(AppError) as exc:
        await svc.initiate(InitiateRequest(document_id=document.id, user_bank_account_id="missing"), user.id)
    assert exc.value.message == "Bank account not found or inactive!"

    document.processing_status = "pending"
    db.commit()
    with pytest.raises(AppError) as exc:
        await svc.initiate(InitiateRequest(document_id=document.id), user.id)
    assert exc.value.message == "Document must be processed before initiating transactions!"
    assert invoker.tool_call_count == 0


@pytest.mark.asyncio
async def test_other_users_cannot_touch_a_batch(db, user, other_user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0))

    with pytest.raises(AppError) as exc:
        await service(db, invoker, index).approve(result.session_id, other_user.id, 0)
    assert exc.value.status_code == 403

    with pytest.raises(AppError) as exc:
        service(db, invoker, index).info("nope", user.id)
    assert exc.value.status_code == 404
