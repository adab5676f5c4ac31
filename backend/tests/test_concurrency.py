import asyncio

import pytest

from app.errors import AppError
from app.models.batch_session import BatchSession
from app.models.transaction import Transaction
from app.schemas.sequential import InitiateRequest, RecordApproval
from app.services.record_store import commit_or_conflict
from app.services.sequential_service import SequentialService
from app.utils.locks import SessionLockRegistry, session_locks

from conftest import FakeIndex, batch_of, call, complete_draft


class SlowIndex(FakeIndex):
    """Yields to the event loop mid-approval so overlapping calls interleave."""

    async def index(self, record_id, text):
        await asyncio.sleep(0.01)
        return await super().index(record_id, text)


async def initiate(db, invoker, index, document, user, *drafts):
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(*drafts))
    return await SequentialService(db, invoker, index).initiate(InitiateRequest(document_id=document.id), user.id)


@pytest.mark.asyncio
async def test_stale_writer_gets_conflict(db, session_factory, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))
    other = session_factory()
    try:
        stale = other.get(BatchSession, result.session_id)
        version = stale.version

        await SequentialService(db, invoker, index).approve(result.session_id, user.id, 0)
        assert db.get(BatchSession, result.session_id).version > version

        stale.status = "rejected"
        with pytest.raises(AppError) as exc:
            commit_or_conflict(other, "reject_session")
        assert exc.value.status_code == 409
        assert exc.value.operation == "reject_session"
    finally:
        other.close()

    batch = db.get(BatchSession, result.session_id)
    db.refresh(batch)
    assert batch.status == "in_progress"
    assert batch.current_index == 1


@pytest.mark.asyncio
async def test_overlapping_approvals_advance_cursor_once(db, user, invoker, document):
    index = SlowIndex()
    result = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))
    svc = SequentialService(db, invoker, index)

    outcomes = await asyncio.gather(
        svc.approve(result.session_id, user.id, 0),
        svc.approve(result.session_id, user.id, 0),
        return_exceptions=True,
    )

    errors = [o for o in outcomes if isinstance(o, AppError)]
    approved = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(approved) == 1
    assert len(errors) == 1
    assert errors[0].status_code == 400
    assert "does not match" in errors[0].message
    assert approved[0].current_index == 1
    assert db.get(BatchSession, result.session_id).current_index == 1
    assert db.query(Transaction).count() == 1
    assert len(index.indexed) == 1


@pytest.mark.asyncio
async def test_overlapping_approve_many_commits_each_record_once(db, user, invoker, document):
    index = SlowIndex()
    result = await initiate(db, invoker, index, document, user, complete_draft(0), complete_draft(1))
    svc = SequentialService(db, invoker, index)
    approvals = [RecordApproval(index=0), RecordApproval(index=1)]

    await asyncio.gather(
        svc.approve_many(result.session_id, user.id, approvals),
        svc.approve_many(result.session_id, user.id, approvals),
        return_exceptions=True,
    )

    assert db.query(Transaction).count() == 2
    assert db.get(BatchSession, result.session_id).total_processed == 2


@pytest.mark.asyncio
async def test_lock_registry_forgets_released_keys():
    registry = SessionLockRegistry()
    order = []

    async def writer(name):
        async with registry.hold("batch-1"):
            order.append(f"{name} in")
            await asyncio.sleep(0)
            order.append(f"{name} out")

    await asyncio.gather(writer("a"), writer("b"))

    assert order == ["a in", "a out", "b in", "b out"]
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_shared_registry_is_empty_after_a_flow(db, user, invoker, index, document):
    result = await initiate(db, invoker, index, document, user, complete_draft(0))

    await SequentialService(db, invoker, index).approve(result.session_id, user.id, 0)

    assert len(session_locks) == 0
