"""
Sequential Router - batch sessions for documents holding several transactions
"""
import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.agents.llm import ModelInvoker
from app.database import get_db
from app.routers.deps import get_user_id, get_model_invoker, get_similarity_index, get_session_factory
from app.schemas.sequential import (
    ApproveManyRequest,
    ApproveManyResult,
    ApproveRequest,
    ApproveResult,
    BatchInitiationResult,
    BatchSessionInfo,
    CompleteResult,
    CurrentRecordResponse,
    GoToRequest,
    GoToResult,
    InitiateRequest,
    RejectResult,
    SkipRequest,
    SkipResult,
)
from app.services.embedding_service import SimilarityIndex
from app.services.progress import QueueProgressReporter
from app.services.sequential_service import SequentialService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sequential", tags=["sequential"])

# Streamed initiations keep running when the client disconnects
_background_tasks = set()


def get_service(
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_model_invoker),
    index: SimilarityIndex = Depends(get_similarity_index),
) -> SequentialService:
    return SequentialService(db, invoker, index)


@router.post("/initiate", response_model=BatchInitiationResult)
async def initiate(
    payload: InitiateRequest,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    """Extract every transaction of a processed document, or resume its open session"""
    return await service.initiate(payload, user_id)


@router.post("/initiate/stream")
async def initiate_with_progress(
    payload: InitiateRequest,
    user_id: str = Depends(get_user_id),
    invoker: ModelInvoker = Depends(get_model_invoker),
    index: SimilarityIndex = Depends(get_similarity_index),
    session_factory=Depends(get_session_factory),
):
    """Same as /initiate, reporting progress as server-sent events"""
    reporter = QueueProgressReporter()

    async def run():
        db = session_factory()
        try:
            await SequentialService(db, invoker, index).initiate(payload, user_id, reporter)
        except Exception as e:
            # Already delivered to the stream as the terminal error event
            logger.warning(f"Streamed initiation for document {payload.document_id} failed: {e}")
        finally:
            db.close()

    task = asyncio.create_task(run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    async def event_stream():
        async for event in reporter.stream():
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{session_id}", response_model=BatchSessionInfo)
def get_session_info(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return service.info(session_id, user_id)


@router.get("/{session_id}/current", response_model=CurrentRecordResponse)
def get_current_transaction(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return service.current(session_id, user_id)


@router.post("/{session_id}/approve", response_model=ApproveResult)
async def approve_transaction(
    session_id: str,
    payload: ApproveRequest,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return await service.approve(session_id, user_id, payload.index, payload.edits)


@router.post("/{session_id}/skip", response_model=SkipResult)
async def skip_transaction(
    session_id: str,
    payload: SkipRequest,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return await service.skip(session_id, user_id, payload.index)


@router.post("/{session_id}/goto", response_model=GoToResult)
async def goto_transaction(
    session_id: str,
    payload: GoToRequest,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return await service.goto(session_id, user_id, payload.target_index)


@router.post("/{session_id}/approve-batch", response_model=ApproveManyResult)
async def approve_batch(
    session_id: str,
    payload: ApproveManyRequest,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    """Commit several records at once; per-record errors are returned, not raised"""
    return await service.approve_many(session_id, user_id, payload.approvals)


@router.post("/{session_id}/complete", response_model=CompleteResult)
async def complete_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return await service.complete(session_id, user_id)


@router.post("/{session_id}/reject", response_model=RejectResult)
async def reject_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: SequentialService = Depends(get_service),
):
    return await service.reject(session_id, user_id)
