"""
Persistence helpers shared by the batch and clarification services: mapping
extraction records onto rows and opening/closing per-record clarification
sessions.
"""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.agents.orchestrator import UserContext
from app.agents.policy import confirmation_message
from app.config import settings
from app.errors import AppError
from app.models.batch_session import BatchSession, ExtractionRecordRow
from app.models.clarification import ClarificationSession, ClarificationMessage
from app.models.user import User
from app.schemas.sequential import BatchInitiationResult
from app.schemas.extraction import ExtractionRecord
from app.schemas.tools import ConfirmationQuestion, ToolInvocation

logger = logging.getLogger(__name__)


def record_from_row(row: ExtractionRecordRow) -> ExtractionRecord:
    return ExtractionRecord(
        record_index=row.record_index,
        is_complete=row.is_complete,
        confidence_score=row.confidence_score or 0.0,
        transaction=row.transaction,
        enrichment=row.enrichment,
        missing_fields=row.missing_fields,
        questions=row.questions,
        notes=row.notes or "",
        raw_text=row.raw_text,
        clarification_session_id=row.clarification_session_id,
        review_status=row.review_status,
        transaction_id=row.transaction_id,
    )


def write_record(row: ExtractionRecordRow, record: ExtractionRecord):
    """Copy record content onto its row; review state and links stay as they are."""
    data = record.model_dump(mode="json")
    row.is_complete = record.is_complete
    row.confidence_score = record.confidence_score
    row.transaction = data["transaction"]
    row.enrichment = data["enrichment"]
    row.missing_fields = data["missing_fields"]
    row.questions = data["questions"]
    row.notes = record.notes
    if record.raw_text is not None:
        row.raw_text = record.raw_text


def row_for_record(record: ExtractionRecord) -> ExtractionRecordRow:
    row = ExtractionRecordRow(review_status="pending")
    write_record(row, record)
    return row


def populate_batch(batch: BatchSession, records: List[ExtractionRecord], notes: str = ""):
    """
    Attach freshly extracted records to a batch. Zero records fails the
    batch; the caller commits before the error propagates.
    """
    if not records:
        batch.status = "failed"
        batch.error_message = "No transactions found in document"
        batch.completed_at = datetime.now(timezone.utc)
        raise AppError(400, "No transactions found in document", "initiate_sequential")

    for record in sorted(records, key=lambda r: r.record_index):
        batch.records.append(row_for_record(record))
    batch.total_expected = len(records)
    batch.current_index = 0
    batch.model_notes = notes or batch.model_notes


def open_record_session(db: Session, batch: BatchSession, row: ExtractionRecordRow) -> ClarificationSession:
    """
    Clarification session for an incomplete record, seeded with the record
    itself as the first assistant turn. Reuses an open linked session.
    """
    if row.clarification_session_id:
        existing = db.get(ClarificationSession, row.clarification_session_id)
        if existing and existing.status != "completed":
            return existing

    session = ClarificationSession(
        user_id=batch.user_id,
        document_id=batch.document_id,
        batch_session_id=batch.id,
        record_index=row.record_index,
        status="active",
        tool_results=dict(batch.auto_tool_results or {}),
    )
    session.messages.append(
        ClarificationMessage(role="assistant", content=json.dumps(record_from_row(row).model_dump(mode="json")))
    )
    db.add(session)
    db.flush()

    row.clarification_session_id = session.id
    logger.info(f"Opened clarification session {session.id} for record {row.record_index} of batch {batch.id}")
    return session


def open_gating_session(
    db: Session,
    batch: BatchSession,
    pending: List[ToolInvocation],
    questions: List[ConfirmationQuestion],
) -> ClarificationSession:
    """Session holding back the batch extraction until pending tool calls are approved."""
    session = ClarificationSession(
        user_id=batch.user_id,
        document_id=batch.document_id,
        batch_session_id=batch.id,
        record_index=None,
        status="pending_confirmation",
        tool_results=dict(batch.auto_tool_results or {}),
        pending_tool_calls=[call.model_dump() for call in pending],
    )
    session.messages.append(
        ClarificationMessage(
            role="assistant",
            content=json.dumps({
                "message": confirmation_message(len(pending)),
                "questions": [q.model_dump() for q in questions],
                "pending_actions": len(pending),
            }),
        )
    )
    db.add(session)
    db.flush()
    logger.info(f"Batch {batch.id} awaiting confirmation of {len(pending)} tool call(s) in session {session.id}")
    return session


def close_session(db: Session, session_id: Optional[str], transaction_id: Optional[str] = None):
    """Mark a linked clarification session completed; missing or closed sessions are ignored."""
    if not session_id:
        return
    session = db.get(ClarificationSession, session_id)
    if session is None or session.status == "completed":
        return
    session.status = "completed"
    session.completed_at = datetime.now(timezone.utc)
    if transaction_id:
        session.transaction_id = transaction_id


def commit_or_conflict(db: Session, operation: str):
    """Commit, turning a lost optimistic-version race into a 409."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning(f"Concurrent modification detected during {operation}")
        raise AppError(409, "Batch session was modified concurrently. Reload and retry.", operation)


def load_user_context(db: Session, user_id: str, user_bank_account_id: Optional[str] = None) -> UserContext:
    user = db.get(User, user_id)
    if user is None:
        raise AppError(404, "User not found!", "fetch_user")
    return UserContext(
        user_id=user.id,
        default_currency=user.default_currency or settings.default_currency,
        custom_context=user.custom_context_prompt,
        user_bank_account_id=user_bank_account_id,
    )


def initiation_result(
    batch: BatchSession,
    notes: str = "",
    resumed: bool = False,
    clarification_session_id: Optional[str] = None,
    questions: Optional[List[ConfirmationQuestion]] = None,
) -> BatchInitiationResult:
    records = [record_from_row(row) for row in batch.records]
    overall = sum(r.confidence_score for r in records) / len(records) if records else 0.0
    return BatchInitiationResult(
        session_id=batch.id,
        total_records=batch.total_expected,
        successfully_initiated=len(records),
        records=records,
        overall_confidence=round(overall, 4),
        notes=notes or batch.model_notes or "",
        needs_confirmation=bool(questions),
        confirmation_questions=questions or [],
        clarification_session_id=clarification_session_id,
        resumed=resumed,
    )


def first_open_session(db: Session, batch: BatchSession) -> Optional[str]:
    """Open a clarification session for the record at the cursor when it is incomplete."""
    if batch.current_index >= len(batch.records):
        return None
    row = batch.records[batch.current_index]
    if row.is_complete or row.review_status != "pending":
        return row.clarification_session_id
    return open_record_session(db, batch, row).id
