"""
Clarification Service - per-record conversations that resolve incomplete
extraction records, and the confirmation step that gates tool calls needing
the user's approval.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.agents.executor import ToolExecutor, dump_results, load_results, result_key
from app.agents.llm import ModelInvoker
from app.agents.orchestrator import ExtractionInvoker, InvocationResult, build_initial_messages
from app.agents.policy import ConfirmationPolicy, default_policy, confirmation_message
from app.agents.prompts import build_clarification_prompt, format_document, history_messages
from app.config import settings
from app.errors import AppError
from app.models.batch_session import BatchSession, ExtractionRecordRow
from app.models.clarification import ClarificationSession, ClarificationMessage
from app.models.document import Document
from app.schemas.clarification import ClarificationReply
from app.schemas.extraction import ExtractionRecord
from app.schemas.tools import DeclinedAction, ToolInvocation, ToolOutcome
from app.services.record_store import (
    commit_or_conflict,
    first_open_session,
    initiation_result,
    load_user_context,
    populate_batch,
    write_record,
)
from app.utils.locks import session_locks

logger = logging.getLogger(__name__)


class ClarificationService:
    """Drives clarification sessions for one database session."""

    def __init__(self, db: Session, invoker: ModelInvoker, policy: ConfirmationPolicy = default_policy):
        self.db = db
        self.invoker = invoker
        self.policy = policy

    def get(self, session_id: str, user_id: str) -> ClarificationSession:
        session = self.db.get(ClarificationSession, session_id)
        if session is None:
            raise AppError(404, "Clarification session not found!", "get_clarification_session")
        if session.user_id != user_id:
            raise AppError(403, "You are not authorized to access this clarification session!", "get_clarification_session")
        return session

    def list(self, user_id: str, document_id: Optional[str] = None) -> List[ClarificationSession]:
        query = self.db.query(ClarificationSession).filter(ClarificationSession.user_id == user_id)
        if document_id:
            query = query.filter(ClarificationSession.document_id == document_id)
        return query.order_by(ClarificationSession.started_at.desc()).all()

    def complete(self, session_id: str, user_id: str) -> ClarificationSession:
        session = self.get(session_id, user_id)
        if session.status == "completed":
            raise AppError(400, "Clarification session is already completed!", "complete_clarification_session")

        session.status = "completed"
        session.completed_at = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(session)
        logger.info(f"Clarification session {session.id} completed by user")
        return session

    async def send_message(self, session_id: str, user_id: str, text: str) -> ClarificationReply:
        """
        Append a user turn and re-run the tool-bound model on the whole
        conversation. Either returns questions for newly pending tool calls or
        an updated record, which is written back to its batch.
        """
        if not text or not text.strip():
            raise AppError(400, "Message cannot be empty!", "send_clarification_message")

        session = self.get(session_id, user_id)
        async with session_locks.hold(session.batch_session_id or session.id):
            self.db.refresh(session)
            if session.status == "pending_confirmation":
                raise AppError(400, "Session is awaiting confirmation of pending actions!", "send_clarification_message")
            if session.status != "active":
                raise AppError(400, "Cannot send messages to a completed session!", "send_clarification_message")

            row = self._record_row(session)
            if row is not None and row.review_status == "approved":
                raise AppError(400, "Transaction has already been reviewed!", "send_clarification_message")

            previous = self._last_record(session)
            session.messages.append(ClarificationMessage(role="user", content=text.strip()))
            self.db.flush()

            cached = None
            if (
                settings.clarification_reuse_cached_record
                and len(text.strip()) < settings.clarification_simple_reply_max_chars
                and previous is not None
            ):
                cached = previous

            batch = self.db.get(BatchSession, session.batch_session_id) if session.batch_session_id else None
            result = await ExtractionInvoker(self.db, user_id, self.invoker, self.policy).converse(
                self._conversation(session),
                load_results(session.tool_results),
                session.record_index,
                user_bank_account_id=batch.user_bank_account_id if batch else None,
                cached_record=cached,
            )

            if result.needs_confirmation:
                return self._await_confirmation(session, result)
            return self._apply_record(session, row, result)

    async def resolve_confirmation(self, session_id: str, user_id: str, confirmations: Dict[str, bool]) -> ClarificationReply:
        """
        Execute approved pending calls for real and record declined ones,
        then run the structured extraction the pending calls held back.
        """
        session = self.get(session_id, user_id)
        async with session_locks.hold(session.batch_session_id or session.id):
            self.db.refresh(session)
            if session.status != "pending_confirmation":
                raise AppError(400, "Session is not awaiting confirmation", "resolve_confirmation")

            pending = [ToolInvocation.model_validate(call) for call in session.pending_tool_calls or []]
            cache = load_results(session.tool_results)
            executor = ToolExecutor(self.db, user_id)

            approved, declined = [], []
            for call in pending:
                key = result_key(cache, call.name)
                if confirmations.get(call.name, False):
                    cache[key] = await executor.execute(call, commit_creates=True)
                    approved.append(call.name)
                else:
                    cache[key] = ToolOutcome(success=True, data=DeclinedAction(tool_name=call.name))
                    declined.append(call.name)

            logger.info(f"Session {session.id}: approved {approved or 'none'}, declined {declined or 'none'}")

            session.tool_results = dump_results(cache)
            session.pending_tool_calls = None
            session.status = "active"
            session.messages.append(
                ClarificationMessage(role="user", content=json.dumps({"approved": approved, "declined": declined}))
            )
            self.db.flush()

            if session.record_index is None and session.batch_session_id:
                return await self._resume_batch(session, cache)

            row = self._record_row(session)
            batch = self.db.get(BatchSession, session.batch_session_id) if session.batch_session_id else None
            result = await ExtractionInvoker(self.db, user_id, self.invoker, self.policy).extract(
                self._conversation(session),
                cache,
                "record",
                record_index=session.record_index,
                user_bank_account_id=batch.user_bank_account_id if batch else None,
            )
            return self._apply_record(session, row, result)

    async def _resume_batch(self, session: ClarificationSession, cache: Dict[str, ToolOutcome]) -> ClarificationReply:
        """The gating session is resolved: extract every record and continue the batch."""
        batch = self.db.get(BatchSession, session.batch_session_id)
        if batch is None or batch.status != "in_progress":
            raise AppError(400, "Batch session is no longer in progress", "resolve_confirmation")

        document = self.db.get(Document, batch.document_id)
        context = load_user_context(self.db, batch.user_id, batch.user_bank_account_id)
        messages = build_initial_messages(document.raw_text, context, batch=batch.processing_mode == "sequential")

        result = await ExtractionInvoker(self.db, batch.user_id, self.invoker, self.policy).extract(
            messages, cache, "batch", user_bank_account_id=batch.user_bank_account_id
        )

        session.status = "completed"
        session.completed_at = datetime.now(timezone.utc)
        batch.auto_tool_results = dump_results(cache)
        try:
            populate_batch(batch, result.records, result.notes)
        except AppError:
            commit_or_conflict(self.db, "resolve_confirmation")
            raise

        self.db.flush()
        record_session_id = first_open_session(self.db, batch)
        commit_or_conflict(self.db, "resolve_confirmation")

        logger.info(f"Batch {batch.id} resumed after confirmation with {batch.total_expected} record(s)")
        return ClarificationReply(
            session_id=session.id,
            status=session.status,
            batch=initiation_result(batch, result.notes, clarification_session_id=record_session_id),
            notes=result.notes,
        )

    def _await_confirmation(self, session: ClarificationSession, result: InvocationResult) -> ClarificationReply:
        session.status = "pending_confirmation"
        session.pending_tool_calls = [call.model_dump() for call in result.pending_confirmations]
        session.tool_results = dump_results(result.tool_results)
        session.messages.append(
            ClarificationMessage(
                role="assistant",
                content=json.dumps({
                    "message": confirmation_message(len(result.pending_confirmations)),
                    "questions": [q.model_dump() for q in result.questions],
                    "pending_actions": len(result.pending_confirmations),
                }),
            )
        )
        commit_or_conflict(self.db, "send_clarification_message")

        logger.info(f"Session {session.id} paused for {len(result.pending_confirmations)} confirmation(s)")
        return ClarificationReply(
            session_id=session.id,
            status=session.status,
            needs_confirmation=True,
            questions=result.questions,
            pending_tool_calls=result.pending_confirmations,
        )

    def _apply_record(
        self,
        session: ClarificationSession,
        row: Optional[ExtractionRecordRow],
        result: InvocationResult,
    ) -> ClarificationReply:
        if not result.records:
            raise AppError(500, "AI returned no record for this clarification turn", "send_clarification_message")

        record = result.records[0].model_copy(update={"clarification_session_id": session.id})
        session.tool_results = dump_results(result.tool_results)
        session.messages.append(
            ClarificationMessage(role="assistant", content=json.dumps(record.model_dump(mode="json")))
        )
        if row is not None:
            write_record(row, record)
        commit_or_conflict(self.db, "send_clarification_message")

        logger.info(
            f"Session {session.id} record {record.record_index}: "
            f"{'complete' if record.is_complete else 'missing ' + ', '.join(record.missing_fields or [])}"
        )
        return ClarificationReply(
            session_id=session.id,
            status=session.status,
            record=record,
            reused_cached_record=result.reused_cached_record,
            notes=result.notes,
        )

    def _conversation(self, session: ClarificationSession) -> List[tuple]:
        document = self.db.get(Document, session.document_id)
        context = load_user_context(self.db, session.user_id)
        turns = [{"role": m.role, "content": m.content} for m in session.messages]
        return [
            ("system", build_clarification_prompt(context.default_currency, context.custom_context)),
            ("human", format_document(document.raw_text or "")),
        ] + history_messages(turns)

    def _record_row(self, session: ClarificationSession) -> Optional[ExtractionRecordRow]:
        if session.batch_session_id is None or session.record_index is None:
            return None
        return (
            self.db.query(ExtractionRecordRow)
            .filter(
                ExtractionRecordRow.batch_session_id == session.batch_session_id,
                ExtractionRecordRow.record_index == session.record_index,
            )
            .first()
        )

    def _last_record(self, session: ClarificationSession) -> Optional[ExtractionRecord]:
        for message in reversed(session.messages):
            if message.role != "assistant":
                continue
            try:
                return ExtractionRecord.model_validate_json(message.content)
            except ValidationError:
                return None
        return None
