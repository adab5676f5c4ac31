"""
Sequential Service - batch session lifecycle for multi-transaction documents.

A batch session holds every extracted record of one document in order, plus
a cursor. Records are approved (committed as transactions) or skipped one at
a time; incomplete records are resolved in clarification sessions first.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from app.agents.executor import dump_results
from app.agents.llm import ModelInvoker
from app.agents.orchestrator import ExtractionInvoker, UserContext
from app.agents.policy import ConfirmationPolicy, default_policy
from app.errors import AppError
from app.models.bank_account import BankAccount
from app.models.batch_session import BatchSession, ExtractionRecordRow
from app.models.clarification import ClarificationSession
from app.models.document import Document
from app.models.transaction import Transaction
from app.schemas.extraction import EnrichmentData, TRANSACTION_TYPES
from app.schemas.sequential import (
    ApproveManyResult,
    ApproveResult,
    BatchInitiationResult,
    BatchSessionInfo,
    CompleteResult,
    CreatedTransaction,
    CurrentRecordResponse,
    GoToResult,
    InitiateRequest,
    RecordApproval,
    RecordError,
    RejectResult,
    SkipResult,
    TransactionEdit,
    TransactionResponse,
)
from app.schemas.tools import ToolInvocation
from app.services.embedding_service import SimilarityIndex
from app.services.progress import ProgressReporter, report
from app.services.record_store import (
    close_session,
    commit_or_conflict,
    first_open_session,
    initiation_result,
    load_user_context,
    open_gating_session,
    open_record_session,
    populate_batch,
    record_from_row,
)
from app.utils.locks import session_locks
from app.utils.reference import ensure_transaction_reference

logger = logging.getLogger(__name__)


class SequentialService:
    """Batch session operations for one database session."""

    def __init__(
        self,
        db: Session,
        invoker: ModelInvoker,
        index: SimilarityIndex,
        policy: ConfirmationPolicy = default_policy,
    ):
        self.db = db
        self.invoker = invoker
        self.index = index
        self.policy = policy

    # Initiation

    async def initiate(
        self,
        request: InitiateRequest,
        user_id: str,
        reporter: Optional[ProgressReporter] = None,
    ) -> BatchInitiationResult:
        """
        Start processing a document, or resume the in-progress session for the
        same document, user and mode without calling the model again.
        """
        try:
            result = await self._initiate(request, user_id, reporter)
        except AppError as e:
            await self._report_error(reporter, e.message)
            raise
        except Exception as e:
            logger.error(f"Unexpected error initiating batch for document {request.document_id}: {e}", exc_info=True)
            await self._report_error(reporter, "Failed to initiate transaction processing")
            raise

        if reporter is not None:
            await reporter.complete(
                "Processing complete",
                {"session_id": result.session_id, "total_records": result.total_records,
                 "needs_confirmation": result.needs_confirmation},
            )
        return result

    async def _initiate(self, request: InitiateRequest, user_id: str, reporter: Optional[ProgressReporter]):
        await report(reporter, "validating", "Validating document")
        document = self._validate_document(request.document_id, user_id)

        await report(reporter, "fetching_user_data", "Loading user context")
        context = load_user_context(self.db, user_id, request.user_bank_account_id)
        if request.user_bank_account_id:
            self._validate_bank_account(request.user_bank_account_id, user_id)

        mode = request.processing_mode or (document.detection or {}).get("processing_mode") or "sequential"

        await report(reporter, "checking_session", "Checking for an existing session")
        async with session_locks.hold(f"initiate:{document.id}:{user_id}:{mode}"):
            existing = (
                self.db.query(BatchSession)
                .filter(
                    BatchSession.document_id == document.id,
                    BatchSession.user_id == user_id,
                    BatchSession.processing_mode == mode,
                    BatchSession.status == "in_progress",
                )
                .order_by(BatchSession.started_at.desc())
                .first()
            )
            if existing is not None:
                logger.info(f"Resuming batch session {existing.id} for document {document.id}")
                return self._resumed(existing)

            batch = BatchSession(
                document_id=document.id,
                user_id=user_id,
                processing_mode=mode,
                status="in_progress",
                user_bank_account_id=request.user_bank_account_id,
            )
            self.db.add(batch)
            self.db.commit()

            return await self._extract_into(batch, document, context, mode, reporter)

    async def _extract_into(
        self,
        batch: BatchSession,
        document: Document,
        context: UserContext,
        mode: str,
        reporter: Optional[ProgressReporter],
    ) -> BatchInitiationResult:
        try:
            result = await ExtractionInvoker(self.db, batch.user_id, self.invoker, self.policy).invoke(
                document.raw_text, context, batch=mode == "sequential", reporter=reporter
            )
        except AppError as e:
            self._fail(batch, e.message)
            raise
        except Exception:
            self.db.rollback()
            self._fail(batch, "Failed to extract transactions from document")
            raise

        batch.tool_calls = [call.model_dump() for call in result.tool_calls]
        batch.auto_tool_results = dump_results(result.auto_results)

        await report(reporter, "creating_session", "Creating batch session")
        if result.needs_confirmation:
            gating = open_gating_session(self.db, batch, result.pending_confirmations, result.questions)
            commit_or_conflict(self.db, "initiate_sequential")
            return initiation_result(
                batch, result.model_content, clarification_session_id=gating.id, questions=result.questions
            )

        try:
            populate_batch(batch, result.records, result.notes)
        except AppError:
            commit_or_conflict(self.db, "initiate_sequential")
            raise
        self.db.flush()

        await report(reporter, "enriching_data", "Preparing records for review")
        clarification_session_id = first_open_session(self.db, batch)

        await report(reporter, "finalizing", "Saving batch session")
        commit_or_conflict(self.db, "initiate_sequential")

        logger.info(
            f"Initiated batch {batch.id} for document {document.id}: {batch.total_expected} record(s), "
            f"{sum(1 for r in batch.records if not r.is_complete)} need clarification"
        )
        return initiation_result(batch, result.notes, clarification_session_id=clarification_session_id)

    def _resumed(self, batch: BatchSession) -> BatchInitiationResult:
        gating = (
            self.db.query(ClarificationSession)
            .filter(
                ClarificationSession.batch_session_id == batch.id,
                ClarificationSession.record_index.is_(None),
                ClarificationSession.status == "pending_confirmation",
            )
            .first()
        )
        if gating is not None:
            pending = [ToolInvocation.model_validate(call) for call in gating.pending_tool_calls or []]
            return initiation_result(
                batch, resumed=True, clarification_session_id=gating.id, questions=self.policy.questions_for(pending)
            )

        current = batch.records[batch.current_index] if batch.current_index < len(batch.records) else None
        return initiation_result(
            batch, resumed=True, clarification_session_id=current.clarification_session_id if current else None
        )

    def _validate_document(self, document_id: Optional[str], user_id: str) -> Document:
        if not document_id:
            raise AppError(400, "Document ID required!", "initiate_sequential")

        document = self.db.get(Document, document_id)
        if document is None:
            raise AppError(404, "Document not found!", "initiate_sequential")
        if document.user_id != user_id:
            raise AppError(403, "You are not authorized to process this document!", "initiate_sequential")
        if document.processing_status != "processed":
            raise AppError(400, "Document must be processed before initiating transactions!", "initiate_sequential")
        if not document.raw_text or not document.raw_text.strip():
            raise AppError(400, "Document has no extracted text!", "initiate_sequential")
        return document

    def _validate_bank_account(self, account_id: str, user_id: str) -> BankAccount:
        account = (
            self.db.query(BankAccount)
            .filter(BankAccount.id == account_id, BankAccount.user_id == user_id, BankAccount.is_active.is_(True))
            .first()
        )
        if account is None:
            raise AppError(404, "Bank account not found or inactive!", "initiate_sequential")
        return account

    def _fail(self, batch: BatchSession, message: str):
        batch.status = "failed"
        batch.error_message = message
        batch.completed_at = datetime.now(timezone.utc)
        commit_or_conflict(self.db, "initiate_sequential")
        logger.warning(f"Batch {batch.id} failed: {message}")

    async def _report_error(self, reporter: Optional[ProgressReporter], message: str):
        if reporter is not None:
            await reporter.error(message)

    # Cursor operations

    def current(self, batch_id: str, user_id: str) -> CurrentRecordResponse:
        batch = self._get_batch(batch_id, user_id, "get_current_transaction")
        row = self._row_at_cursor(batch)
        return CurrentRecordResponse(
            session_id=batch.id,
            current_record=record_from_row(row) if row else None,
            current_index=batch.current_index,
            total_records=batch.total_expected,
            status=batch.status,
        )

    async def approve(
        self, batch_id: str, user_id: str, index: int, edits: Optional[TransactionEdit] = None
    ) -> ApproveResult:
        """Commit the record at the cursor as a transaction and advance."""
        operation = "approve_transaction"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            self._require_in_progress(batch, operation)
            row = self._require_cursor(batch, index, operation)

            context = load_user_context(self.db, user_id)
            transaction = await self._commit_record(batch, row, edits, context, operation)

            batch.current_index += 1
            is_complete = self._finish_if_exhausted(batch)
            next_row = None
            if not is_complete:
                next_row = self._row_at_cursor(batch)
                first_open_session(self.db, batch)

            commit_or_conflict(self.db, operation)
            self.db.refresh(transaction)

            logger.info(f"Batch {batch.id}: approved record {index} as transaction {transaction.id}")
            return ApproveResult(
                created_transaction=TransactionResponse.model_validate(transaction),
                next_record=record_from_row(next_row) if next_row else None,
                current_index=batch.current_index,
                total_records=batch.total_expected,
                is_complete=is_complete,
            )

    async def skip(self, batch_id: str, user_id: str, index: int) -> SkipResult:
        operation = "skip_transaction"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            self._require_in_progress(batch, operation)
            row = self._require_cursor(batch, index, operation)

            if row.review_status == "pending":
                row.review_status = "skipped"
            close_session(self.db, row.clarification_session_id)

            batch.current_index += 1
            is_complete = self._finish_if_exhausted(batch)
            next_row = None
            if not is_complete:
                next_row = self._row_at_cursor(batch)
                first_open_session(self.db, batch)

            commit_or_conflict(self.db, operation)
            logger.info(f"Batch {batch.id}: skipped record {index}")
            return SkipResult(
                skipped_index=index,
                next_record=record_from_row(next_row) if next_row else None,
                current_index=batch.current_index,
                total_records=batch.total_expected,
                is_complete=is_complete,
            )

    async def goto(self, batch_id: str, user_id: str, target_index: int) -> GoToResult:
        """Move the cursor anywhere in the batch; reopens a completed batch."""
        operation = "goto_transaction"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            if batch.status in ("failed", "rejected"):
                raise AppError(400, f"Batch session is {batch.status}", operation)

            count = len(batch.records)
            if target_index < 0 or target_index >= count:
                raise AppError(400, f"Invalid transaction index. Must be between 0 and {count - 1}", operation)

            previous_index = batch.current_index
            if previous_index < count and previous_index != target_index:
                close_session(self.db, batch.records[previous_index].clarification_session_id)

            target = batch.records[target_index]
            if not target.is_complete and target.questions and target.review_status != "approved":
                open_record_session(self.db, batch, target)

            batch.current_index = target_index
            if batch.status != "in_progress":
                batch.status = "in_progress"
                batch.completed_at = None

            commit_or_conflict(self.db, operation)
            logger.info(f"Batch {batch.id}: cursor moved {previous_index} -> {target_index}")
            return GoToResult(
                session_id=batch.id,
                current_record=record_from_row(target),
                current_index=batch.current_index,
                previous_index=previous_index,
                total_records=batch.total_expected,
            )

    async def complete(self, batch_id: str, user_id: str) -> CompleteResult:
        """End the batch early; whatever was not approved counts as skipped."""
        operation = "complete_session"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            self._require_in_progress(batch, operation)

            for row in batch.records:
                if row.review_status == "pending":
                    row.review_status = "skipped"
                close_session(self.db, row.clarification_session_id)
            self._mark_completed(batch)

            commit_or_conflict(self.db, operation)
            logger.info(f"Batch {batch.id} completed early: {batch.total_processed} processed, {batch.total_skipped} skipped")
            return CompleteResult(
                total_records=batch.total_expected,
                total_processed=batch.total_processed,
                total_skipped=batch.total_skipped,
                completed_at=batch.completed_at,
            )

    async def reject(self, batch_id: str, user_id: str) -> RejectResult:
        operation = "reject_session"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            self._require_in_progress(batch, operation)

            for row in batch.records:
                close_session(self.db, row.clarification_session_id)
            for session in self._open_sessions(batch):
                close_session(self.db, session.id)

            batch.status = "rejected"
            batch.completed_at = datetime.now(timezone.utc)
            commit_or_conflict(self.db, operation)

            logger.info(f"Batch {batch.id} rejected")
            return RejectResult()

    async def approve_many(self, batch_id: str, user_id: str, approvals: List[RecordApproval]) -> ApproveManyResult:
        """
        Commit several records in one call. Per-record failures are collected
        alongside the created transactions instead of aborting the rest.
        """
        operation = "approve_batch"
        async with session_locks.hold(batch_id):
            batch = self._get_batch(batch_id, user_id, operation)
            self._require_in_progress(batch, operation)
            context = load_user_context(self.db, user_id)

            created: List[CreatedTransaction] = []
            errors: List[RecordError] = []
            transactions = []
            for approval in approvals:
                if approval.index < 0 or approval.index >= len(batch.records):
                    errors.append(RecordError(index=approval.index, error="Invalid transaction index"))
                    continue

                row = batch.records[approval.index]
                if not approval.approved:
                    if row.review_status == "pending":
                        row.review_status = "skipped"
                    close_session(self.db, row.clarification_session_id)
                    continue

                try:
                    transaction = await self._commit_record(batch, row, approval.edits, context, operation)
                except AppError as e:
                    logger.warning(f"Batch {batch.id}: record {approval.index} not committed: {e.message}")
                    errors.append(RecordError(index=approval.index, error=e.message))
                    continue
                transactions.append((approval.index, transaction))

            while batch.current_index < len(batch.records) and batch.records[batch.current_index].review_status != "pending":
                batch.current_index += 1
            if not any(row.review_status == "pending" for row in batch.records):
                self._mark_completed(batch)
            else:
                first_open_session(self.db, batch)

            commit_or_conflict(self.db, operation)
            for index, transaction in transactions:
                self.db.refresh(transaction)
                created.append(CreatedTransaction(index=index, transaction=TransactionResponse.model_validate(transaction)))

            logger.info(f"Batch {batch.id}: approved {len(created)} record(s), {len(errors)} error(s)")
            return ApproveManyResult(
                total_approved=sum(1 for a in approvals if a.approved),
                total_created=len(created),
                total_errors=len(errors),
                created_transactions=created,
                errors=errors,
                status=batch.status,
            )

    def info(self, batch_id: str, user_id: str) -> BatchSessionInfo:
        batch = self._get_batch(batch_id, user_id, "get_session_info")
        return BatchSessionInfo(
            id=batch.id,
            document_id=batch.document_id,
            user_id=batch.user_id,
            processing_mode=batch.processing_mode,
            status=batch.status,
            current_index=batch.current_index,
            total_expected=batch.total_expected,
            total_processed=batch.total_processed,
            total_skipped=batch.total_skipped,
            records=[record_from_row(row) for row in batch.records],
            error_message=batch.error_message,
            started_at=batch.started_at,
            completed_at=batch.completed_at,
        )

    # Commit

    async def _commit_record(
        self,
        batch: BatchSession,
        row: ExtractionRecordRow,
        edits: Optional[TransactionEdit],
        context: UserContext,
        operation: str,
    ) -> Transaction:
        """
        Validate and persist one record as a transaction. Everything that can
        fail, including indexing the summary, happens before the first write.
        """
        if row.review_status == "approved":
            raise AppError(400, "Transaction has already been committed", operation)
        if not row.is_complete or not row.transaction:
            raise AppError(400, "Transaction data is incomplete. Please complete clarification first.", operation)

        record = record_from_row(row)
        fields = record.transaction
        enrichment = record.enrichment or EnrichmentData()
        edits = edits or TransactionEdit()

        transaction_date = _parse_date(edits.transaction_date or fields.time_sent, operation)
        transaction_type = (fields.transaction_type or "").upper()
        if transaction_type not in TRANSACTION_TYPES:
            raise AppError(400, f"Invalid transaction type: {fields.transaction_type}", operation)

        amount = edits.amount if edits.amount is not None else fields.amount
        currency = (fields.currency or context.default_currency).upper()
        description = edits.description or fields.description
        summary = fields.summary or _summarize(transaction_type, amount, currency, description, fields.counterparty_name)

        transaction_id = str(uuid.uuid4())
        embedding = await self.index.index(transaction_id, summary)

        transaction = Transaction(
            id=transaction_id,
            user_id=batch.user_id,
            document_id=batch.document_id,
            contact_id=edits.contact_id or enrichment.contact_id,
            category_id=edits.category_id or enrichment.category_id,
            user_bank_account_id=edits.user_bank_account_id or enrichment.user_bank_account_id or batch.user_bank_account_id,
            to_bank_account_id=edits.to_bank_account_id or enrichment.to_bank_account_id,
            amount=amount,
            currency=currency,
            transaction_type=transaction_type,
            transaction_date=transaction_date,
            is_self_transaction=enrichment.is_self_transaction,
            description=description,
            payment_method=edits.payment_method or fields.payment_method,
            reference_number=ensure_transaction_reference(fields.transaction_reference),
            ai_confidence=record.confidence_score,
            status="confirmed",
            summary=summary,
            embedding=embedding,
        )
        self.db.add(transaction)

        row.review_status = "approved"
        row.transaction_id = transaction.id
        close_session(self.db, row.clarification_session_id, transaction.id)

        batch.total_processed += 1
        document = self.db.get(Document, batch.document_id)
        document.processed_transactions = (document.processed_transactions or 0) + 1
        self.db.flush()
        return transaction

    # Helpers

    def _get_batch(self, batch_id: str, user_id: str, operation: str) -> BatchSession:
        batch = self.db.get(BatchSession, batch_id)
        if batch is None:
            raise AppError(404, "Batch session not found!", operation)
        if batch.user_id != user_id:
            raise AppError(403, "You are not authorized to access this batch session!", operation)
        self.db.refresh(batch)
        return batch

    def _require_in_progress(self, batch: BatchSession, operation: str):
        if batch.status != "in_progress":
            raise AppError(400, f"Batch session is {batch.status}", operation)

    def _require_cursor(self, batch: BatchSession, index: int, operation: str) -> ExtractionRecordRow:
        if batch.current_index >= len(batch.records):
            raise AppError(400, "No more transactions to process", operation)
        if index != batch.current_index:
            raise AppError(400, f"Index {index} does not match the current transaction ({batch.current_index})", operation)
        return batch.records[index]

    def _row_at_cursor(self, batch: BatchSession) -> Optional[ExtractionRecordRow]:
        if batch.current_index < len(batch.records):
            return batch.records[batch.current_index]
        return None

    def _finish_if_exhausted(self, batch: BatchSession) -> bool:
        if batch.current_index >= batch.total_expected:
            self._mark_completed(batch)
            return True
        return False

    def _mark_completed(self, batch: BatchSession):
        batch.status = "completed"
        batch.completed_at = datetime.now(timezone.utc)
        batch.total_skipped = max(batch.total_expected - batch.total_processed, 0)

    def _open_sessions(self, batch: BatchSession) -> List[ClarificationSession]:
        return (
            self.db.query(ClarificationSession)
            .filter(ClarificationSession.batch_session_id == batch.id, ClarificationSession.status != "completed")
            .all()
        )


def _parse_date(value: Optional[str], operation: str) -> datetime:
    if not value:
        raise AppError(400, "Invalid transaction date", operation)
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise AppError(400, "Invalid transaction date", operation)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _summarize(transaction_type: str, amount: float, currency: str, description: str, counterparty: Optional[str]) -> str:
    summary = f"{transaction_type.title()} of {amount:,.2f} {currency}: {description}"
    if counterparty:
        summary += f" ({counterparty})"
    return summary
