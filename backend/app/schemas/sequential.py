from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime

from app.schemas.extraction import ExtractionRecord
from app.schemas.tools import ConfirmationQuestion


ProcessingMode = Literal["single", "sequential"]


class InitiateRequest(BaseModel):
    """Start (or resume) processing of a document"""
    document_id: Optional[str] = None
    processing_mode: Optional[ProcessingMode] = None  # Defaults to the detected mode
    user_bank_account_id: Optional[str] = None


class TransactionEdit(BaseModel):
    """User overrides applied when a record is committed"""
    category_id: Optional[str] = None
    contact_id: Optional[str] = None
    user_bank_account_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    amount: Optional[float] = None
    description: Optional[str] = None
    transaction_date: Optional[str] = None
    payment_method: Optional[str] = None


class ApproveRequest(BaseModel):
    index: int
    edits: Optional[TransactionEdit] = None


class SkipRequest(BaseModel):
    index: int


class GoToRequest(BaseModel):
    target_index: int


class RecordApproval(BaseModel):
    index: int
    approved: bool = True
    edits: Optional[TransactionEdit] = None


class ApproveManyRequest(BaseModel):
    approvals: List[RecordApproval]


class TransactionResponse(BaseModel):
    id: str
    document_id: Optional[str] = None
    contact_id: Optional[str] = None
    category_id: Optional[str] = None
    user_bank_account_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    amount: float
    currency: str
    transaction_type: str
    transaction_date: datetime
    is_self_transaction: bool
    description: Optional[str] = None
    payment_method: Optional[str] = None
    reference_number: str
    ai_confidence: Optional[float] = None
    status: str
    summary: Optional[str] = None

    class Config:
        from_attributes = True


class BatchInitiationResult(BaseModel):
    """Result of initiating (or resuming) a batch session"""
    session_id: str
    total_records: int
    successfully_initiated: int
    records: List[ExtractionRecord] = []
    overall_confidence: float = 0.0
    notes: str = ""
    needs_confirmation: bool = False
    confirmation_questions: List[ConfirmationQuestion] = []
    clarification_session_id: Optional[str] = None
    resumed: bool = False


class CurrentRecordResponse(BaseModel):
    session_id: str
    current_record: Optional[ExtractionRecord] = None
    current_index: int
    total_records: int
    status: str


class ApproveResult(BaseModel):
    created_transaction: TransactionResponse
    next_record: Optional[ExtractionRecord] = None
    current_index: int
    total_records: int
    is_complete: bool


class SkipResult(BaseModel):
    skipped_index: int
    next_record: Optional[ExtractionRecord] = None
    current_index: int
    total_records: int
    is_complete: bool


class GoToResult(BaseModel):
    session_id: str
    current_record: ExtractionRecord
    current_index: int
    previous_index: int
    total_records: int


class CompleteResult(BaseModel):
    total_records: int
    total_processed: int
    total_skipped: int
    completed_at: datetime


class RejectResult(BaseModel):
    success: bool = True
    message: str = "Batch session rejected"


class CreatedTransaction(BaseModel):
    index: int
    transaction: TransactionResponse


class RecordError(BaseModel):
    index: int
    error: str


class ApproveManyResult(BaseModel):
    total_approved: int
    total_created: int
    total_errors: int
    created_transactions: List[CreatedTransaction] = []
    errors: List[RecordError] = []
    status: str


class BatchSessionInfo(BaseModel):
    id: str
    document_id: str
    user_id: str
    processing_mode: str
    status: str
    current_index: int
    total_expected: int
    total_processed: int
    total_skipped: int
    records: List[ExtractionRecord] = Field(default_factory=list)
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
