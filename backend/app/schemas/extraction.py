"""
Extraction record schemas.

`RecordDraft` is the lenient shape the model fills in; `ExtractionRecord` is the
strict shape the rest of the system works with. A record is either complete
(transaction populated, nothing missing) or incomplete (no transaction, at
least one missing field) - never both.
"""
from pydantic import BaseModel, Field, model_validator, computed_field
from typing import Optional, List, Literal


REQUIRED_TRANSACTION_FIELDS = (
    "transaction_type",
    "amount",
    "currency",
    "transaction_direction",
    "description",
    "time_sent",
)

TRANSACTION_TYPES = ("INCOME", "EXPENSE", "TRANSFER", "REFUND", "FEE", "ADJUSTMENT")


class StructuredQuestion(BaseModel):
    """Clarification question about one field"""
    field: str
    question: str
    suggestions: List[str] = []
    hint: Optional[str] = None


class EnrichmentData(BaseModel):
    """Resolved foreign identifiers attached to a record"""
    category_id: Optional[str] = None
    contact_id: Optional[str] = None
    user_bank_account_id: Optional[str] = None
    to_bank_account_id: Optional[str] = None
    is_self_transaction: bool = False


class TransactionFields(BaseModel):
    """Fully populated transaction extracted from a document"""
    transaction_type: str
    amount: float
    currency: str
    transaction_direction: str  # inbound, outbound
    description: str
    time_sent: str
    payment_method: Optional[str] = None  # cash, transfer, card
    fees: Optional[float] = None
    category: Optional[str] = None
    sender_name: Optional[str] = None
    sender_bank: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_bank: Optional[str] = None
    receiver_account_number: Optional[str] = None
    transaction_reference: Optional[str] = None
    status: Optional[str] = None
    summary: Optional[str] = None

    @property
    def counterparty_name(self) -> Optional[str]:
        if self.transaction_direction == "inbound":
            return self.sender_name
        return self.receiver_name


class TransactionDraft(BaseModel):
    """Transaction as returned by the model; any field may be absent"""
    transaction_type: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    transaction_direction: Optional[str] = None
    description: Optional[str] = None
    time_sent: Optional[str] = None
    payment_method: Optional[str] = None
    fees: Optional[float] = None
    category: Optional[str] = None
    sender_name: Optional[str] = None
    sender_bank: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_bank: Optional[str] = None
    receiver_account_number: Optional[str] = None
    transaction_reference: Optional[str] = None
    status: Optional[str] = None
    summary: Optional[str] = None

    def absent_required_fields(self) -> List[str]:
        absent = []
        for name in REQUIRED_TRANSACTION_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                absent.append(name)
        return absent


class ExtractionRecord(BaseModel):
    """One candidate transaction of a batch, always in a consistent state"""
    record_index: int = Field(ge=0)
    is_complete: bool
    confidence_score: float = Field(ge=0.0, le=1.0)
    transaction: Optional[TransactionFields] = None
    enrichment: Optional[EnrichmentData] = None
    missing_fields: Optional[List[str]] = None
    questions: Optional[List[StructuredQuestion]] = None
    notes: str = ""
    raw_text: Optional[str] = None
    clarification_session_id: Optional[str] = None
    review_status: Literal["pending", "approved", "skipped"] = "pending"
    transaction_id: Optional[str] = None

    @model_validator(mode="after")
    def _complete_xor_missing(self):
        if self.is_complete:
            if self.transaction is None:
                raise ValueError("complete record must carry a transaction")
            if self.missing_fields or self.questions:
                raise ValueError("complete record cannot have missing fields or questions")
        else:
            if self.transaction is not None:
                raise ValueError("incomplete record must not carry a transaction")
            if not self.missing_fields:
                raise ValueError("incomplete record must list its missing fields")
        return self

    @computed_field
    @property
    def needs_clarification(self) -> bool:
        return not self.is_complete


class RecordDraft(BaseModel):
    """Structured-output shape for one record"""
    record_index: int = Field(default=0, description="0-based position of this transaction in the document")
    is_complete: bool = Field(description="True only if every required transaction field is known")
    confidence_score: float = Field(default=0.0, description="Confidence 0-1; 1 only when nothing is missing")
    transaction: Optional[TransactionDraft] = Field(default=None, description="Extracted transaction fields")
    enrichment: Optional[EnrichmentData] = Field(default=None, description="IDs taken from tool results")
    missing_fields: Optional[List[str]] = Field(default=None, description="Fields that are missing or unclear")
    questions: Optional[List[StructuredQuestion]] = Field(default=None, description="One question per missing field")
    notes: Optional[str] = Field(default=None, description="Assumptions or observations")
    raw_text: Optional[str] = Field(default=None, description="Document text segment for this transaction")

    def to_record(self, record_index: Optional[int] = None) -> ExtractionRecord:
        """
        Normalize the draft into a consistent ExtractionRecord.

        A draft claiming completeness with absent required fields is demoted
        to incomplete; an incomplete draft never keeps a partial transaction.
        """
        from app.utils.question_formatter import questions_for_fields

        index = self.record_index if record_index is None else record_index
        confidence = min(max(self.confidence_score or 0.0, 0.0), 1.0)
        notes = self.notes or ""
        absent = self.transaction.absent_required_fields() if self.transaction else list(REQUIRED_TRANSACTION_FIELDS)

        declared_missing = [f for f in (self.missing_fields or []) if f and f.strip()]
        questions = list(self.questions or [])

        if not declared_missing and not absent and not self.is_complete and questions:
            declared_missing = [q.field for q in questions]

        if not absent and (self.is_complete or not declared_missing):
            return ExtractionRecord(
                record_index=index,
                is_complete=True,
                confidence_score=confidence,
                transaction=TransactionFields(**self.transaction.model_dump()),
                enrichment=self.enrichment or EnrichmentData(),
                notes=notes,
                raw_text=self.raw_text,
            )

        missing = declared_missing or absent
        if self.transaction is not None:
            for name in absent:
                if name not in missing:
                    missing.append(name)

        asked = {q.field for q in questions}
        questions.extend(q for q in questions_for_fields(missing) if q.field not in asked)

        return ExtractionRecord(
            record_index=index,
            is_complete=False,
            confidence_score=min(confidence, 0.99),
            transaction=None,
            enrichment=self.enrichment,
            missing_fields=missing,
            questions=questions,
            notes=notes,
            raw_text=self.raw_text,
        )


class BatchDraft(BaseModel):
    """Structured-output shape covering every transaction of a document"""
    records: List[RecordDraft] = Field(description="All distinct transactions, indexed from 0")
    notes: Optional[str] = Field(default=None, description="General notes about the extraction")
