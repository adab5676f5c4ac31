from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime


DocumentType = Literal[
    "single_receipt",
    "multi_item_receipt",
    "bank_statement",
    "invoice",
    "expense_report",
    "other",
]


# Detection schemas (structured model output)
class DateRange(BaseModel):
    start: Optional[str] = Field(default=None, description="Earliest transaction date found (ISO format or null)")
    end: Optional[str] = Field(default=None, description="Latest transaction date found (ISO format or null)")


class DocumentCharacteristics(BaseModel):
    has_multiple_dates: bool = Field(default=False, description="Does the document contain multiple transaction dates?")
    has_summary_totals: bool = Field(default=False, description="Does it have summary/total sections?")
    is_tabular_format: bool = Field(default=False, description="Is data presented in table/list format?")
    date_range: Optional[DateRange] = None


class TransactionPreview(BaseModel):
    amount: Optional[float] = None
    date: Optional[str] = None
    description: Optional[str] = None


class DocumentDetection(BaseModel):
    """Document type and transaction count detected from raw text"""
    document_type: DocumentType = Field(description="The type of document uploaded")
    transaction_count: int = Field(ge=0, description="Distinct transactions in the document, 0 if unclear")
    processing_mode: Literal["single", "sequential"] = Field(
        description="'single' for 1 transaction, 'sequential' for 2+ transactions"
    )
    confidence: float = Field(ge=0.0, le=1.0, description="Confidence in the detection (0-1)")
    document_characteristics: Optional[DocumentCharacteristics] = None
    transaction_preview: List[TransactionPreview] = Field(
        default=[], description="Basic info for the first few transactions"
    )


# Document request/response schemas
class DocumentCreate(BaseModel):
    """Schema for registering a document with its extracted text"""
    filename: Optional[str] = None
    raw_text: Optional[str] = None


class DocumentProcess(BaseModel):
    """Schema for attaching extracted text and running detection"""
    raw_text: Optional[str] = None


class DocumentResponse(BaseModel):
    id: str
    user_id: str
    filename: Optional[str] = None
    document_type: Optional[str] = None
    transaction_count: Optional[int] = None
    detection_confidence: Optional[float] = None
    detection: Optional[Dict[str, Any]] = None
    processing_status: str
    processed_transactions: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
