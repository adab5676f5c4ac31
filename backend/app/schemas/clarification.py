from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import datetime

from app.schemas.extraction import ExtractionRecord
from app.schemas.sequential import BatchInitiationResult
from app.schemas.tools import ConfirmationQuestion, ToolInvocation


class MessageRequest(BaseModel):
    message: str


class ConfirmationResponse(BaseModel):
    """Approval decision per pending tool name"""
    confirmations: Dict[str, bool]


class ClarificationTurn(BaseModel):
    position: int
    role: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClarificationSessionResponse(BaseModel):
    id: str
    document_id: str
    batch_session_id: Optional[str] = None
    record_index: Optional[int] = None
    status: str
    pending_tool_calls: Optional[List[ToolInvocation]] = None
    transaction_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    messages: List[ClarificationTurn] = []

    class Config:
        from_attributes = True


class ClarificationReply(BaseModel):
    """Outcome of a clarification turn: an updated record or a confirmation request"""
    session_id: str
    status: str
    needs_confirmation: bool = False
    questions: List[ConfirmationQuestion] = []
    pending_tool_calls: List[ToolInvocation] = []
    record: Optional[ExtractionRecord] = None
    batch: Optional[BatchInitiationResult] = None
    reused_cached_record: bool = False
    notes: str = ""
