from app.schemas.extraction import ExtractionRecord, RecordDraft, BatchDraft, EnrichmentData, StructuredQuestion
from app.schemas.document import DocumentDetection, DocumentCreate, DocumentProcess, DocumentResponse
from app.schemas.sequential import BatchInitiationResult, InitiateRequest, TransactionResponse
from app.schemas.clarification import ClarificationReply, ClarificationSessionResponse

__all__ = [
    "ExtractionRecord",
    "RecordDraft",
    "BatchDraft",
    "EnrichmentData",
    "StructuredQuestion",
    "DocumentDetection",
    "DocumentCreate",
    "DocumentProcess",
    "DocumentResponse",
    "BatchInitiationResult",
    "InitiateRequest",
    "TransactionResponse",
    "ClarificationReply",
    "ClarificationSessionResponse",
]
