"""
Document Service - registers documents with their extracted text and runs
detection before any transactions are initiated.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.agents.llm import ModelInvoker
from app.errors import AppError
from app.models.document import Document
from app.services.document_detection_service import DocumentDetector

logger = logging.getLogger(__name__)


class DocumentService:
    def __init__(self, db: Session, invoker: ModelInvoker):
        self.db = db
        self.detector = DocumentDetector(invoker)

    def create(self, user_id: str, filename: Optional[str] = None, raw_text: Optional[str] = None) -> Document:
        document = Document(user_id=user_id, filename=filename, raw_text=raw_text, processing_status="pending")
        self.db.add(document)
        self.db.commit()
        self.db.refresh(document)
        logger.info(f"Registered document {document.id} for user {user_id}")
        return document

    def get(self, document_id: str, user_id: str) -> Document:
        document = self.db.get(Document, document_id)
        if document is None:
            raise AppError(404, "Document not found!", "get_document")
        if document.user_id != user_id:
            raise AppError(403, "You are not authorized to access this document!", "get_document")
        return document

    def list(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Document]:
        return (
            self.db.query(Document)
            .filter(Document.user_id == user_id)
            .order_by(Document.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    async def process(self, document_id: str, user_id: str, raw_text: Optional[str] = None) -> Document:
        """
        Store the text (when given) and run detection. Detection failure marks
        the document failed with the error message instead of raising.
        """
        document = self.get(document_id, user_id)
        if document.processing_status == "processed":
            raise AppError(400, "Document has already been processed!", "process_document")
        if raw_text is not None:
            document.raw_text = raw_text

        if not document.raw_text or not document.raw_text.strip():
            raise AppError(400, "Document has no extracted text!", "process_document")

        try:
            detection = await self.detector.detect(document.raw_text)
        except AppError as e:
            logger.error(f"Detection failed for document {document.id}: {e.message}")
            document.processing_status = "failed"
            document.error_message = e.message
            self.db.commit()
            self.db.refresh(document)
            return document

        document.document_type = detection.document_type
        document.transaction_count = detection.transaction_count
        document.detection_confidence = detection.confidence
        document.detection = detection.model_dump(mode="json")
        document.processing_status = "processed"
        document.error_message = None
        self.db.commit()
        self.db.refresh(document)

        logger.info(f"Processed document {document.id}: {detection.document_type}, mode={detection.processing_mode}")
        return document
