from sqlalchemy import Column, Integer, String, Text, DateTime, Float, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import uuid


class Document(Base):
    """
    Uploaded financial document (receipt, statement, invoice...).
    Text and detection results are written once; afterwards only the
    processing status and processed counter change.
    """
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    filename = Column(String, nullable=True)  # Source reference; file storage lives elsewhere

    raw_text = Column(Text, nullable=True)
    document_type = Column(String(32), nullable=True, index=True)  # single_receipt, multi_item_receipt, bank_statement, invoice, expense_report, other
    transaction_count = Column(Integer, nullable=True)
    detection_confidence = Column(Float, nullable=True)
    detection = Column(JSON, nullable=True)  # Full detection payload (characteristics, preview)

    processing_status = Column(String(20), nullable=False, default="pending", index=True)  # pending, processed, failed
    processed_transactions = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="documents")
    batch_sessions = relationship("BatchSession", back_populates="document")
