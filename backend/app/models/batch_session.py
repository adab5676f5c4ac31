from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Float, DateTime, JSON, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.sql import func
from app.database import Base
import uuid


class BatchSession(Base):
    """
    Resumable aggregate tracking every extraction record of one document
    processing attempt, plus the approval cursor.
    """
    __tablename__ = "batch_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    processing_mode = Column(String(20), nullable=False, default="sequential")  # single, sequential
    status = Column(String(20), nullable=False, default="in_progress", index=True)  # in_progress, completed, failed, rejected

    current_index = Column(Integer, nullable=False, default=0)
    total_expected = Column(Integer, nullable=False, default=0)
    total_processed = Column(Integer, nullable=False, default=0)
    total_skipped = Column(Integer, nullable=False, default=0)

    user_bank_account_id = Column(String(36), ForeignKey("bank_accounts.id"), nullable=True)

    # Initiating model call, kept for audit and resumability
    tool_calls = Column(JSON, nullable=True)
    auto_tool_results = Column(JSON, nullable=True)
    model_notes = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    # Optimistic concurrency counter, bumped on every flush
    version = Column(Integer, nullable=False, default=1)

    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    document = relationship("Document", back_populates="batch_sessions")
    records = relationship(
        "ExtractionRecordRow",
        back_populates="batch_session",
        order_by="ExtractionRecordRow.record_index",
        collection_class=ordering_list("record_index"),
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}


class ExtractionRecordRow(Base):
    """One candidate transaction inside a batch session."""
    __tablename__ = "extraction_records"
    __table_args__ = (
        UniqueConstraint("batch_session_id", "record_index", name="uq_extraction_records_session_index"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    batch_session_id = Column(String(36), ForeignKey("batch_sessions.id"), nullable=False, index=True)
    record_index = Column(Integer, nullable=False)

    is_complete = Column(Boolean, nullable=False, default=False)
    confidence_score = Column(Float, nullable=False, default=0.0)
    transaction = Column(JSON, nullable=True)
    enrichment = Column(JSON, nullable=True)
    missing_fields = Column(JSON, nullable=True)
    questions = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    raw_text = Column(Text, nullable=True)

    review_status = Column(String(20), nullable=False, default="pending")  # pending, approved, skipped
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)
    clarification_session_id = Column(String(36), ForeignKey("clarification_sessions.id"), nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    batch_session = relationship("BatchSession", back_populates="records")
