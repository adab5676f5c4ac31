from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.sql import func
from app.database import Base
import uuid


class ClarificationSession(Base):
    """
    Sub-conversation resolving one extraction record. A session with no
    record index gates the initiating extraction of its batch.
    """
    __tablename__ = "clarification_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=False, index=True)
    batch_session_id = Column(String(36), ForeignKey("batch_sessions.id"), nullable=True, index=True)
    record_index = Column(Integer, nullable=True)

    status = Column(String(24), nullable=False, default="active", index=True)  # active, pending_confirmation, completed
    tool_results = Column(JSON, nullable=False, default=dict)  # Keyed by tool name
    pending_tool_calls = Column(JSON, nullable=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=True)

    started_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    messages = relationship(
        "ClarificationMessage",
        back_populates="session",
        order_by="ClarificationMessage.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )


class ClarificationMessage(Base):
    """Append-only conversation turn."""
    __tablename__ = "clarification_messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    session_id = Column(String(36), ForeignKey("clarification_sessions.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    role = Column(String(10), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    session = relationship("ClarificationSession", back_populates="messages")
