from sqlalchemy import Column, String, Text, Boolean, Float, DateTime, Numeric, JSON, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import uuid


class Transaction(Base):
    """A committed transaction created from an approved extraction record."""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=True, index=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    user_bank_account_id = Column(String(36), ForeignKey("bank_accounts.id"), nullable=True)
    to_bank_account_id = Column(String(36), ForeignKey("bank_accounts.id"), nullable=True)

    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    transaction_type = Column(String(20), nullable=False)  # INCOME, EXPENSE, TRANSFER, REFUND, FEE, ADJUSTMENT
    transaction_date = Column(DateTime(timezone=True), nullable=False)
    is_self_transaction = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    payment_method = Column(String(20), nullable=True)
    reference_number = Column(String, nullable=False)
    ai_confidence = Column(Float, nullable=True)
    status = Column(String(20), nullable=False, default="confirmed")

    # Similarity index payload
    summary = Column(Text, nullable=True)
    embedding = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    contact = relationship("Contact")
    category = relationship("Category")
