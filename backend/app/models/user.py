from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import uuid


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name = Column(String, nullable=False)
    default_currency = Column(String(3), nullable=False, default="NGN")
    custom_context_prompt = Column(Text, nullable=True)  # Extra instructions appended to extraction prompts
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    documents = relationship("Document", back_populates="user")
    bank_accounts = relationship("BankAccount", back_populates="user")
