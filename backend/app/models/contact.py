from sqlalchemy import Column, String, Text, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import uuid


class Contact(Base):
    """Counterparty of a transaction (person, merchant, bank...)."""
    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("user_id", "normalized_name", name="uq_contacts_user_normalized_name"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    normalized_name = Column(String, nullable=False)
    name_variations = Column(JSON, nullable=False, default=list)
    contact_type = Column(String(20), nullable=True)  # person, merchant, bank, platform, wallet, system
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    default_category = relationship("Category")
