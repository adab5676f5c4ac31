from app.models.user import User
from app.models.document import Document
from app.models.category import Category
from app.models.contact import Contact
from app.models.bank_account import BankAccount
from app.models.transaction import Transaction
from app.models.batch_session import BatchSession, ExtractionRecordRow
from app.models.clarification import ClarificationSession, ClarificationMessage

__all__ = [
    "User",
    "Document",
    "Category",
    "Contact",
    "BankAccount",
    "Transaction",
    "BatchSession",
    "ExtractionRecordRow",
    "ClarificationSession",
    "ClarificationMessage",
]
