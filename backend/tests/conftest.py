from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  Registers every table on Base.metadata
from app.agents.llm import ModelResponse
from app.database import Base
from app.errors import AppError
from app.models.bank_account import BankAccount
from app.models.document import Document
from app.models.user import User
from app.schemas.extraction import BatchDraft, RecordDraft, TransactionDraft, StructuredQuestion
from app.schemas.tools import ToolInvocation


class ScriptedInvoker:
    """ModelInvoker replaying queued responses in order."""

    def __init__(self):
        self.tool_responses: List[ModelResponse] = []
        self.structured_responses = []
        self.tool_call_count = 0
        self.structured_call_count = 0
        self.seen_messages = []

    def queue_tool_calls(self, *calls: ToolInvocation, content: str = ""):
        self.tool_responses.append(ModelResponse(content=content, tool_calls=list(calls)))

    def queue_structured(self, value):
        self.structured_responses.append(value)

    async def invoke_with_tools(self, messages, tools, tool_choice="auto"):
        self.tool_call_count += 1
        self.seen_messages.append(list(messages))
        assert self.tool_responses, "unexpected tool-bound model call"
        return self.tool_responses.pop(0)

    async def invoke_structured(self, messages, schema):
        self.structured_call_count += 1
        self.seen_messages.append(list(messages))
        assert self.structured_responses, "unexpected structured model call"
        value = self.structured_responses.pop(0)
        assert isinstance(value, schema), f"expected {schema.__name__}, got {type(value).__name__}"
        return value


class FakeIndex:
    """SimilarityIndex recording what it was asked to embed."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.indexed = []

    async def index(self, record_id: str, text: str) -> List[float]:
        if self.fail:
            raise AppError(502, "Failed to generate embedding", "index_transaction")
        self.indexed.append((record_id, text))
        return [0.1, 0.2, 0.3]


def call(name: str, call_id: Optional[str] = None, **args) -> ToolInvocation:
    return ToolInvocation(name=name, args=args, id=call_id or f"call_{name}")


def complete_draft(index: int, amount: float = 2500.0, **overrides) -> RecordDraft:
    fields = dict(
        transaction_type="EXPENSE",
        amount=amount,
        currency="NGN",
        transaction_direction="outbound",
        description=f"Purchase {index}",
        time_sent=f"2026-01-{10 + index:02d}T10:00:00",
        payment_method="transfer",
        receiver_name=f"Merchant {index}",
    )
    fields.update(overrides)
    return RecordDraft(
        record_index=index,
        is_complete=True,
        confidence_score=0.9,
        transaction=TransactionDraft(**fields),
    )


def incomplete_draft(index: int, missing: Optional[List[str]] = None) -> RecordDraft:
    missing = missing or ["amount"]
    return RecordDraft(
        record_index=index,
        is_complete=False,
        confidence_score=0.5,
        missing_fields=missing,
        questions=[StructuredQuestion(field=f, question=f"What is the {f}?") for f in missing],
        raw_text=f"line {index}",
    )


def batch_of(*drafts: RecordDraft, notes: str = "") -> BatchDraft:
    return BatchDraft(records=list(drafts), notes=notes)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def invoker():
    return ScriptedInvoker()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def user(db):
    user = User(name="Ada Obi", default_currency="NGN")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    user = User(name="Someone Else", default_currency="USD")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def bank_account(db, user):
    account = BankAccount(
        user_id=user.id,
        account_name="Ada Obi",
        account_number="0123456789",
        bank_name="GTBank",
        account_type="savings",
        currency="NGN",
        is_primary=True,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def document(db, user):
    document = Document(
        user_id=user.id,
        filename="statement.pdf",
        raw_text=(
            "GTBank statement\n"
            "2026-01-10 DR NGN 2,500.00 POS SHOPRITE\n"
            "2026-01-11 DR NGN 2,500.00 TRF JOHN DOE\n"
            "2026-01-12 DR NGN 2,500.00 UBER TRIP\n"
        ),
        document_type="bank_statement",
        transaction_count=3,
        detection_confidence=0.9,
        detection={"document_type": "bank_statement", "processing_mode": "sequential"},
        processing_status="processed",
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document
