"""
Typed tool invocation and tool result schemas.

Every tool returns one fixed result model tagged by `kind`, so enrichment reads
plain attributes instead of navigating provider-specific JSON.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal, Union, Annotated


class ToolInvocation(BaseModel):
    """A tool call requested by the model"""
    name: str
    args: Dict[str, Any] = {}
    id: Optional[str] = None


class CategorySummary(BaseModel):
    id: str
    name: str
    is_system: bool = False


class CategoryList(BaseModel):
    kind: Literal["category_list"] = "category_list"
    transaction_description: str
    categories: List[CategorySummary] = []


class CategoryResolution(BaseModel):
    kind: Literal["category_resolution"] = "category_resolution"
    query: str
    category_id: Optional[str] = None  # None while the creation awaits confirmation
    name: str
    created: bool
    match_confidence: float


class ContactResolution(BaseModel):
    kind: Literal["contact_resolution"] = "contact_resolution"
    query: str
    contact_id: Optional[str] = None  # None while the creation awaits confirmation
    name: str
    contact_type: Optional[str] = None
    name_variations: List[str] = []
    created: bool
    match_confidence: float
    matched_variation: Optional[str] = None
    transaction_count: int = 0


class BankAccountSummary(BaseModel):
    id: Optional[str] = None
    account_name: Optional[str] = None
    account_number: Optional[str] = None
    bank_name: str
    account_type: Optional[str] = None
    nickname: Optional[str] = None
    currency: str
    is_active: bool = True
    is_primary: bool = False


class BankAccountList(BaseModel):
    kind: Literal["bank_account_list"] = "bank_account_list"
    accounts: List[BankAccountSummary] = []
    primary_account_id: Optional[str] = None
    requires_bank_account: bool = False


class BankAccountLookup(BaseModel):
    kind: Literal["bank_account"] = "bank_account"
    found: bool
    account: Optional[BankAccountSummary] = None


class BankAccountCreation(BaseModel):
    kind: Literal["bank_account_creation"] = "bank_account_creation"
    account: BankAccountSummary
    created: bool


class TypeValidation(BaseModel):
    kind: Literal["type_validation"] = "type_validation"
    proposed_type: str
    is_valid: bool
    suggested_type: str
    confidence: float
    reasoning: str
    warnings: List[str] = []


class DeclinedAction(BaseModel):
    kind: Literal["declined"] = "declined"
    tool_name: str
    skipped: bool = True
    reason: str = "User declined"


ToolResult = Annotated[
    Union[
        CategoryList,
        CategoryResolution,
        ContactResolution,
        BankAccountList,
        BankAccountLookup,
        BankAccountCreation,
        TypeValidation,
        DeclinedAction,
    ],
    Field(discriminator="kind"),
]


class ToolOutcome(BaseModel):
    """Uniform success/error envelope around a tool result"""
    success: bool
    data: Optional[ToolResult] = None
    error: Optional[str] = None

    @property
    def created(self) -> bool:
        return bool(getattr(self.data, "created", False))


class ConfirmationQuestion(BaseModel):
    """Human-readable question asking to approve one pending tool call"""
    tool_name: str
    question: str
    tool_call_id: Optional[str] = None
