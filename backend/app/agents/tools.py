"""
Agent tools for enriching extracted transactions.
These tools let the model look up categories, contacts and bank accounts,
create missing ones, and sanity-check the transaction type.

Every handler receives a ToolContext carrying the database session and the
authenticated user id; the model never supplies the user id itself.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Literal, Type

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from langchain_core.utils.function_calling import convert_to_openai_tool

from app.config import settings
from app.models.bank_account import BankAccount
from app.models.category import Category
from app.models.transaction import Transaction
from app.schemas.tools import (
    BankAccountCreation,
    BankAccountList,
    BankAccountLookup,
    BankAccountSummary,
    CategoryList,
    CategoryResolution,
    CategorySummary,
    ContactResolution,
    TypeValidation,
)
from app.services.entity_resolver import EntityResolver, CONTACT, CATEGORY
from app.utils.matching_rules import check_transaction_type

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    db: Session
    user_id: str
    commit_creates: bool = True  # False: resolve without persisting new entities


# Argument schemas

class GetCategoryArgs(BaseModel):
    transaction_description: str = Field(
        description="The description and summary of the transaction to match against existing categories"
    )


class CreateCategoryArgs(BaseModel):
    category_name: str = Field(description="The name of the category to create")
    existing_category_id: Optional[str] = Field(
        default=None, description="If the user wants to use an existing category, provide its ID"
    )


class GetBankAccountsArgs(BaseModel):
    is_active: Optional[bool] = Field(default=None, description="Filter by active status (omit to get all accounts)")
    currency: Optional[str] = Field(default=None, description="Filter by currency code (e.g., NGN, USD)")


class GetBankAccountByIdArgs(BaseModel):
    account_id: str = Field(description="The ID of the user's bank account")


class ValidateTransactionTypeArgs(BaseModel):
    proposed_type: str = Field(description="income, expense, transfer, refund, fee or adjustment")
    amount: float = Field(description="The transaction amount")
    description: Optional[str] = Field(default=None, description="Transaction description for context")
    contact_name: Optional[str] = Field(default=None, description="Name of the contact/merchant for context")
    transaction_direction: Optional[Literal["inbound", "outbound"]] = Field(
        default=None, description="inbound = receiving, outbound = sending"
    )
    is_self_transaction: bool = Field(default=False, description="Whether this is a transfer between the user's own accounts")


class CreateBankAccountArgs(BaseModel):
    account_name: str = Field(description="The name on the bank account")
    account_number: Optional[str] = Field(default=None, description="The account number (optional for wallets/cards)")
    bank_name: str = Field(description="The name of the bank or financial institution")
    account_type: Optional[Literal["savings", "current", "wallet", "card", "other"]] = None
    currency: str = Field(default_factory=lambda: settings.default_currency, description="Currency code")
    nickname: Optional[str] = Field(default=None, description="Optional nickname for easy identification")
    is_primary: bool = Field(default=False, description="Set as primary account (unsets other primary accounts)")


class GetOrCreateContactArgs(BaseModel):
    contact_name: str = Field(description="The name of the contact to find or create")
    contact_type: Optional[Literal["person", "merchant", "bank", "platform", "wallet", "system"]] = None
    category_id: Optional[str] = Field(default=None, description="Optional default category ID for this contact")
    bank_name: Optional[str] = Field(default=None, description="Bank of the contact, helps determine the contact type")
    description: Optional[str] = Field(default=None, description="Transaction description, helps determine the contact type")


# Handlers

def _account_summary(account: BankAccount) -> BankAccountSummary:
    return BankAccountSummary(
        id=account.id,
        account_name=account.account_name,
        account_number=account.account_number,
        bank_name=account.bank_name,
        account_type=account.account_type,
        nickname=account.nickname,
        currency=account.currency,
        is_active=bool(account.is_active),
        is_primary=bool(account.is_primary),
    )


def get_category(ctx: ToolContext, args: GetCategoryArgs) -> CategoryList:
    """
    Return every active category visible to the user; the model picks the
    best match for the transaction description itself.
    """
    categories = (
        ctx.db.query(Category)
        .filter(Category.is_active.is_(True))
        .filter((Category.user_id == ctx.user_id) | (Category.is_system.is_(True)))
        .order_by(Category.is_system.desc(), Category.name)
        .all()
    )
    return CategoryList(
        transaction_description=args.transaction_description,
        categories=[CategorySummary(id=c.id, name=c.name, is_system=bool(c.is_system)) for c in categories],
    )


def create_category(ctx: ToolContext, args: CreateCategoryArgs) -> CategoryResolution:
    if args.existing_category_id:
        category = (
            ctx.db.query(Category)
            .filter(Category.id == args.existing_category_id, Category.is_active.is_(True))
            .filter((Category.user_id == ctx.user_id) | (Category.is_system.is_(True)))
            .first()
        )
        if not category:
            raise ValueError("Specified category not found or not accessible")
        return CategoryResolution(
            query=args.category_name,
            category_id=category.id,
            name=category.name,
            created=False,
            match_confidence=1.0,
        )

    resolution = EntityResolver(ctx.db).resolve(
        args.category_name, CATEGORY, ctx.user_id, persist=ctx.commit_creates
    )
    return CategoryResolution(
        query=args.category_name,
        category_id=resolution.entity.id,
        name=resolution.entity.name,
        created=resolution.created,
        match_confidence=resolution.match_confidence,
    )


def get_or_create_contact(ctx: ToolContext, args: GetOrCreateContactArgs) -> ContactResolution:
    resolution = EntityResolver(ctx.db).resolve(
        args.contact_name,
        CONTACT,
        ctx.user_id,
        persist=ctx.commit_creates,
        contact_type=args.contact_type,
        category_id=args.category_id,
        bank_name=args.bank_name,
        description=args.description,
    )
    contact = resolution.entity

    transaction_count = 0
    if contact.id:
        transaction_count = ctx.db.query(Transaction).filter(Transaction.contact_id == contact.id).count()

    return ContactResolution(
        query=args.contact_name,
        contact_id=contact.id,
        name=contact.name,
        contact_type=contact.contact_type,
        name_variations=list(contact.name_variations or []),
        created=resolution.created,
        match_confidence=resolution.match_confidence,
        matched_variation=resolution.matched_variation,
        transaction_count=transaction_count,
    )


def get_bank_accounts(ctx: ToolContext, args: GetBankAccountsArgs) -> BankAccountList:
    query = ctx.db.query(BankAccount).filter(BankAccount.user_id == ctx.user_id)
    if args.is_active is not None:
        query = query.filter(BankAccount.is_active.is_(args.is_active))
    if args.currency:
        query = query.filter(BankAccount.currency == args.currency.upper())

    accounts = query.order_by(BankAccount.is_primary.desc(), BankAccount.created_at.desc()).all()
    primary = next((a for a in accounts if a.is_primary), None)

    return BankAccountList(
        accounts=[_account_summary(a) for a in accounts],
        primary_account_id=primary.id if primary else None,
        requires_bank_account=not accounts,
    )


def get_bank_account_by_id(ctx: ToolContext, args: GetBankAccountByIdArgs) -> BankAccountLookup:
    account = (
        ctx.db.query(BankAccount)
        .filter(BankAccount.id == args.account_id, BankAccount.user_id == ctx.user_id)
        .first()
    )
    if not account:
        return BankAccountLookup(found=False)
    return BankAccountLookup(found=True, account=_account_summary(account))


def validate_transaction_type(ctx: ToolContext, args: ValidateTransactionTypeArgs) -> TypeValidation:
    return check_transaction_type(
        proposed_type=args.proposed_type,
        amount=args.amount,
        description=args.description,
        transaction_direction=args.transaction_direction,
        is_self_transaction=args.is_self_transaction,
    )


def create_bank_account(ctx: ToolContext, args: CreateBankAccountArgs) -> BankAccountCreation:
    account = BankAccount(
        user_id=ctx.user_id,
        account_name=args.account_name,
        account_number=args.account_number,
        bank_name=args.bank_name,
        account_type=args.account_type,
        currency=args.currency.upper(),
        nickname=args.nickname,
        is_primary=args.is_primary,
        is_active=True,
    )
    if not ctx.commit_creates:
        return BankAccountCreation(account=_account_summary(account), created=True)

    if args.is_primary:
        ctx.db.query(BankAccount).filter(
            BankAccount.user_id == ctx.user_id, BankAccount.is_primary.is_(True)
        ).update({"is_primary": False}, synchronize_session="fetch")

    ctx.db.add(account)
    ctx.db.flush()
    logger.info(f"Created bank account {account.id} ({account.bank_name}) for user {ctx.user_id}")
    return BankAccountCreation(account=_account_summary(account), created=True)


# Registry

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_schema: Type[BaseModel]
    handler: Callable[[ToolContext, BaseModel], BaseModel]

    def to_openai_tool(self) -> dict:
        """OpenAI function-calling definition bound to the chat model."""
        definition = convert_to_openai_tool(self.args_schema)
        definition["function"]["name"] = self.name
        definition["function"]["description"] = self.description
        return definition


TOOL_SPECS: List[ToolSpec] = [
    ToolSpec(
        "get_category",
        "Retrieves all available categories for the user. Analyze the transaction description against "
        "the returned categories and pick the one (if any) that best matches the transaction.",
        GetCategoryArgs,
        get_category,
    ),
    ToolSpec(
        "create_category",
        "Creates a new category with the given name, or uses an existing category if one is specified by ID. "
        "If a similar category already exists, returns it instead of creating a duplicate.",
        CreateCategoryArgs,
        create_category,
    ),
    ToolSpec(
        "get_bank_accounts",
        "Retrieve the user's bank accounts, optionally filtered by active status or currency. "
        "The primary account is highlighted.",
        GetBankAccountsArgs,
        get_bank_accounts,
    ),
    ToolSpec(
        "get_bank_account_by_id",
        "Retrieve one of the user's bank accounts by its ID.",
        GetBankAccountByIdArgs,
        get_bank_account_by_id,
    ),
    ToolSpec(
        "validate_transaction_type",
        "Validate that a transaction type is appropriate given the amount, description and direction. "
        "Returns a suggested type with reasoning.",
        ValidateTransactionTypeArgs,
        validate_transaction_type,
    ),
    ToolSpec(
        "create_bank_account",
        "Create a new bank account for the user (savings, current, wallet, card). "
        "Can optionally set it as the primary account.",
        CreateBankAccountArgs,
        create_bank_account,
    ),
    ToolSpec(
        "get_or_create_contact",
        "Find a contact (person, merchant, bank...) by name using fuzzy matching, "
        "or create it when no match exists.",
        GetOrCreateContactArgs,
        get_or_create_contact,
    ),
]

TOOL_REGISTRY: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}


def openai_tool_definitions() -> List[dict]:
    return [spec.to_openai_tool() for spec in TOOL_SPECS]
