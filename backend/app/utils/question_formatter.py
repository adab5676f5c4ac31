"""
Clarification question templates for missing transaction fields.
"""
from typing import Dict, List, Optional

from app.schemas.extraction import StructuredQuestion


def format_question(
    field: str,
    question: str,
    suggestions: Optional[List[str]] = None,
    hint: Optional[str] = None
) -> StructuredQuestion:
    return StructuredQuestion(field=field, question=question, suggestions=suggestions or [], hint=hint)


_DATE_HINT = 'You can use formats like "2026-01-15" or "2026-01-15T14:30:00"'

FIELD_QUESTIONS: Dict[str, StructuredQuestion] = {
    "transaction_type": format_question(
        "transaction_type",
        "What type of transaction is this?",
        ["income", "expense", "transfer", "refund", "fee", "adjustment"],
        "Choose the option that best describes this transaction",
    ),
    "transaction_direction": format_question(
        "transaction_direction",
        "Did you receive this money or send it?",
        ["inbound", "outbound"],
    ),
    "payment_method": format_question(
        "payment_method",
        "How was this payment made?",
        ["cash", "transfer", "card"],
        "This helps us categorize and track your spending patterns",
    ),
    "transaction_reference": format_question(
        "transaction_reference",
        "What's the transaction reference number?",
        hint="Don't worry - we can create one for you if it's not on the receipt",
    ),
    "description": format_question(
        "description",
        "Could you describe what this transaction was for?",
        hint='A brief note like "Groceries at Shoprite" or "Uber ride home" works great',
    ),
    "amount": format_question(
        "amount",
        "What was the transaction amount?",
        hint="Please enter the number without currency symbols",
    ),
    "time_sent": format_question("time_sent", "When did this transaction occur?", hint=_DATE_HINT),
    "date": format_question("date", "When did this transaction occur?", hint=_DATE_HINT),
    "receiver_name": format_question(
        "receiver_name",
        "Who received this payment?",
        hint="We can save this contact for future reference",
    ),
    "sender_name": format_question(
        "sender_name",
        "Who sent this payment?",
        hint="We can save this contact for future reference",
    ),
    "category": format_question(
        "category",
        "Which category does this transaction belong to?",
        hint="We can create a new category if you don't have one that fits",
    ),
    "bank_account": format_question(
        "bank_account",
        "Which account was this transaction made from?",
        hint="We can add a new account if it's not in your list",
    ),
    "currency": format_question(
        "currency",
        "What currency was used for this transaction?",
        ["NGN", "USD", "EUR", "GBP"],
        'Enter the 3-letter currency code (e.g., "USD", "NGN")',
    ),
}


def question_for_field(field: str) -> StructuredQuestion:
    """Predefined question for a field, or a generic one built from its name."""
    if field in FIELD_QUESTIONS:
        return FIELD_QUESTIONS[field].model_copy(deep=True)

    readable = field.replace("_", " ").strip().lower()
    return format_question(
        field,
        f"Could you provide the {readable}?",
        hint="This information will help us process your transaction accurately",
    )


def questions_for_fields(fields: List[str]) -> List[StructuredQuestion]:
    return [question_for_field(field) for field in fields]
