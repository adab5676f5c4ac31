"""
Prompt builders for extraction, clarification and document detection.
"""
import json
from typing import Any, Dict, List, Optional

from app.schemas.extraction import REQUIRED_TRANSACTION_FIELDS


CORE_FIELD_RULES = """You are a transaction data validator and extractor.

Input may contain noise (markdown, OCR text, UI labels). Ignore the noise and extract only real transaction data.

Required fields: {required_fields}.
Optional fields: payment_method (cash/transfer/card), fees, category, sender_name, sender_bank,
receiver_name, receiver_bank, receiver_account_number, transaction_reference, status, summary.

Rules:
1. Parse thoroughly; only mark a field missing if it is truly absent.
2. Amount is critical - if it is missing the transaction is incomplete.
3. transaction_type is one of: income, expense, transfer, refund, fee, adjustment.
4. Use "transfer" only for money moved between the user's own accounts.
5. currency defaults to {default_currency} when not specified.
6. time_sent is ISO 8601.
7. Never use "N/A" and never invent data. Unknown values are missing.
8. summary follows "[Type] of [Amount] [to/from] [Party] for [Purpose] on [Date] via [Method]".

Completion logic (follow exactly):
- If ANY required field is missing or ambiguous: is_complete=false, transaction=null,
  missing_fields lists the field names, questions has one question per missing field,
  confidence_score < 1.
- If ALL required fields are clear: is_complete=true, transaction fully populated,
  missing_fields=null, questions=null.
Never return a partial transaction object."""

TOOL_CALLING_RULES = """## Tools
Call the relevant tools BEFORE extraction, all in one response:
- get_bank_account_by_id for the account the user selected ({user_bank_account_id}), or get_bank_accounts when none is selected
- get_category with each transaction's description
- get_or_create_contact with each transaction's external party name
Call validate_transaction_type only when you are unsure of the type.
Never ask the user for data a tool can provide."""

ENRICHMENT_RULES = """## Enrichment
Populate enrichment from the tool results below:
- category_id: id of the category from get_category / create_category that best matches
- contact_id: id returned by get_or_create_contact for the counterparty
- user_bank_account_id: the user's account from get_bank_account_by_id or get_bank_accounts
- is_self_transaction: true only when both sender_bank and receiver_bank are the user's accounts
Leave an id null when no tool result provides it."""

BATCH_RULES = """## Batch processing
The document contains multiple transactions. Identify each distinct transaction (distinct amount,
date and description) and skip summary rows, totals and balances. Return every transaction as its
own record, indexed from 0 in order of appearance, each with its own completeness, missing fields
and questions."""

SINGLE_RULES = """## Single transaction
The document contains one transaction. Return exactly one record with record_index 0."""

CLARIFICATION_RULES = """## Clarification
You are helping the user complete one transaction record. The record so far is in the conversation.
- If the user PROVIDES data, update the field and remove it from missing_fields.
- If the user ASKS a question, answer it in notes; this does not complete the record.
- Only mark is_complete=true when every required field is actually known."""

CUSTOM_USER_CONTEXT = """## Custom user instructions
{custom_context}
Apply these instructions, but the completion logic above always wins."""

DETECTION_PROMPT = """You are a financial document classifier. Analyze the document text and determine:
1. document_type: single_receipt, multi_item_receipt, bank_statement, invoice, expense_report or other
2. transaction_count: number of DISTINCT transactions (ignore totals, subtotals, balances); 0 if unclear
3. processing_mode: "single" for one transaction, "sequential" for two or more
4. confidence: 0-1
5. document_characteristics and a transaction_preview of up to the first 5 transactions

A bank statement lists many dated transactions. A multi-item receipt lists several purchases of one
payment - that is ONE transaction. An expense report lists several separate expenses."""


def build_extraction_prompt(
    batch: bool,
    default_currency: str,
    user_bank_account_id: Optional[str] = None,
    custom_context: Optional[str] = None,
) -> str:
    sections = [
        CORE_FIELD_RULES.format(
            required_fields=", ".join(REQUIRED_TRANSACTION_FIELDS),
            default_currency=default_currency,
        ),
        TOOL_CALLING_RULES.format(user_bank_account_id=user_bank_account_id or "none selected"),
        ENRICHMENT_RULES,
        BATCH_RULES if batch else SINGLE_RULES,
    ]
    if custom_context:
        sections.append(CUSTOM_USER_CONTEXT.format(custom_context=custom_context))
    return "\n\n".join(sections)


def build_clarification_prompt(default_currency: str, custom_context: Optional[str] = None) -> str:
    sections = [
        CORE_FIELD_RULES.format(
            required_fields=", ".join(REQUIRED_TRANSACTION_FIELDS),
            default_currency=default_currency,
        ),
        CLARIFICATION_RULES,
        ENRICHMENT_RULES,
    ]
    if custom_context:
        sections.append(CUSTOM_USER_CONTEXT.format(custom_context=custom_context))
    return "\n\n".join(sections)


def format_tool_results(results: Dict[str, Any]) -> str:
    """Render a name-keyed tool result map for the structured extraction call."""
    return "Tool Results:\n" + json.dumps(results, indent=2, default=str)


def format_document(document_text: str) -> str:
    return f"Document text:\n\n{document_text}"


def format_record(record: Dict[str, Any]) -> str:
    return json.dumps(record, indent=2, default=str)


def history_messages(turns: List[Dict[str, str]]) -> List[tuple]:
    """Map stored clarification turns onto model roles."""
    roles = {"user": "human", "assistant": "ai"}
    return [(roles.get(turn["role"], "human"), turn["content"]) for turn in turns]
