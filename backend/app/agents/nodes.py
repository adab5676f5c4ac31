"""
Agent nodes for the LangGraph extraction workflow.
Each node represents one step: the tool-bound model call, tool execution
gated by the confirmation policy, and the structured extraction.
"""
import logging
from typing import Dict, List, Optional

from app.agents.executor import ToolExecutor, result_key, dump_results
from app.agents.llm import ModelInvoker
from app.agents.policy import ConfirmationPolicy, ALWAYS
from app.agents.prompts import format_tool_results
from app.agents.state import ExtractionState
from app.agents.tools import openai_tool_definitions
from app.errors import ExtractionError
from app.schemas.extraction import BatchDraft, EnrichmentData, ExtractionRecord, RecordDraft
from app.schemas.tools import (
    BankAccountList,
    BankAccountLookup,
    BankAccountCreation,
    CategoryList,
    CategoryResolution,
    ContactResolution,
    ToolOutcome,
)
from app.services.progress import ProgressReporter, report
from app.utils.matching_rules import normalize_name

logger = logging.getLogger(__name__)


def create_call_model_node(invoker: ModelInvoker, reporter: Optional[ProgressReporter] = None):
    """Create the tool-bound model call node."""
    async def call_model_node(state: ExtractionState) -> ExtractionState:
        await report(reporter, "invoking_ai", "Sending document to AI for analysis")

        response = await invoker.invoke_with_tools(state["messages"], openai_tool_definitions(), tool_choice="auto")

        if not response.tool_calls and state.get("require_tool_calls", True):
            logger.error("Model returned no tool calls for extraction")
            raise ExtractionError(
                500,
                "AI did not call any tools. Cannot proceed with extraction.",
                "invoke_extraction",
            )

        state["tool_calls"] = response.tool_calls
        state["model_content"] = response.content
        state["current_step"] = "analyzed"

        await report(
            reporter,
            "analyzing",
            f"AI requested {len(response.tool_calls)} tool call(s)",
            {"tool_calls": [call.name for call in response.tool_calls]},
        )
        return state
    return call_model_node


def create_execute_tools_node(
    executor: ToolExecutor,
    policy: ConfirmationPolicy,
    reporter: Optional[ProgressReporter] = None,
):
    """Create the tool execution node with policy gating."""
    async def execute_tools_node(state: ExtractionState) -> ExtractionState:
        calls = state.get("tool_calls", [])
        await report(reporter, "executing_tools", f"Executing {len(calls)} tool call(s)", {"tool_count": len(calls)})

        # `always` tools never run before approval; the rest run provisionally,
        # conditional ones in preview mode so nothing new is persisted yet
        gated = [call for call in calls if policy.policy_for(call.name) == ALWAYS]
        runnable = [call for call in calls if policy.policy_for(call.name) != ALWAYS]
        outcomes = await executor.execute_many(runnable, commit_creates=False)

        pending = list(gated)
        auto_results: Dict[str, ToolOutcome] = {}
        for call, outcome in zip(runnable, outcomes):
            if policy.requires_confirmation(call.name, outcome):
                pending.append(call)
            else:
                auto_results[result_key(auto_results, call.name)] = outcome

        tool_results = dict(state.get("tool_results") or {})
        tool_results.update(auto_results)

        state["auto_results"] = auto_results
        state["tool_results"] = tool_results
        state["pending_calls"] = pending
        state["current_step"] = "tools_executed"

        logger.info(f"Tool stage: {len(auto_results)} auto-executed, {len(pending)} awaiting confirmation")
        return state
    return execute_tools_node


def create_confirmation_node(policy: ConfirmationPolicy):
    """Create the node that turns pending calls into confirmation questions."""
    def confirmation_node(state: ExtractionState) -> ExtractionState:
        state["questions"] = policy.questions_for(state.get("pending_calls", []))
        state["records"] = []
        state["current_step"] = "awaiting_confirmation"
        return state
    return confirmation_node


def create_extract_node(invoker: ModelInvoker):
    """Create the structured extraction node."""
    async def extract_node(state: ExtractionState) -> ExtractionState:
        records, notes = await run_structured_extraction(
            invoker,
            state["messages"],
            state.get("tool_results") or {},
            state.get("output", "batch"),
            user_bank_account_id=state.get("user_bank_account_id"),
            record_index=state.get("record_index"),
        )
        state["records"] = records
        state["notes"] = notes
        state["questions"] = []
        state["current_step"] = "extracted"
        return state
    return extract_node


def reuse_record_node(state: ExtractionState) -> ExtractionState:
    """Carry the cached record forward instead of re-extracting."""
    cached = state["cached_record"]
    state["records"] = [enrich_record(cached, state.get("tool_results") or {}, state.get("user_bank_account_id"))]
    state["notes"] = cached.notes
    state["questions"] = []
    state["current_step"] = "reused"
    logger.info(f"Reused cached record {cached.record_index} without a structured call")
    return state


async def run_structured_extraction(
    invoker: ModelInvoker,
    messages: List[tuple],
    tool_results: Dict[str, ToolOutcome],
    output: str,
    user_bank_account_id: Optional[str] = None,
    record_index: Optional[int] = None,
):
    """
    Structured-output call producing consistent, enriched records.

    Returns (records, notes). Batch output is re-indexed 0..N-1 in the order
    the model reported them.
    """
    structured_messages = list(messages)
    if tool_results:
        structured_messages.append(("human", format_tool_results(dump_results(tool_results))))

    if output == "record":
        structured_messages.append(("human", "Return the updated transaction record."))
        draft = await invoker.invoke_structured(structured_messages, RecordDraft)
        records = [draft.to_record(record_index=record_index or 0)]
        notes = draft.notes or ""
    else:
        structured_messages.append(("human", "Return every transaction in the document as a record."))
        batch = await invoker.invoke_structured(structured_messages, BatchDraft)
        drafts = sorted(batch.records, key=lambda d: d.record_index)
        records = [draft.to_record(record_index=i) for i, draft in enumerate(drafts)]
        notes = batch.notes or ""

    records = [enrich_record(record, tool_results, user_bank_account_id) for record in records]
    return records, notes


# Routing functions

def route_after_tools(state: ExtractionState) -> str:
    """Pending confirmations short-circuit the structured extraction."""
    if state.get("pending_calls"):
        return "confirm"
    if state.get("cached_record") is not None and not state.get("auto_results"):
        return "reuse"
    return "extract"


# Enrichment

def enrich_record(
    record: ExtractionRecord,
    tool_results: Dict[str, ToolOutcome],
    user_bank_account_id: Optional[str] = None,
) -> ExtractionRecord:
    """
    Fill the enrichment block from typed tool results. Identifiers the model
    supplied are kept only when some tool result actually returned them.
    """
    results = [o.data for o in tool_results.values() if o.success and o.data is not None]
    known_ids = _known_ids(results)
    claimed = record.enrichment or EnrichmentData()
    transaction = record.transaction

    category_id = _match_category(results, transaction.category if transaction else None)
    contact_id = _match_contact(results, transaction.counterparty_name if transaction else None)
    account_id, to_account_id, is_self = _match_accounts(results, transaction, user_bank_account_id)

    enrichment = EnrichmentData(
        category_id=category_id or _if_known(claimed.category_id, known_ids),
        contact_id=contact_id or _if_known(claimed.contact_id, known_ids),
        user_bank_account_id=account_id or _if_known(claimed.user_bank_account_id, known_ids),
        to_bank_account_id=to_account_id or _if_known(claimed.to_bank_account_id, known_ids),
        is_self_transaction=is_self,
    )
    return record.model_copy(update={"enrichment": enrichment})


def _known_ids(results) -> set:
    ids = set()
    for result in results:
        if isinstance(result, CategoryList):
            ids.update(c.id for c in result.categories)
        elif isinstance(result, CategoryResolution) and result.category_id:
            ids.add(result.category_id)
        elif isinstance(result, ContactResolution) and result.contact_id:
            ids.add(result.contact_id)
        elif isinstance(result, BankAccountList):
            ids.update(a.id for a in result.accounts if a.id)
        elif isinstance(result, (BankAccountLookup, BankAccountCreation)) and result.account and result.account.id:
            ids.add(result.account.id)
    return ids


def _if_known(value: Optional[str], known_ids: set) -> Optional[str]:
    return value if value and value in known_ids else None


def _match_category(results, hint: Optional[str]) -> Optional[str]:
    resolutions = [r for r in results if isinstance(r, CategoryResolution) and r.category_id]
    wanted = normalize_name(hint) if hint else None

    if wanted:
        for resolution in resolutions:
            if wanted in (normalize_name(resolution.name), normalize_name(resolution.query)):
                return resolution.category_id
        for result in results:
            if isinstance(result, CategoryList):
                for category in result.categories:
                    if normalize_name(category.name) == wanted:
                        return category.id

    if len(resolutions) == 1:
        return resolutions[0].category_id
    return None


def _match_contact(results, counterparty: Optional[str]) -> Optional[str]:
    resolutions = [r for r in results if isinstance(r, ContactResolution) and r.contact_id]
    wanted = normalize_name(counterparty) if counterparty else None

    if wanted:
        for resolution in resolutions:
            names = {normalize_name(resolution.query), normalize_name(resolution.name)}
            if wanted in names or wanted in resolution.name_variations:
                return resolution.contact_id

    if len(resolutions) == 1:
        return resolutions[0].contact_id
    return None


def _account_for_bank(accounts, bank_name: Optional[str]):
    if not bank_name:
        return None
    wanted = normalize_name(bank_name)
    for account in accounts:
        candidate = normalize_name(account.bank_name)
        if candidate and (candidate in wanted or wanted in candidate):
            return account
    return None


def _match_accounts(results, transaction, user_bank_account_id: Optional[str]):
    """Returns (user_bank_account_id, to_bank_account_id, is_self_transaction)."""
    accounts = []
    for result in results:
        if isinstance(result, BankAccountList):
            accounts.extend(result.accounts)
        elif isinstance(result, (BankAccountLookup, BankAccountCreation)) and result.account and result.account.id:
            accounts.append(result.account)

    looked_up = next(
        (r.account.id for r in results if isinstance(r, BankAccountLookup) and r.found and r.account),
        None,
    )

    if transaction is None:
        return looked_up or user_bank_account_id, None, False

    sender = _account_for_bank(accounts, transaction.sender_bank)
    receiver = _account_for_bank(accounts, transaction.receiver_bank)
    own = sender if transaction.transaction_direction == "outbound" else receiver

    account_id = looked_up or user_bank_account_id or (own.id if own else None)

    is_self = sender is not None and receiver is not None and sender.id != receiver.id
    to_account_id = receiver.id if is_self else None
    return account_id, to_account_id, is_self
