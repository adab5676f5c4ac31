"""
LangGraph workflow orchestrator for tool-gated transaction extraction.

call_model -> execute_tools -> confirm (pending approvals) -> END
                            -> extract (structured records) -> END
                            -> reuse (cached record, no new results) -> END
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from langgraph.graph import StateGraph, END
from sqlalchemy.orm import Session

from app.agents.executor import ToolExecutor
from app.agents.llm import ModelInvoker
from app.agents.nodes import (
    create_call_model_node,
    create_execute_tools_node,
    create_confirmation_node,
    create_extract_node,
    reuse_record_node,
    route_after_tools,
    run_structured_extraction,
)
from app.agents.policy import ConfirmationPolicy, default_policy
from app.agents.prompts import build_extraction_prompt, format_document
from app.agents.state import ExtractionState
from app.schemas.extraction import ExtractionRecord
from app.schemas.tools import ConfirmationQuestion, ToolInvocation, ToolOutcome
from app.services.progress import ProgressReporter

logger = logging.getLogger(__name__)


@dataclass
class UserContext:
    user_id: str
    default_currency: str
    custom_context: Optional[str] = None
    user_bank_account_id: Optional[str] = None


@dataclass
class InvocationResult:
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    auto_results: Dict[str, ToolOutcome] = field(default_factory=dict)
    tool_results: Dict[str, ToolOutcome] = field(default_factory=dict)
    pending_confirmations: List[ToolInvocation] = field(default_factory=list)
    questions: List[ConfirmationQuestion] = field(default_factory=list)
    records: List[ExtractionRecord] = field(default_factory=list)
    notes: str = ""
    model_content: str = ""
    reused_cached_record: bool = False

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.pending_confirmations)


def create_extraction_workflow(
    invoker: ModelInvoker,
    executor: ToolExecutor,
    policy: ConfirmationPolicy,
    reporter: Optional[ProgressReporter] = None,
):
    """Create and compile the extraction workflow graph."""
    workflow = StateGraph(ExtractionState)

    workflow.add_node("call_model", create_call_model_node(invoker, reporter))
    workflow.add_node("execute_tools", create_execute_tools_node(executor, policy, reporter))
    workflow.add_node("confirm", create_confirmation_node(policy))
    workflow.add_node("extract", create_extract_node(invoker))
    workflow.add_node("reuse", reuse_record_node)

    workflow.set_entry_point("call_model")
    workflow.add_edge("call_model", "execute_tools")
    workflow.add_conditional_edges(
        "execute_tools",
        route_after_tools,
        {
            "confirm": "confirm",
            "extract": "extract",
            "reuse": "reuse",
        }
    )
    workflow.add_edge("confirm", END)
    workflow.add_edge("extract", END)
    workflow.add_edge("reuse", END)

    return workflow.compile()


def build_initial_messages(document_text: str, context: UserContext, batch: bool = True) -> List[tuple]:
    prompt = build_extraction_prompt(
        batch=batch,
        default_currency=context.default_currency,
        user_bank_account_id=context.user_bank_account_id,
        custom_context=context.custom_context,
    )
    return [("system", prompt), ("human", format_document(document_text))]


class ExtractionInvoker:
    """
    Runs the extraction workflow for one user: a single tool-bound model
    call, policy-gated tool execution, then structured extraction unless
    some call needs confirmation first.
    """

    def __init__(
        self,
        db: Session,
        user_id: str,
        invoker: ModelInvoker,
        policy: ConfirmationPolicy = default_policy,
    ):
        self.invoker = invoker
        self.policy = policy
        self.executor = ToolExecutor(db, user_id)

    async def invoke(
        self,
        document_text: str,
        context: UserContext,
        batch: bool = True,
        reporter: Optional[ProgressReporter] = None,
    ) -> InvocationResult:
        """Initial extraction of every transaction in a document."""
        state: ExtractionState = {
            "messages": build_initial_messages(document_text, context, batch),
            "output": "batch",
            "require_tool_calls": True,
            "user_bank_account_id": context.user_bank_account_id,
            "record_index": None,
            "cached_record": None,
            "tool_results": {},
            "current_step": "start",
        }
        return await self._run(state, reporter)

    async def converse(
        self,
        messages: List[tuple],
        tool_results: Dict[str, ToolOutcome],
        record_index: Optional[int],
        user_bank_account_id: Optional[str] = None,
        output: str = "record",
        cached_record: Optional[ExtractionRecord] = None,
    ) -> InvocationResult:
        """
        Follow-up turn of a clarification conversation; tool calls are optional.
        A cached record is returned as-is when the turn yields no new tool results.
        """
        state: ExtractionState = {
            "messages": messages,
            "output": output,
            "require_tool_calls": False,
            "user_bank_account_id": user_bank_account_id,
            "record_index": record_index,
            "cached_record": cached_record,
            "tool_results": dict(tool_results),
            "current_step": "start",
        }
        return await self._run(state, None)

    async def extract(
        self,
        messages: List[tuple],
        tool_results: Dict[str, ToolOutcome],
        output: str,
        record_index: Optional[int] = None,
        user_bank_account_id: Optional[str] = None,
    ) -> InvocationResult:
        """Structured extraction only, used once pending confirmations are resolved."""
        records, notes = await run_structured_extraction(
            self.invoker,
            messages,
            tool_results,
            output,
            user_bank_account_id=user_bank_account_id,
            record_index=record_index,
        )
        return InvocationResult(tool_results=dict(tool_results), records=records, notes=notes)

    async def _run(self, state: ExtractionState, reporter: Optional[ProgressReporter]) -> InvocationResult:
        app = create_extraction_workflow(self.invoker, self.executor, self.policy, reporter)
        final = await app.ainvoke(state)

        result = InvocationResult(
            tool_calls=final.get("tool_calls") or [],
            auto_results=final.get("auto_results") or {},
            tool_results=final.get("tool_results") or {},
            pending_confirmations=final.get("pending_calls") or [],
            questions=final.get("questions") or [],
            records=final.get("records") or [],
            notes=final.get("notes") or "",
            model_content=final.get("model_content") or "",
            reused_cached_record=final.get("current_step") == "reused",
        )
        logger.info(
            f"Extraction workflow finished at '{final.get('current_step')}': "
            f"{len(result.records)} record(s), {len(result.pending_confirmations)} pending confirmation(s)"
        )
        return result
