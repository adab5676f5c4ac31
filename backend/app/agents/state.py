from typing import TypedDict, List, Dict, Optional, Literal

from app.schemas.extraction import ExtractionRecord
from app.schemas.tools import ConfirmationQuestion, ToolInvocation, ToolOutcome


class ExtractionState(TypedDict):
    """State passed between extraction workflow nodes."""

    # Input context
    messages: List[tuple]  # (role, content) pairs sent to the model
    output: Literal["batch", "record"]  # Structured shape of the final extraction
    require_tool_calls: bool  # Initial extraction must call tools, clarification turns need not
    user_bank_account_id: Optional[str]
    record_index: Optional[int]  # Index given to a single re-extracted record
    cached_record: Optional[ExtractionRecord]  # Reused when the turn produced no new tool results

    # Tool stage
    tool_calls: List[ToolInvocation]
    model_content: str
    tool_results: Dict[str, ToolOutcome]  # Prior cache merged with this call's auto results
    auto_results: Dict[str, ToolOutcome]  # Results produced by this invocation only
    pending_calls: List[ToolInvocation]
    questions: List[ConfirmationQuestion]

    # Extraction stage
    records: List[ExtractionRecord]
    notes: str

    # Metadata
    current_step: str
