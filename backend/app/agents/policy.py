"""
Confirmation policy for agent tools.

Decides which tool calls may run automatically and which need an explicit
human approval before their side effect is made permanent.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from app.schemas.tools import ConfirmationQuestion, ToolInvocation, ToolOutcome


ALWAYS = "always"
NEVER = "never"
CONDITIONAL = "conditional"  # Only when the provisional result reports created=True


DEFAULT_TOOL_POLICIES: Dict[str, str] = {
    "get_category": NEVER,
    "create_category": CONDITIONAL,
    "get_bank_accounts": NEVER,
    "get_bank_account_by_id": NEVER,
    "validate_transaction_type": NEVER,
    "create_bank_account": ALWAYS,
    "get_or_create_contact": CONDITIONAL,
}


def _bank_account_question(args: Dict[str, Any]) -> str:
    bank_name = args.get("bank_name") or "Unknown bank"
    account_number = args.get("account_number") or "no account number"
    return (
        f'I noticed a new bank account: "{bank_name}" ({account_number}). '
        "Would you like me to add this to your accounts for future tracking?"
    )


def _category_question(args: Dict[str, Any]) -> str:
    name = args.get("category_name") or "Unknown"
    return f'I\'d like to create a new category called "{name}" for this transaction. Does that sound good?'


def _contact_question(args: Dict[str, Any]) -> str:
    name = args.get("contact_name") or "Unknown"
    return (
        f'I found a new contact: "{name}". '
        "Should I save them to your contacts so we can track future transactions together?"
    )


QUESTION_TEMPLATES = {
    "create_bank_account": _bank_account_question,
    "create_category": _category_question,
    "get_or_create_contact": _contact_question,
}


@dataclass(frozen=True)
class ConfirmationPolicy:
    """Immutable tool name -> policy table. Unknown tools never require confirmation."""
    policies: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_TOOL_POLICIES)))

    def __post_init__(self):
        for name, policy in self.policies.items():
            if policy not in (ALWAYS, NEVER, CONDITIONAL):
                raise ValueError(f"Unknown confirmation policy '{policy}' for tool '{name}'")
        if not isinstance(self.policies, MappingProxyType):
            object.__setattr__(self, "policies", MappingProxyType(dict(self.policies)))

    def policy_for(self, tool_name: str) -> str:
        return self.policies.get(tool_name, NEVER)

    def requires_confirmation(self, tool_name: str, result: Optional[ToolOutcome] = None) -> bool:
        """
        Whether a call needs human approval.

        `always` and `never` are decided up front. A conditional tool needs
        approval only when its provisional result reports a new entity.
        """
        policy = self.policy_for(tool_name)
        if policy == ALWAYS:
            return True
        if policy == CONDITIONAL:
            return result is not None and result.success and result.created
        return False

    def question_for(self, call: ToolInvocation) -> ConfirmationQuestion:
        template = QUESTION_TEMPLATES.get(call.name)
        if template:
            question = template(call.args or {})
        else:
            question = f"I'd like to perform this action: {call.name}. Is that okay?"
        return ConfirmationQuestion(tool_name=call.name, question=question, tool_call_id=call.id)

    def questions_for(self, calls: List[ToolInvocation]) -> List[ConfirmationQuestion]:
        return [self.question_for(call) for call in calls]


def confirmation_message(pending_count: int) -> str:
    """Assistant turn shown while confirmations are pending."""
    if pending_count == 1:
        return "I found something new in this receipt - just need your quick approval!"
    return f"I found {pending_count} new items in this receipt. Mind confirming these for me?"


default_policy = ConfirmationPolicy()
