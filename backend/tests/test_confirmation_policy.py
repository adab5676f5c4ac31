import pytest

from app.agents.policy import ConfirmationPolicy, ALWAYS, NEVER, CONDITIONAL, default_policy, confirmation_message
from app.schemas.tools import (
    BankAccountCreation,
    BankAccountSummary,
    ContactResolution,
    ToolInvocation,
    ToolOutcome,
)


def _contact_outcome(created: bool) -> ToolOutcome:
    return ToolOutcome(
        success=True,
        data=ContactResolution(query="Jo", name="Jo", created=created, match_confidence=0.0 if created else 1.0),
    )


def test_default_table():
    assert default_policy.policy_for("create_bank_account") == ALWAYS
    assert default_policy.policy_for("get_or_create_contact") == CONDITIONAL
    assert default_policy.policy_for("create_category") == CONDITIONAL
    assert default_policy.policy_for("get_bank_accounts") == NEVER


def test_unknown_tool_never_requires_confirmation():
    assert default_policy.policy_for("launch_rocket") == NEVER
    assert default_policy.requires_confirmation("launch_rocket") is False


def test_always_requires_confirmation_without_result():
    assert default_policy.requires_confirmation("create_bank_account") is True


def test_conditional_depends_on_created():
    assert default_policy.requires_confirmation("get_or_create_contact", _contact_outcome(True)) is True
    assert default_policy.requires_confirmation("get_or_create_contact", _contact_outcome(False)) is False
    assert default_policy.requires_confirmation("get_or_create_contact") is False


def test_conditional_ignores_failed_results():
    failed = ToolOutcome(success=False, error="boom")
    assert default_policy.requires_confirmation("create_category", failed) is False


def test_created_flag_on_bank_account_creation():
    outcome = ToolOutcome(
        success=True,
        data=BankAccountCreation(account=BankAccountSummary(bank_name="Kuda", currency="NGN"), created=True),
    )
    assert outcome.created is True


def test_policy_is_immutable():
    policy = ConfirmationPolicy({"get_category": ALWAYS})

    with pytest.raises(TypeError):
        policy.policies["get_category"] = NEVER
    assert policy.requires_confirmation("get_category") is True


def test_policy_rejects_unknown_values():
    with pytest.raises(ValueError):
        ConfirmationPolicy({"get_category": "sometimes"})


def test_question_templates():
    question = default_policy.question_for(
        ToolInvocation(name="create_bank_account", args={"bank_name": "Kuda", "account_number": "123"}, id="c1")
    )

    assert question.tool_name == "create_bank_account"
    assert question.tool_call_id == "c1"
    assert '"Kuda" (123)' in question.question


def test_fallback_question():
    policy = ConfirmationPolicy({"delete_everything": ALWAYS})
    question = policy.question_for(ToolInvocation(name="delete_everything"))

    assert question.question == "I'd like to perform this action: delete_everything. Is that okay?"


def test_confirmation_message_pluralizes():
    assert "quick approval" in confirmation_message(1)
    assert confirmation_message(3).startswith("I found 3 new items")
