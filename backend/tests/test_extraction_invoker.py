import pytest

from app.agents.orchestrator import ExtractionInvoker, UserContext
from app.errors import ExtractionError
from app.models.bank_account import BankAccount
from app.models.category import Category
from app.models.contact import Contact
from app.schemas.extraction import EnrichmentData
from app.services.entity_resolver import EntityResolver, CONTACT, CATEGORY

from conftest import batch_of, call, complete_draft, incomplete_draft


@pytest.fixture
def context(user):
    return UserContext(user_id=user.id, default_currency="NGN")


@pytest.mark.asyncio
async def test_no_tool_calls_is_fatal(db, user, invoker, context):
    invoker.queue_tool_calls()

    with pytest.raises(ExtractionError) as exc:
        await ExtractionInvoker(db, user.id, invoker).invoke("some receipt", context)

    assert exc.value.status_code == 500
    assert invoker.structured_call_count == 0


@pytest.mark.asyncio
async def test_auto_tools_then_structured_records(db, user, invoker, context, bank_account):
    invoker.queue_tool_calls(call("get_bank_accounts"), call("get_category", transaction_description="groceries"))
    invoker.queue_structured(batch_of(complete_draft(1, sender_bank="GTBank"), incomplete_draft(0), notes="two lines"))

    result = await ExtractionInvoker(db, user.id, invoker).invoke("statement", context)

    assert result.needs_confirmation is False
    assert set(result.auto_results) == {"get_bank_accounts", "get_category"}
    assert [r.record_index for r in result.records] == [0, 1]
    assert result.records[0].is_complete is False
    assert result.records[1].is_complete is True
    assert result.notes == "two lines"
    # Outbound record sent from GTBank resolves to the user's GTBank account
    assert result.records[1].enrichment.user_bank_account_id == bank_account.id
    assert result.records[1].enrichment.is_self_transaction is False


@pytest.mark.asyncio
async def test_enrichment_uses_typed_tool_results(db, user, invoker, context):
    contact = EntityResolver(db).resolve("Merchant 0", CONTACT, user.id).entity
    category = EntityResolver(db).resolve("Groceries", CATEGORY, user.id).entity
    db.commit()

    invoker.queue_tool_calls(
        call("get_or_create_contact", contact_name="Merchant 0"),
        call("create_category", category_name="Groceries"),
    )
    invoker.queue_structured(batch_of(complete_draft(0, category="Groceries")))

    result = await ExtractionInvoker(db, user.id, invoker).invoke("receipt", context)

    enrichment = result.records[0].enrichment
    assert enrichment.contact_id == contact.id
    assert enrichment.category_id == category.id


@pytest.mark.asyncio
async def test_model_claimed_ids_are_dropped_when_unknown(db, user, invoker, context):
    draft = complete_draft(0)
    draft.enrichment = EnrichmentData(contact_id="made-up")
    invoker.queue_tool_calls(call("get_bank_accounts"))
    invoker.queue_structured(batch_of(draft))

    result = await ExtractionInvoker(db, user.id, invoker).invoke("receipt", context)

    assert result.records[0].enrichment.contact_id is None


@pytest.mark.asyncio
async def test_always_tool_short_circuits(db, user, invoker, context):
    invoker.queue_tool_calls(
        call("create_bank_account", account_name="Ada", bank_name="Kuda", account_number="555"),
        call("get_bank_accounts"),
    )

    result = await ExtractionInvoker(db, user.id, invoker).invoke("receipt", context)
    db.commit()

    assert result.needs_confirmation is True
    assert [c.name for c in result.pending_confirmations] == ["create_bank_account"]
    assert len(result.questions) == 1
    assert result.questions[0].tool_name == "create_bank_account"
    assert result.records == []
    assert "get_bank_accounts" in result.auto_results
    assert invoker.structured_call_count == 0
    assert db.query(BankAccount).count() == 0


@pytest.mark.asyncio
async def test_conditional_tool_pauses_only_for_new_entities(db, user, invoker, context):
    EntityResolver(db).resolve("John Doe", CONTACT, user.id)
    db.commit()

    invoker.queue_tool_calls(
        call("get_or_create_contact", "c1", contact_name="John Doe"),
        call("create_category", "c2", category_name="Brand New Category"),
    )

    result = await ExtractionInvoker(db, user.id, invoker).invoke("receipt", context)
    db.commit()

    assert [c.name for c in result.pending_confirmations] == ["create_category"]
    assert "get_or_create_contact" in result.auto_results
    assert db.query(Category).count() == 0
    assert db.query(Contact).count() == 1


@pytest.mark.asyncio
async def test_converse_reuses_cached_record_without_new_results(db, user, invoker):
    cached = complete_draft(0).to_record()
    invoker.queue_tool_calls()

    result = await ExtractionInvoker(db, user.id, invoker).converse(
        [("human", "yes")], {}, record_index=0, cached_record=cached
    )

    assert result.reused_cached_record is True
    assert result.records[0].transaction == cached.transaction
    assert invoker.structured_call_count == 0


@pytest.mark.asyncio
async def test_converse_without_cache_extracts_one_record(db, user, invoker):
    invoker.queue_tool_calls()
    invoker.queue_structured(complete_draft(0))

    result = await ExtractionInvoker(db, user.id, invoker).converse([("human", "it was 2500")], {}, record_index=3)

    assert result.reused_cached_record is False
    assert result.records[0].record_index == 3
    assert result.records[0].is_complete
