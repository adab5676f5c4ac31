from app.utils.matching_rules import (
    check_transaction_type,
    containment_score,
    determine_contact_type,
    generate_name_variations,
    normalize_name,
)


def test_normalize_name():
    assert normalize_name("  John   DOE ") == "john doe"
    assert normalize_name("") == ""


def test_name_variations():
    variations = generate_name_variations("Mr John Doe")

    assert variations[0] == "mr john doe"
    assert "john doe" in variations
    assert "mjd" in variations
    assert len(variations) == len(set(variations))


def test_legal_suffix_variation():
    assert "acme" in generate_name_variations("Acme Ltd")


def test_containment_score():
    assert containment_score("abc", "abcdef") == 0.5
    assert containment_score("abc", "xyz") == 0.0
    assert containment_score("", "abc") == 0.0


def test_contact_type_order():
    assert determine_contact_type("Opay Transfer") == "bank"
    assert determine_contact_type("Paystack") == "platform"
    assert determine_contact_type("Tunde") == "person"


def test_self_transaction_must_be_transfer():
    result = check_transaction_type("expense", 100.0, is_self_transaction=True)

    assert result.is_valid is False
    assert result.suggested_type == "TRANSFER"


def test_inbound_expense_suggests_income():
    result = check_transaction_type("EXPENSE", 100.0, transaction_direction="inbound")

    assert result.is_valid is False
    assert result.suggested_type == "INCOME"


def test_outbound_transfer_warns():
    result = check_transaction_type("TRANSFER", 100.0, transaction_direction="outbound")

    assert result.is_valid is True
    assert result.confidence == 0.8
    assert result.warnings


def test_description_and_negative_amount_lower_confidence():
    result = check_transaction_type("EXPENSE", -50.0, description="Card maintenance fee", transaction_direction="outbound")

    assert result.is_valid is True
    assert result.confidence == 0.6
    assert len(result.warnings) == 2
