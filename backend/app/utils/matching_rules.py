"""
Deterministic matching rules shared by the entity resolver and the agent tools.
"""
from typing import List, Optional, Tuple
import re

from app.schemas.tools import TypeValidation


HONORIFIC_PREFIXES = ["dr", "mr", "mrs", "ms", "prof"]

LEGAL_SUFFIXES = ["ltd", "limited", "inc", "corp", "llc", "plc"]

# Checked in order, first hit wins
CONTACT_TYPE_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("bank", [
        "bank", "banking", "gtbank", "access bank", "zenith", "first bank",
        "uba", "union bank", "fidelity", "stanbic", "fcmb", "wema",
        "sterling", "ecobank", "polaris", "heritage", "keystone",
        "providus", "jaiz", "suntrust", "citibank", "standard chartered",
        "opay", "palmpay", "kuda", "moniepoint",
    ]),
    ("wallet", [
        "paga", "chipper", "carbon", "fairmoney", "renmoney", "branch",
        "vbank", "payday", "alat", "rubies", "sparkle",
    ]),
    ("platform", [
        "paystack", "flutterwave", "stripe", "remita", "interswitch",
        "quickteller", "nibss", "gtpay", "voguepay", "rave",
        "monnify", "squad", "checkout", "amplify pay",
    ]),
    ("merchant", [
        "purchase", "payment", "store", "shop", "mart", "supermarket",
        "restaurant", "cafe", "hotel", "pharmacy", "boutique",
        "bookstore", "mall", "market", "pos", "retail", "vendor",
        "amazon", "jumia", "konga", "jiji", "aliexpress", "ebay",
        "uber", "bolt", "netflix", "spotify", "dstv", "startimes",
        "airtel", "mtn", "glo", "9mobile",
    ]),
]

DEFAULT_CONTACT_TYPE = "person"

CATEGORY_COLORS = [
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#FFA07A", "#98D8C8",
    "#F7DC6F", "#BB8FCE", "#85C1E2", "#F8B739", "#52B788",
]

CATEGORY_ICONS = ["cart", "utensils", "car", "home", "briefcase", "heart", "gift", "plane", "coffee", "book"]


def normalize_name(name: str) -> str:
    """Lowercase, trimmed, single-spaced form used for exact comparisons."""
    if not name:
        return ""
    return " ".join(name.lower().split())


def strip_honorific(normalized: str) -> Optional[str]:
    for prefix in HONORIFIC_PREFIXES:
        if normalized.startswith(prefix + " ") or normalized.startswith(prefix + "."):
            stripped = re.sub(rf"^{prefix}\.?\s*", "", normalized).strip()
            return stripped or None
    return None


def strip_legal_suffix(normalized: str) -> Optional[str]:
    for suffix in LEGAL_SUFFIXES:
        if normalized.endswith(" " + suffix) or normalized.endswith(" " + suffix + "."):
            stripped = re.sub(rf",?\s+{suffix}\.?$", "", normalized).strip()
            return stripped or None
    return None


def generate_name_variations(name: str) -> List[str]:
    """
    Aliases stored with a new contact or category so later lookups can match
    on initials, honorific-free and suffix-free forms, or a single token.
    """
    normalized = normalize_name(name)
    if not normalized:
        return []

    variations = [normalized]
    words = normalized.split(" ")

    if len(words) > 1:
        variations.append("".join(words))
        variations.append("".join(word[0] for word in words))
        variations.append(words[0][0] + " " + " ".join(words[1:]))
        variations.extend(words)

    without_prefix = strip_honorific(normalized)
    if without_prefix:
        variations.append(without_prefix)

    without_suffix = strip_legal_suffix(normalized)
    if without_suffix:
        variations.append(without_suffix)

    # Preserve first-seen order, drop duplicates
    seen = set()
    unique = []
    for variation in variations:
        if variation and variation not in seen:
            seen.add(variation)
            unique.append(variation)
    return unique


def containment_score(query: str, candidate: str) -> float:
    """
    Length ratio of two names when one contains the other, else 0.
    Both arguments are expected in normalized form.
    """
    if not query or not candidate:
        return 0.0
    if query in candidate or candidate in query:
        return min(len(query), len(candidate)) / max(len(query), len(candidate))
    return 0.0


def determine_contact_type(*texts: Optional[str]) -> str:
    search_text = " ".join(t for t in texts if t).lower()
    for contact_type, keywords in CONTACT_TYPE_KEYWORDS:
        if any(keyword in search_text for keyword in keywords):
            return contact_type
    return DEFAULT_CONTACT_TYPE


def category_style(name: str) -> Tuple[str, str]:
    """Deterministic (icon, color) pair for a new category."""
    digest = 0
    for char in name:
        digest = (digest * 31 + ord(char)) & 0xFFFFFFFF
    return CATEGORY_ICONS[(digest >> 8) % len(CATEGORY_ICONS)], CATEGORY_COLORS[digest % len(CATEGORY_COLORS)]


def check_transaction_type(
    proposed_type: str,
    amount: float,
    description: Optional[str] = None,
    transaction_direction: Optional[str] = None,
    is_self_transaction: bool = False,
) -> TypeValidation:
    """
    Check a proposed transaction type against direction, self-transfer flag
    and description keywords.
    """
    proposed = proposed_type.upper()
    warnings: List[str] = []
    is_valid = True
    suggested = proposed
    confidence = 1.0
    reasoning = ""

    if is_self_transaction:
        if proposed != "TRANSFER":
            is_valid = False
            suggested = "TRANSFER"
            confidence = 0.95
            reasoning = "Self-transactions (between your own accounts) should be classified as 'transfer'."
        else:
            reasoning = "Correct: Self-transactions are properly classified as transfers."
    elif transaction_direction == "inbound":
        if proposed == "EXPENSE":
            is_valid = False
            suggested = "INCOME"
            confidence = 0.9
            reasoning = "Inbound transactions (money received) should typically be 'income' or 'refund', not 'expense'."
        elif proposed == "REFUND":
            reasoning = "Valid: Refunds are inbound transactions representing money returned to you."
        elif proposed == "INCOME":
            reasoning = "Valid: Income represents money received."
    elif transaction_direction == "outbound":
        if proposed == "INCOME":
            is_valid = False
            suggested = "EXPENSE"
            confidence = 0.9
            reasoning = "Outbound transactions (money sent) should typically be 'expense' or 'transfer', not 'income'."
        elif proposed == "EXPENSE":
            reasoning = "Valid: Expense represents money spent."
        elif proposed == "TRANSFER":
            warnings.append(
                "Transfer typically implies moving between own accounts. "
                "Verify this is not a payment to another person/merchant."
            )
            reasoning = "Possibly valid: Transfers are outbound but usually between your own accounts."
            confidence = 0.8

    if description:
        lowered = description.lower()
        hints = [
            ("REFUND", ("refund", "reversal", "returned")),
            ("FEE", ("fee", "charge", "commission")),
            ("ADJUSTMENT", ("adjustment", "correction")),
        ]
        for hinted_type, keywords in hints:
            if proposed != hinted_type and any(k in lowered for k in keywords):
                warnings.append(
                    f"Description suggests this might be a {hinted_type.lower()}. "
                    f"Consider using '{hinted_type.lower()}' type."
                )
                confidence = min(confidence, 0.7)

    if amount < 0:
        warnings.append("Negative amount detected. Ensure the transaction type and direction are correctly set.")
        confidence = min(confidence, 0.6)

    if not reasoning:
        reasoning = "The proposed transaction type appears reasonable given the context."

    return TypeValidation(
        proposed_type=proposed,
        is_valid=is_valid,
        suggested_type=suggested,
        confidence=confidence,
        reasoning=reasoning,
        warnings=warnings,
    )
