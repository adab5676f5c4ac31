import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_transaction_reference(now: Optional[datetime] = None) -> str:
    """TXN-YYYYMMDD-XXXXXXXX"""
    now = now or datetime.now(timezone.utc)
    return f"TXN-{now.strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"


def ensure_transaction_reference(reference: Optional[str]) -> str:
    if not reference or not reference.strip() or reference.strip().lower() == "missing":
        return generate_transaction_reference()
    return reference.strip()
