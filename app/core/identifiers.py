"""Prefixed identifiers for cycle count records (CCP-, CCE-, TXN-, ...)."""
from uuid import uuid4


PLAN_PREFIX = "CCP"
ENTRY_PREFIX = "CCE"
TRANSACTION_PREFIX = "TXN"
INVENTORY_UNIT_PREFIX = "INV"
SCHEDULE_PREFIX = "RCS"
TOLERANCE_PREFIX = "TOL"


def generate_id(prefix: str) -> str:
    """Return e.g. ``CCP-3F9A0C1B2D``."""
    return f"{prefix}-{uuid4().hex[:10].upper()}"
