"""Quantity arithmetic and adjustment-record construction for the ledger.

Both functions are pure: no storage, no clock, no logging.
"""

import uuid
from datetime import datetime
from typing import Optional

from core.config import settings
from core.errors import InvalidAdjustment, InvalidReason, NegativeResult
from schemas.inventory import AdjustmentRecord


def compute_new_quantity(current, delta):
    """Return ``current + delta``; zero deltas and negative results are refused."""
    if delta == 0:
        raise InvalidAdjustment()
    new_quantity = current + delta
    if new_quantity < 0:
        raise NegativeResult(current, delta)
    return new_quantity


def validate_reason(reason, max_length: Optional[int] = None) -> str:
    if max_length is None:
        max_length = settings.reason_max_length
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidReason("Reason is required")
    reason = reason.strip()
    if len(reason) > max_length:
        raise InvalidReason(f"Reason must be at most {max_length} characters")
    return reason


def build_adjustment_record(
    item_id: uuid.UUID,
    previous_quantity,
    new_quantity,
    delta,
    reason: str,
    owner_id: uuid.UUID,
    now: datetime,
    *,
    idempotency_key: Optional[str] = None,
    max_reason_length: Optional[int] = None,
) -> AdjustmentRecord:
    return AdjustmentRecord(
        id=uuid.uuid4(),
        item_id=item_id,
        owner_id=owner_id,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        delta=delta,
        reason=validate_reason(reason, max_reason_length),
        timestamp=now,
        idempotency_key=idempotency_key,
    )
