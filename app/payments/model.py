from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID


@dataclass(frozen=True)
class Payment:
    """Read-only view of a platform payment; only settlement_details is ours."""

    id: UUID
    business_id: UUID
    processor_id: UUID
    processor_type: str
    status: str
    amount_cents: int
    processor_fee_cents: int
    net_amount_cents: int
    created_at: datetime
    settlement_details: Optional[dict[str, Any]] = None
