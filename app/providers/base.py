# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Literal
from uuid import UUID

SettlementStatus = Literal["SUCCESS", "FAILURE", "UNKNOWN"]


@dataclass(frozen=True)
class Destination:
    business_id: UUID
    processor_id: UUID


@dataclass(frozen=True)
class SettlementResult:
    status: SettlementStatus
    reference: Optional[str] = None
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "SUCCESS"

    @property
    def unknown(self) -> bool:
        return self.status == "UNKNOWN"


class SettlementTimeout(Exception):
    """The transfer may or may not have happened."""


class SettlementProvider(Protocol):
    # idempotency key for transfer() is always the payout id
    def transfer(self, payout_id: UUID, net_amount_cents: int, destination: Destination) -> SettlementResult: ...
    def verify_credentials(self) -> bool: ...
