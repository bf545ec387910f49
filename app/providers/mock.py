# app/providers/mock.py
from __future__ import annotations

from typing import Iterable, Optional
from uuid import UUID

from app.providers.base import Destination, SettlementResult, SettlementTimeout


class MockSettlementProvider:
    """
    Test/dev provider.

    `outcomes` is consumed one per transfer() call: "success", "failure",
    "unknown" (returned as UNKNOWN), "timeout" (raises SettlementTimeout) or
    "error" (raises RuntimeError). Once exhausted, `default` is used.
    """

    def __init__(
        self,
        *,
        outcomes: Optional[Iterable[str]] = None,
        default: str = "success",
        credentials_ok: bool = True,
    ):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.credentials_ok = credentials_ok
        self.calls: list[tuple[UUID, int, Destination]] = []

    def transfer(self, payout_id: UUID, net_amount_cents: int, destination: Destination) -> SettlementResult:
        self.calls.append((payout_id, net_amount_cents, destination))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default

        if outcome == "success":
            return SettlementResult(
                status="SUCCESS",
                reference=f"mock-{payout_id}",
                response={"http_status": 200, "mock": True},
            )
        if outcome == "failure":
            return SettlementResult(
                status="FAILURE",
                response={"http_status": 502, "mock": True},
                error="Bad gateway",
            )
        if outcome == "unknown":
            return SettlementResult(status="UNKNOWN", error="Provider did not confirm transfer")
        if outcome == "timeout":
            raise SettlementTimeout("Gateway timeout")
        raise RuntimeError("Provider exploded")

    def verify_credentials(self) -> bool:
        return self.credentials_ok
