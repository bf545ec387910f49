from __future__ import annotations

from typing import Any

from app.payouts.model import Payout


class LedgerInvariantError(AssertionError):
    """Payout amounts disagree with their items. Always a fee-calculation bug."""


def check_payout_balance(payout: Payout) -> dict[str, Any]:
    items_net = sum(i.net_contribution_cents for i in payout.items)
    items_gross = sum(i.amount_cents for i in payout.items)
    items_fee = sum(i.processor_fee_cents for i in payout.items)
    expected_net = (
        payout.gross_amount_cents
        - payout.processor_fee_cents
        - payout.subscription_fee_cents
        + payout.volume_discount_cents
    )

    ok = (
        items_net == payout.net_amount_cents
        and expected_net == payout.net_amount_cents
        and items_gross == payout.gross_amount_cents
        and items_fee == payout.processor_fee_cents
    )
    return {
        "payout_id": payout.id,
        "net_amount_cents": payout.net_amount_cents,
        "items_net_cents": items_net,
        "expected_net_cents": expected_net,
        "diff_cents": items_net - payout.net_amount_cents,
        "ok": ok,
    }


def assert_payout_balanced(payout: Payout) -> None:
    result = check_payout_balance(payout)
    if not result["ok"]:
        raise LedgerInvariantError(
            f"Ledger mismatch on payout {payout.id}: net={result['net_amount_cents']} "
            f"items={result['items_net_cents']} expected={result['expected_net_cents']}"
        )


def list_payout_balance_invariants(payouts: list[Payout]) -> list[dict[str, Any]]:
    return [check_payout_balance(p) for p in payouts]
