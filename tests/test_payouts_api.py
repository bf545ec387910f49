from __future__ import annotations

import uuid
from datetime import timedelta

from services.ledger_invariants import LedgerInvariantError
from tests.conftest import BUSINESS_ID, PROCESSOR_ID, T0, due_payout, make_payment


def test_get_payout(client, service, store):
    payout = due_payout(service, store, amount=12000, fee=300)

    r = client.get(f"/v1/payouts/{payout.id}")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["id"] == str(payout.id)
    assert body["status"] == "pending"
    assert body["net_amount_cents"] == 11700
    assert body["payment_count"] == 1
    assert body["items"][0]["net_contribution_cents"] == 11700


def test_get_payout_not_found(client):
    r = client.get(f"/v1/payouts/{uuid.uuid4()}")
    assert r.status_code == 404
    assert r.json()["detail"] == "PAYOUT_NOT_FOUND"


def test_list_payouts_with_filters(client, service, store, clock):
    due_payout(service, store, amount=5000, frequency="daily")
    service.process_pending_payouts()
    clock.advance(days=1)
    make_payment(store, amount=7000, created_at=clock() - timedelta(hours=1))
    service.generate_scheduled_payouts()

    r = client.get(f"/v1/businesses/{BUSINESS_ID}/payouts")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total"] == 2
    # newest first
    assert [p["gross_amount_cents"] for p in body["payouts"]] == [7000, 5000]

    r = client.get(f"/v1/businesses/{BUSINESS_ID}/payouts", params={"status": "completed"})
    assert [p["gross_amount_cents"] for p in r.json()["payouts"]] == [5000]

    r = client.get(
        f"/v1/businesses/{BUSINESS_ID}/payouts",
        params={"processor_id": str(PROCESSOR_ID), "limit": 1, "offset": 1},
    )
    body = r.json()
    assert body["total"] == 2
    assert [p["gross_amount_cents"] for p in body["payouts"]] == [5000]

    r = client.get(
        f"/v1/businesses/{BUSINESS_ID}/payouts",
        params={"start_date": (T0 + timedelta(hours=12)).isoformat()},
    )
    assert r.json()["total"] == 1


def test_list_payouts_rejects_bad_status(client):
    r = client.get(f"/v1/businesses/{BUSINESS_ID}/payouts", params={"status": "sent"})
    assert r.status_code == 422


def test_retry_endpoint(client, service, store, provider, clock):
    provider.default = "failure"
    payout = due_payout(service, store, amount=5000)
    for _ in range(3):
        service.process_pending_payouts()
        clock.advance(days=1)

    r = client.post(f"/v1/payouts/{payout.id}/retry")
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "pending"

    r = client.post(f"/v1/payouts/{payout.id}/retry")
    assert r.status_code == 409
    assert r.json()["detail"] == "ONLY_FAILED_PAYOUTS_CAN_BE_RETRIED"

    assert client.post(f"/v1/payouts/{uuid.uuid4()}/retry").status_code == 404


def test_resolve_endpoint(client, service, store, provider):
    provider.outcomes = ["timeout"]
    payout = due_payout(service, store, amount=5000)
    service.process_pending_payouts()

    r = client.post(f"/v1/payouts/{payout.id}/resolve", json={"succeeded": True, "reference": "bank-42"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert r.json()["external_reference"] == "bank-42"

    r = client.post(f"/v1/payouts/{payout.id}/resolve", json={"succeeded": True})
    assert r.status_code == 409
    assert r.json()["detail"] == "PAYOUT_NOT_PROCESSING"


def test_schedule_read_update_and_hold(client, service, store):
    s = service.on_payment_succeeded(make_payment(store, amount=900, fee=25, created_at=T0))

    r = client.get(f"/v1/schedules/{s.id}")
    assert r.status_code == 200, r.text
    assert r.json()["current_balance_cents"] == 875
    assert r.json()["frequency"] == "weekly"

    r = client.patch(f"/v1/schedules/{s.id}", json={"frequency": "daily", "min_payout_threshold_cents": 0})
    assert r.status_code == 200, r.text
    assert r.json()["frequency"] == "daily"
    assert r.json()["next_payout_date"] == "2026-10-20"
    assert r.json()["current_balance_cents"] == 875

    r = client.post(f"/v1/schedules/{s.id}/hold", json={"hold": True, "reason": "chargeback spike"})
    assert r.status_code == 200
    assert r.json()["is_manually_held"] is True
    assert r.json()["hold_reason"] == "chargeback spike"


def test_schedule_update_validation(client, service, store):
    s = service.on_payment_succeeded(make_payment(store, amount=900, created_at=T0))

    assert client.patch(f"/v1/schedules/{s.id}", json={"weekly_day_of_week": 9}).status_code == 422
    assert client.patch(f"/v1/schedules/{s.id}", json={"frequency": "yearly"}).status_code == 422
    r = client.patch(f"/v1/schedules/{uuid.uuid4()}", json={"frequency": "daily"})
    assert r.status_code == 404
    assert r.json()["detail"] == "SCHEDULE_NOT_FOUND"
    assert client.get(f"/v1/schedules/{uuid.uuid4()}").status_code == 404


def test_admin_reconcile_run(client, service, store, provider, clock):
    provider.outcomes = ["unknown"]
    payout = due_payout(service, store, amount=5000)
    service.process_pending_payouts()

    r = client.post("/v1/admin/reconcile/run", params={"stale_minutes": 0})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["summary"]["stale_processing"] == 1
    assert body["items"][0]["payout_id"] == str(payout.id)


def test_ledger_invariant_maps_to_500(client, service, monkeypatch):
    def boom(payout_id):
        raise LedgerInvariantError("net mismatch")

    monkeypatch.setattr(service, "get_payout", boom)
    r = client.get(f"/v1/payouts/{uuid.uuid4()}")
    assert r.status_code == 500
    assert r.json() == {"detail": "Internal server error"}


def test_health_and_metrics(client, service, store):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["unknown_outcome_policy"] in ("reconcile", "retry")

    due_payout(service, store, amount=5000)
    service.process_pending_payouts()

    r = client.get("/metrics")
    assert r.status_code == 200
    assert 'settlement_attempts_total{processor="MOCK",result="success"} 1' in r.text
    assert 'payouts_generated_total{processor="MOCK"} 1' in r.text


def test_request_id_is_echoed(client):
    r = client.get("/health", headers={"X-Request-Id": "req-123"})
    assert r.headers["X-Request-Id"] == "req-123"

    generated = client.get("/health").headers["X-Request-Id"]
    assert uuid.UUID(generated)
