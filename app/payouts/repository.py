# app/payouts/repository.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Optional
from uuid import UUID

from psycopg2.extras import RealDictCursor, execute_values

from app.payments.model import Payment
from app.payouts.model import Payout, PayoutClaim, PayoutItem
from app.payouts.store import ClaimConflict
from app.schedules.model import Schedule
from db import get_conn

SCHEDULE_COLUMNS = (
    "id, business_id, processor_id, processor_type, created_at, is_active, frequency, "
    "weekly_day_of_week, monthly_day_of_month, min_payout_threshold_cents, max_hold_period_days, "
    "is_manually_held, hold_reason, hold_started_at, current_balance_cents, last_payout_at, "
    "next_payout_date, gmv_month, current_month_gmv_cents, volume_discount_eligible, "
    "notifications_enabled, notification_email, updated_at"
)

PAYOUT_COLUMNS = (
    "id, schedule_id, business_id, processor_id, processor_type, frequency, period_start, period_end, "
    "gross_amount_cents, processor_fee_cents, subscription_fee_cents, volume_discount_cents, "
    "net_amount_cents, status, created_at, retry_count, next_retry_date, external_reference, "
    "last_error, completed_at, failed_at, updated_at"
)


def _schedule_from_row(row: dict[str, Any]) -> Schedule:
    return Schedule(**dict(row))


def _payment_from_row(row: dict[str, Any]) -> Payment:
    return Payment(**dict(row))


def _payout_from_row(row: dict[str, Any], items: list[PayoutItem]) -> Payout:
    return Payout(items=tuple(items), **dict(row))


def _load_items(cur, payout_ids: list[UUID]) -> dict[UUID, list[PayoutItem]]:
    if not payout_ids:
        return {}
    cur.execute(
        """
        SELECT payout_id, payment_id, amount_cents, processor_fee_cents, net_contribution_cents
        FROM app.payout_items
        WHERE payout_id = ANY(%s::uuid[])
        ORDER BY payout_id, position
        """,
        ([str(i) for i in payout_ids],),
    )
    out: dict[UUID, list[PayoutItem]] = {}
    for row in cur.fetchall():
        out.setdefault(row["payout_id"], []).append(
            PayoutItem(
                payment_id=row["payment_id"],
                amount_cents=int(row["amount_cents"]),
                processor_fee_cents=int(row["processor_fee_cents"]),
                net_contribution_cents=int(row["net_contribution_cents"]),
            )
        )
    return out


def _payouts_with_items(cur, rows: list[dict[str, Any]]) -> list[Payout]:
    items = _load_items(cur, [r["id"] for r in rows])
    return [_payout_from_row(r, items.get(r["id"], [])) for r in rows]


class PostgresPayoutStore:
    """
    PayoutStore backed by the app schema.

    Each public method runs in its own transaction via get_conn(); the
    multi-row invariants (claim, completion) are single transactions.
    """

    def __init__(self, conn_factory: Callable = get_conn):
        self._conn = conn_factory

    # ==========================================================
    # Schedules
    # ==========================================================

    def get_schedule(self, business_id: UUID, processor_id: UUID) -> Optional[Schedule]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {SCHEDULE_COLUMNS}
                    FROM app.payout_schedules
                    WHERE business_id = %s AND processor_id = %s
                    """,
                    (business_id, processor_id),
                )
                row = cur.fetchone()
                return _schedule_from_row(row) if row else None

    def get_schedule_by_id(self, schedule_id: UUID) -> Optional[Schedule]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"SELECT {SCHEDULE_COLUMNS} FROM app.payout_schedules WHERE id = %s",
                    (schedule_id,),
                )
                row = cur.fetchone()
                return _schedule_from_row(row) if row else None

    def create_schedule(self, schedule: Schedule) -> Schedule:
        # Concurrent first payments race here; the unique key picks one winner.
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    INSERT INTO app.payout_schedules (
                      id, business_id, processor_id, processor_type, is_active, frequency,
                      weekly_day_of_week, monthly_day_of_month, min_payout_threshold_cents,
                      max_hold_period_days, next_payout_date, notifications_enabled,
                      notification_email, created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, now())
                    ON CONFLICT (business_id, processor_id) DO NOTHING
                    """,
                    (
                        schedule.id,
                        schedule.business_id,
                        schedule.processor_id,
                        schedule.processor_type,
                        schedule.is_active,
                        schedule.frequency,
                        schedule.weekly_day_of_week,
                        schedule.monthly_day_of_month,
                        schedule.min_payout_threshold_cents,
                        schedule.max_hold_period_days,
                        schedule.next_payout_date,
                        schedule.notifications_enabled,
                        schedule.notification_email,
                        schedule.created_at,
                    ),
                )
                cur.execute(
                    f"""
                    SELECT {SCHEDULE_COLUMNS}
                    FROM app.payout_schedules
                    WHERE business_id = %s AND processor_id = %s
                    """,
                    (schedule.business_id, schedule.processor_id),
                )
                return _schedule_from_row(cur.fetchone())

    def save_schedule_config(
        self, schedule: Schedule, *, next_payout_date: Optional[date] = None
    ) -> Schedule:
        # NULL keeps the stored date so a concurrent claim's date is never rolled back.
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    UPDATE app.payout_schedules
                    SET
                      is_active = %s,
                      frequency = %s,
                      weekly_day_of_week = %s,
                      monthly_day_of_month = %s,
                      min_payout_threshold_cents = %s,
                      max_hold_period_days = %s,
                      is_manually_held = %s,
                      hold_reason = %s,
                      hold_started_at = %s,
                      next_payout_date = COALESCE(%s, next_payout_date),
                      notifications_enabled = %s,
                      notification_email = %s,
                      updated_at = now()
                    WHERE id = %s
                    RETURNING {SCHEDULE_COLUMNS}
                    """,
                    (
                        schedule.is_active,
                        schedule.frequency,
                        schedule.weekly_day_of_week,
                        schedule.monthly_day_of_month,
                        schedule.min_payout_threshold_cents,
                        schedule.max_hold_period_days,
                        schedule.is_manually_held,
                        schedule.hold_reason,
                        schedule.hold_started_at,
                        next_payout_date,
                        schedule.notifications_enabled,
                        schedule.notification_email,
                        schedule.id,
                    ),
                )
                return _schedule_from_row(cur.fetchone())

    def increment_balance(self, schedule_id: UUID, amount_cents: int) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.payout_schedules
                    SET current_balance_cents = current_balance_cents + %s,
                        updated_at = now()
                    WHERE id = %s
                    """,
                    (int(amount_cents), schedule_id),
                )

    def list_due_schedules(self, as_of: date) -> list[Schedule]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {SCHEDULE_COLUMNS}
                    FROM app.payout_schedules
                    WHERE is_active = TRUE
                      AND is_manually_held = FALSE
                      AND next_payout_date <= %s
                    ORDER BY next_payout_date ASC
                    """,
                    (as_of,),
                )
                return [_schedule_from_row(r) for r in cur.fetchall()]

    # ==========================================================
    # Payments
    # ==========================================================

    def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, business_id, payment_processor_id AS processor_id, processor_type,
                           status, amount_cents, processor_fee_cents, net_amount_cents,
                           created_at, settlement_details
                    FROM app.payments
                    WHERE id = %s
                    """,
                    (payment_id,),
                )
                row = cur.fetchone()
                return _payment_from_row(row) if row else None

    def list_unsettled_payments(
        self,
        business_id: UUID,
        processor_id: UUID,
        *,
        after: Optional[datetime],
        until: datetime,
    ) -> list[Payment]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, business_id, payment_processor_id AS processor_id, processor_type,
                           status, amount_cents, processor_fee_cents, net_amount_cents,
                           created_at, settlement_details
                    FROM app.payments
                    WHERE business_id = %s
                      AND payment_processor_id = %s
                      AND status = 'succeeded'
                      AND settlement_details IS NULL
                      AND (%s::timestamptz IS NULL OR created_at > %s::timestamptz)
                      AND created_at <= %s
                    ORDER BY created_at ASC
                    """,
                    (business_id, processor_id, after, after, until),
                )
                return [_payment_from_row(r) for r in cur.fetchall()]

    def get_subscription_tier(self, business_id: UUID) -> str:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT tier
                    FROM app.subscriptions
                    WHERE business_id = %s AND status = 'active'
                    ORDER BY created_at DESC
                    LIMIT 1
                    """,
                    (business_id,),
                )
                row = cur.fetchone()
                return row[0] if row else "free"

    # ==========================================================
    # Payouts
    # ==========================================================

    def claim_payout(self, claim: PayoutClaim) -> Payout:
        payout = claim.payout
        payment_ids = [str(i) for i in payout.payment_ids]

        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                # Row lock + optimistic guard serialize generator runs per schedule.
                cur.execute(
                    """
                    SELECT id
                    FROM app.payout_schedules
                    WHERE id = %s
                      AND last_payout_at IS NOT DISTINCT FROM %s
                    FOR UPDATE
                    """,
                    (payout.schedule_id, claim.expected_last_payout_at),
                )
                if cur.fetchone() is None:
                    raise ClaimConflict(f"schedule {payout.schedule_id} was paid out concurrently")

                cur.execute(
                    """
                    UPDATE app.payments
                    SET settlement_details = jsonb_build_object('payout_id', %s::text, 'status', 'pending')
                    WHERE id = ANY(%s::uuid[])
                      AND settlement_details IS NULL
                    """,
                    (str(payout.id), payment_ids),
                )
                if cur.rowcount != len(payment_ids):
                    raise ClaimConflict(f"payout {payout.id}: some payments were already claimed")

                cur.execute(
                    f"""
                    INSERT INTO app.payouts (
                      id, schedule_id, business_id, processor_id, processor_type, frequency,
                      period_start, period_end, gross_amount_cents, processor_fee_cents,
                      subscription_fee_cents, volume_discount_cents, net_amount_cents,
                      status, payment_count, retry_count, created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 0, %s, now())
                    RETURNING {PAYOUT_COLUMNS}
                    """,
                    (
                        payout.id,
                        payout.schedule_id,
                        payout.business_id,
                        payout.processor_id,
                        payout.processor_type,
                        payout.frequency,
                        payout.period_start,
                        payout.period_end,
                        payout.gross_amount_cents,
                        payout.processor_fee_cents,
                        payout.subscription_fee_cents,
                        payout.volume_discount_cents,
                        payout.net_amount_cents,
                        payout.status,
                        payout.payment_count,
                        payout.created_at,
                    ),
                )
                row = cur.fetchone()

                execute_values(
                    cur,
                    """
                    INSERT INTO app.payout_items (
                      payout_id, position, payment_id, amount_cents,
                      processor_fee_cents, net_contribution_cents
                    )
                    VALUES %s
                    """,
                    [
                        (
                            payout.id,
                            pos,
                            item.payment_id,
                            item.amount_cents,
                            item.processor_fee_cents,
                            item.net_contribution_cents,
                        )
                        for pos, item in enumerate(payout.items)
                    ],
                )

                cur.execute(
                    """
                    UPDATE app.payout_schedules
                    SET
                      current_balance_cents = 0,
                      last_payout_at = %s,
                      next_payout_date = %s,
                      gmv_month = %s,
                      current_month_gmv_cents = %s,
                      volume_discount_eligible = %s,
                      updated_at = now()
                    WHERE id = %s
                    """,
                    (
                        claim.last_payout_at,
                        claim.next_payout_date,
                        claim.gmv_month,
                        claim.current_month_gmv_cents,
                        claim.volume_discount_eligible,
                        payout.schedule_id,
                    ),
                )

                return _payout_from_row(row, list(payout.items))

    def claim_executable_payouts(self, now: datetime, *, limit: int) -> list[Payout]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    WITH picked AS (
                      SELECT p.id
                      FROM app.payouts p
                      WHERE p.status = 'pending'
                        AND (p.next_retry_date IS NULL OR p.next_retry_date <= %s)
                      ORDER BY p.created_at
                      LIMIT %s
                      FOR UPDATE SKIP LOCKED
                    )
                    UPDATE app.payouts p
                    SET status = 'processing', updated_at = now()
                    FROM picked
                    WHERE p.id = picked.id
                    RETURNING {", ".join("p." + c.strip() for c in PAYOUT_COLUMNS.split(","))}
                    """,
                    (now, limit),
                )
                rows = list(cur.fetchall())
                return _payouts_with_items(cur, rows)

    def update_payout_status(
        self,
        payout_id: UUID,
        *,
        from_status: str,
        new_status: str,
        retry_count: Optional[int] = None,
        next_retry_date: Optional[datetime] = None,
        last_error: Optional[str] = None,
        failed_at: Optional[datetime] = None,
    ) -> bool:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.payouts
                    SET
                      status = %s,
                      retry_count = COALESCE(%s, retry_count),
                      next_retry_date = %s,
                      last_error = %s,
                      failed_at = COALESCE(%s, failed_at),
                      updated_at = now()
                    WHERE id = %s
                      AND status = %s
                    """,
                    (
                        new_status,
                        retry_count,
                        next_retry_date,
                        last_error,
                        failed_at,
                        payout_id,
                        from_status,
                    ),
                )
                return cur.rowcount == 1

    def complete_payout(
        self,
        payout_id: UUID,
        *,
        external_reference: str,
        completed_at: datetime,
    ) -> bool:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.payouts
                    SET
                      status = 'completed',
                      external_reference = %s,
                      completed_at = %s,
                      next_retry_date = NULL,
                      last_error = NULL,
                      updated_at = now()
                    WHERE id = %s
                      AND status = 'processing'
                    """,
                    (external_reference, completed_at, payout_id),
                )
                if cur.rowcount != 1:
                    return False

                cur.execute(
                    """
                    UPDATE app.payments
                    SET settlement_details = jsonb_build_object(
                      'payout_id', %s::text,
                      'status', 'settled',
                      'settled_at', %s::text
                    )
                    WHERE id IN (SELECT payment_id FROM app.payout_items WHERE payout_id = %s)
                      AND settlement_details->>'payout_id' = %s::text
                    """,
                    (str(payout_id), completed_at.isoformat(), payout_id, str(payout_id)),
                )
                return True

    def get_payout(self, payout_id: UUID) -> Optional[Payout]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"SELECT {PAYOUT_COLUMNS} FROM app.payouts WHERE id = %s", (payout_id,))
                row = cur.fetchone()
                if not row:
                    return None
                return _payouts_with_items(cur, [row])[0]

    def list_payouts(
        self,
        business_id: UUID,
        *,
        processor_id: Optional[UUID] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payout], int]:
        where = ["business_id = %s"]
        params: list[Any] = [business_id]
        if processor_id:
            where.append("processor_id = %s")
            params.append(processor_id)
        if status:
            where.append("status = %s")
            params.append(status)
        if start:
            where.append("created_at >= %s")
            params.append(start)
        if end:
            where.append("created_at <= %s")
            params.append(end)
        where_sql = " AND ".join(where)

        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"SELECT COUNT(*) AS n FROM app.payouts WHERE {where_sql}", tuple(params))
                total = int(cur.fetchone()["n"])
                cur.execute(
                    f"""
                    SELECT {PAYOUT_COLUMNS}
                    FROM app.payouts
                    WHERE {where_sql}
                    ORDER BY created_at DESC
                    LIMIT %s OFFSET %s
                    """,
                    tuple(params) + (limit, offset),
                )
                rows = list(cur.fetchall())
                return _payouts_with_items(cur, rows), total

    def list_stale_processing(self, older_than: datetime) -> list[Payout]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {PAYOUT_COLUMNS}
                    FROM app.payouts
                    WHERE status = 'processing'
                      AND updated_at <= %s
                    ORDER BY updated_at ASC
                    """,
                    (older_than,),
                )
                return _payouts_with_items(cur, list(cur.fetchall()))

    def list_unsettled_completed(self) -> list[tuple[Payout, list[UUID]]]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT i.payout_id, array_agg(i.payment_id) AS missing
                    FROM app.payouts p
                    JOIN app.payout_items i ON i.payout_id = p.id
                    LEFT JOIN app.payments pay ON pay.id = i.payment_id
                    WHERE p.status = 'completed'
                      AND (pay.settlement_details->>'status') IS DISTINCT FROM 'settled'
                    GROUP BY i.payout_id
                    """
                )
                missing = {r["payout_id"]: list(r["missing"]) for r in cur.fetchall()}
                if not missing:
                    return []
                cur.execute(
                    f"SELECT {PAYOUT_COLUMNS} FROM app.payouts WHERE id = ANY(%s::uuid[])",
                    ([str(i) for i in missing],),
                )
                payouts = _payouts_with_items(cur, list(cur.fetchall()))
                return [(p, missing[p.id]) for p in payouts]
