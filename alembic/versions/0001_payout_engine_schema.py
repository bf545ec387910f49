"""payout engine schema

Revision ID: 0001_payout_engine_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_payout_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")

    # Platform-owned tables; created here only if the platform has not already.
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payments (
          id uuid PRIMARY KEY,
          business_id uuid NOT NULL,
          payment_processor_id uuid,
          processor_type varchar(40) NOT NULL DEFAULT '',
          status varchar(20) NOT NULL,
          amount_cents bigint NOT NULL,
          processor_fee_cents bigint NOT NULL DEFAULT 0,
          net_amount_cents bigint NOT NULL,
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute("ALTER TABLE app.payments ADD COLUMN IF NOT EXISTS settlement_details jsonb;")
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payments_unsettled
          ON app.payments (business_id, payment_processor_id, created_at)
          WHERE status = 'succeeded' AND settlement_details IS NULL;
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.subscriptions (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          business_id uuid NOT NULL,
          tier varchar(20) NOT NULL DEFAULT 'free',
          status varchar(20) NOT NULL DEFAULT 'active',
          created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payout_schedules (
          id uuid PRIMARY KEY,
          business_id uuid NOT NULL,
          processor_id uuid NOT NULL,
          processor_type varchar(40) NOT NULL,
          is_active boolean NOT NULL DEFAULT TRUE,
          frequency varchar(20) NOT NULL DEFAULT 'weekly'
            CHECK (frequency IN ('daily', 'weekly', 'monthly')),
          weekly_day_of_week integer NOT NULL DEFAULT 1
            CHECK (weekly_day_of_week BETWEEN 0 AND 6),
          monthly_day_of_month integer NOT NULL DEFAULT 1
            CHECK (monthly_day_of_month BETWEEN 1 AND 28),
          min_payout_threshold_cents bigint NOT NULL DEFAULT 50000,
          max_hold_period_days integer NOT NULL DEFAULT 7,
          is_manually_held boolean NOT NULL DEFAULT FALSE,
          hold_reason text,
          hold_started_at timestamptz,
          current_balance_cents bigint NOT NULL DEFAULT 0
            CHECK (current_balance_cents >= 0),
          last_payout_at timestamptz,
          next_payout_date date,
          gmv_month varchar(7),
          current_month_gmv_cents bigint NOT NULL DEFAULT 0,
          volume_discount_eligible boolean NOT NULL DEFAULT FALSE,
          notifications_enabled boolean NOT NULL DEFAULT TRUE,
          notification_email varchar(255),
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          UNIQUE (business_id, processor_id)
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payout_schedules_due
          ON app.payout_schedules (next_payout_date)
          WHERE is_active AND NOT is_manually_held;
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payouts (
          id uuid PRIMARY KEY,
          schedule_id uuid NOT NULL REFERENCES app.payout_schedules(id),
          business_id uuid NOT NULL,
          processor_id uuid NOT NULL,
          processor_type varchar(40) NOT NULL,
          frequency varchar(20) NOT NULL,
          period_start timestamptz NOT NULL,
          period_end timestamptz NOT NULL,
          gross_amount_cents bigint NOT NULL,
          processor_fee_cents bigint NOT NULL,
          subscription_fee_cents bigint NOT NULL,
          volume_discount_cents bigint NOT NULL,
          net_amount_cents bigint NOT NULL,
          payment_count integer NOT NULL,
          status varchar(20) NOT NULL
            CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
          retry_count integer NOT NULL DEFAULT 0,
          next_retry_date timestamptz,
          external_reference varchar(200),
          last_error text,
          completed_at timestamptz,
          failed_at timestamptz,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          CHECK (net_amount_cents = gross_amount_cents - processor_fee_cents
                                    - subscription_fee_cents + volume_discount_cents),
          CHECK (status <> 'completed' OR external_reference IS NOT NULL)
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payouts_executable
          ON app.payouts (created_at)
          WHERE status = 'pending';
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_payouts_business ON app.payouts (business_id, created_at DESC);")

    # payment_id UNIQUE: a payment can sit in at most one payout, ever.
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payout_items (
          payout_id uuid NOT NULL REFERENCES app.payouts(id),
          position integer NOT NULL,
          payment_id uuid NOT NULL UNIQUE,
          amount_cents bigint NOT NULL,
          processor_fee_cents bigint NOT NULL,
          net_contribution_cents bigint NOT NULL,
          PRIMARY KEY (payout_id, position)
        );
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.payout_items;")
    op.execute("DROP TABLE IF EXISTS app.payouts;")
    op.execute("DROP TABLE IF EXISTS app.payout_schedules;")
    op.execute("ALTER TABLE app.payments DROP COLUMN IF EXISTS settlement_details;")
