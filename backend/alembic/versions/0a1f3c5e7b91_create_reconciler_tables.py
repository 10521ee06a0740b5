"""create reconciler tables

Revision ID: 0a1f3c5e7b91
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "0a1f3c5e7b91"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


JSON_TYPE = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")
EPOCH_MS = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

COUNT_COLUMNS = (
    "active_subscribers",
    "trial_subscribers",
    "paid_subscribers",
    "monthly_subscribers",
    "yearly_subscribers",
    "first_payments",
    "renewals",
    "cancellations",
    "churn",
    "refunds",
    "grace_events",
    "paybacks",
)

MONEY_COLUMNS = (
    "mrr",
    "charged_revenue",
    "revenue",
    "proceeds",
    "monthly_plan_charged_revenue",
    "monthly_plan_revenue",
    "monthly_plan_proceeds",
    "yearly_plan_charged_revenue",
    "yearly_plan_revenue",
    "yearly_plan_proceeds",
)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "apps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        *_timestamps(),
    )
    op.create_index(op.f("ix_apps_id"), "apps", ["id"], unique=False)
    op.create_index(op.f("ix_apps_slug"), "apps", ["slug"], unique=True)

    op.create_table(
        "platform_connections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("credentials_encrypted", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_platform_connections_id"), "platform_connections", ["id"], unique=False)
    op.create_index(
        op.f("ix_platform_connections_app_id"), "platform_connections", ["app_id"], unique=False
    )
    op.create_index(
        "ix_platform_connections_app_platform",
        "platform_connections",
        ["app_id", "platform"],
        unique=False,
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("product_id", sa.String(), nullable=True),
        sa.Column("start_date", EPOCH_MS, nullable=False),
        sa.Column("end_date", EPOCH_MS, nullable=True),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("will_cancel", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_in_grace", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("trial_end", EPOCH_MS, nullable=True),
        sa.Column("price_amount", sa.Integer(), nullable=True),
        sa.Column("price_interval", sa.String(), nullable=True),
        sa.Column("price_interval_count", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("price_currency", sa.String(length=3), nullable=True),
        sa.Column("raw_data", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "app_id", "platform", "external_id", name="uq_subscriptions_app_platform_external"
        ),
    )
    op.create_index(op.f("ix_subscriptions_id"), "subscriptions", ["id"], unique=False)
    op.create_index(op.f("ix_subscriptions_app_id"), "subscriptions", ["app_id"], unique=False)
    op.create_index(op.f("ix_subscriptions_status"), "subscriptions", ["status"], unique=False)
    op.create_index(
        "ix_subscriptions_app_platform", "subscriptions", ["app_id", "platform"], unique=False
    )

    op.create_table(
        "revenue_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column(
            "subscription_id",
            sa.Integer(),
            sa.ForeignKey("subscriptions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("amount_excluding_tax", sa.Float(), nullable=True),
        sa.Column("amount_proceeds", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("country", sa.String(length=2), nullable=True),
        sa.Column("timestamp", EPOCH_MS, nullable=False),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("raw_data", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_revenue_events_id"), "revenue_events", ["id"], unique=False)
    op.create_index(op.f("ix_revenue_events_app_id"), "revenue_events", ["app_id"], unique=False)
    op.create_index(
        op.f("ix_revenue_events_subscription_id"), "revenue_events", ["subscription_id"], unique=False
    )
    op.create_index(
        op.f("ix_revenue_events_external_id"), "revenue_events", ["external_id"], unique=False
    )
    op.create_index(
        "ix_revenue_events_app_platform", "revenue_events", ["app_id", "platform"], unique=False
    )
    op.create_index(
        "ix_revenue_events_dedup",
        "revenue_events",
        ["subscription_id", "timestamp", "amount"],
        unique=False,
    )
    op.create_index(
        "ix_revenue_events_app_timestamp", "revenue_events", ["app_id", "timestamp"], unique=False
    )

    op.create_table(
        "metrics_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        *[
            sa.Column(name, sa.Integer(), nullable=False, server_default=sa.text("0"))
            for name in COUNT_COLUMNS
        ],
        *[
            sa.Column(name, sa.Float(), nullable=False, server_default=sa.text("0"))
            for name in MONEY_COLUMNS
        ],
        *_timestamps(),
    )
    op.create_index(op.f("ix_metrics_snapshots_id"), "metrics_snapshots", ["id"], unique=False)
    op.create_index(
        op.f("ix_metrics_snapshots_app_id"), "metrics_snapshots", ["app_id"], unique=False
    )
    op.create_index(
        "ix_metrics_snapshots_app_platform_date",
        "metrics_snapshots",
        ["app_id", "platform", "date"],
        unique=False,
    )
    op.create_index(
        "ix_metrics_snapshots_app_date", "metrics_snapshots", ["app_id", "date"], unique=False
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("from_currency", sa.String(length=3), nullable=False),
        sa.Column("to_currency", sa.String(length=3), nullable=False),
        sa.Column("rate", sa.Float(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("year_month", sa.String(length=7), nullable=True),
    )
    op.create_index(op.f("ix_exchange_rates_id"), "exchange_rates", ["id"], unique=False)
    op.create_index(
        "ix_exchange_rates_pair",
        "exchange_rates",
        ["from_currency", "to_currency", "recorded_at"],
        unique=False,
    )
    op.create_index(
        "ix_exchange_rates_pair_month",
        "exchange_rates",
        ["from_currency", "to_currency", "year_month"],
        unique=False,
    )

    op.create_table(
        "sync_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
    )
    op.create_index(op.f("ix_sync_sessions_id"), "sync_sessions", ["id"], unique=False)
    op.create_index(op.f("ix_sync_sessions_app_id"), "sync_sessions", ["app_id"], unique=False)
    op.create_index(
        "ix_sync_sessions_app_status", "sync_sessions", ["app_id", "status"], unique=False
    )

    op.create_table(
        "sync_progress",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column(
            "connection_id",
            sa.Integer(),
            sa.ForeignKey("platform_connections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("sync_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("credentials_encrypted", sa.Text(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("total_days", sa.Integer(), nullable=False),
        sa.Column("chunk_size_days", sa.Integer(), nullable=False),
        sa.Column("total_chunks", sa.Integer(), nullable=False),
        sa.Column("current_chunk", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("processed_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_processed_date", sa.Date(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_sync_progress_id"), "sync_progress", ["id"], unique=False)
    op.create_index(op.f("ix_sync_progress_app_id"), "sync_progress", ["app_id"], unique=False)
    op.create_index(
        op.f("ix_sync_progress_connection_id"), "sync_progress", ["connection_id"], unique=False
    )
    op.create_index(
        op.f("ix_sync_progress_session_id"), "sync_progress", ["session_id"], unique=False
    )

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("level", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
    )
    op.create_index(op.f("ix_sync_logs_id"), "sync_logs", ["id"], unique=False)
    op.create_index(op.f("ix_sync_logs_app_id"), "sync_logs", ["app_id"], unique=False)
    op.create_index("ix_sync_logs_app_timestamp", "sync_logs", ["app_id", "timestamp"], unique=False)

    op.create_table(
        "app_store_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("report_type", sa.String(), nullable=False),
        sa.Column("report_sub_type", sa.String(), nullable=False),
        sa.Column("frequency", sa.String(), nullable=False),
        sa.Column("vendor_number", sa.String(), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("bundle_id", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_app_store_reports_id"), "app_store_reports", ["id"], unique=False)
    op.create_index(
        op.f("ix_app_store_reports_app_id"), "app_store_reports", ["app_id"], unique=False
    )
    op.create_index(
        "ix_app_store_reports_app_date",
        "app_store_reports",
        ["app_id", "report_date"],
        unique=False,
    )
    op.create_index(
        "ix_app_store_reports_type",
        "app_store_reports",
        ["report_type", "report_sub_type"],
        unique=False,
    )

    op.create_table(
        "job_queue",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("queue_name", sa.String(), nullable=False),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="SET NULL"), nullable=True),
        sa.Column("payload_json", JSON_TYPE, nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("run_at", sa.DateTime(), nullable=False),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("locked_by", sa.String(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_job_queue_id"), "job_queue", ["id"], unique=False)
    op.create_index(op.f("ix_job_queue_queue_name"), "job_queue", ["queue_name"], unique=False)
    op.create_index(op.f("ix_job_queue_job_type"), "job_queue", ["job_type"], unique=False)
    op.create_index(op.f("ix_job_queue_app_id"), "job_queue", ["app_id"], unique=False)
    op.create_index(
        "ix_job_queue_queue_status_run_at",
        "job_queue",
        ["queue_name", "status", "run_at"],
        unique=False,
    )
    op.create_index(
        "ix_job_queue_queue_priority_created",
        "job_queue",
        ["queue_name", "priority", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_job_queue_app_queue_status",
        "job_queue",
        ["app_id", "queue_name", "status"],
        unique=False,
    )

    op.create_table(
        "job_dead_letters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("original_job_id", sa.Integer(), nullable=True),
        sa.Column("queue_name", sa.String(), nullable=False),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("app_id", sa.Integer(), sa.ForeignKey("apps.id", ondelete="SET NULL"), nullable=True),
        sa.Column("payload_json", JSON_TYPE, nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_job_dead_letters_id"), "job_dead_letters", ["id"], unique=False)
    op.create_index(
        op.f("ix_job_dead_letters_queue_name"), "job_dead_letters", ["queue_name"], unique=False
    )
    op.create_index(
        op.f("ix_job_dead_letters_job_type"), "job_dead_letters", ["job_type"], unique=False
    )
    op.create_index(
        "ix_job_dead_letters_queue_failed_at",
        "job_dead_letters",
        ["queue_name", "failed_at"],
        unique=False,
    )
    op.create_index("ix_job_dead_letters_app", "job_dead_letters", ["app_id"], unique=False)


def downgrade() -> None:
    for table in (
        "job_dead_letters",
        "job_queue",
        "app_store_reports",
        "sync_logs",
        "sync_progress",
        "sync_sessions",
        "exchange_rates",
        "metrics_snapshots",
        "revenue_events",
        "subscriptions",
        "platform_connections",
        "apps",
    ):
        op.drop_table(table)
