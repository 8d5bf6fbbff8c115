"""Create merchants, orders, transactions, unmapped notifications and audit logs

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "merchants",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("business_name", sa.String(), nullable=False),
        sa.Column("api_key", sa.String(), nullable=False),
        sa.Column("api_secret", sa.String(), nullable=False),
        sa.Column("webhook_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_merchants_email", "merchants", ["email"], unique=True)
    op.create_index("ix_merchants_api_key", "merchants", ["api_key"], unique=True)

    op.create_table(
        "merchant_domains",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "merchant_id", sa.String(), sa.ForeignKey("merchants.id"), nullable=False
        ),
        sa.Column("domain", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_merchant_domains_merchant_id", "merchant_domains", ["merchant_id"]
    )

    op.create_table(
        "orders",
        sa.Column("order_id", sa.String(10), primary_key=True),
        sa.Column(
            "merchant_id", sa.String(), sa.ForeignKey("merchants.id"), nullable=False
        ),
        sa.Column("customer_name", sa.String(), nullable=False),
        sa.Column("customer_mobile", sa.String(10), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("receiver_upi_id", sa.String(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "CREATED", "PENDING", "COMPLETED", "EXPIRED", "FAILED", name="orderstatus"
            ),
            nullable=False,
        ),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("qr_path", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("pending_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.Column("failed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_orders_merchant_id", "orders", ["merchant_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    # 同一張單最多一筆 Transaction
    op.create_table(
        "transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "order_id", sa.String(), sa.ForeignKey("orders.order_id"), nullable=False
        ),
        sa.Column(
            "merchant_id", sa.String(), sa.ForeignKey("merchants.id"), nullable=False
        ),
        sa.Column("payer_name", sa.String(), nullable=False),
        sa.Column("notification_json", sa.JSON(), nullable=False),
        sa.Column("is_late_payment", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_transactions_order_id", "transactions", ["order_id"], unique=True
    )
    op.create_index("ix_transactions_merchant_id", "transactions", ["merchant_id"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    op.create_table(
        "unmapped_notifications",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("notification_json", sa.JSON(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=True),
        sa.Column(
            "reason",
            sa.Enum("NO_ORDER_ID", "ORDER_NOT_FOUND", name="unmappedreason"),
            nullable=False,
        ),
        sa.Column("received_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_unmapped_notifications_received_at",
        "unmapped_notifications",
        ["received_at"],
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("actor", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("unmapped_notifications")
    op.drop_table("transactions")
    op.drop_table("orders")
    op.drop_table("merchant_domains")
    op.drop_table("merchants")
    # Postgres 的 enum type 不會跟著表一起刪
    sa.Enum(name="unmappedreason").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="orderstatus").drop(op.get_bind(), checkfirst=True)
