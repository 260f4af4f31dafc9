"""Initial schema: users, plans, bank details, orders, kyc, queries, notifications, feedback

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    # -----------------------
    # user
    # -----------------------
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("email", name="user_email_key"),
        sa.CheckConstraint("role in ('user','admin')", name="ck_user_role"),
        sa.CheckConstraint("status in ('active','suspended','banned')", name="ck_user_status"),
    )

    # -----------------------
    # investment_plan
    # -----------------------
    op.create_table(
        "investment_plan",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("min_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("max_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("roi_percentage", sa.Numeric(6, 2), nullable=False),
        sa.Column("duration_months", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("min_amount > 0", name="ck_plan_min_positive"),
        sa.CheckConstraint("max_amount >= min_amount", name="ck_plan_range"),
    )

    # -----------------------
    # bank_detail (+ single default)
    # -----------------------
    op.create_table(
        "bank_detail",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bank_name", sa.String(120), nullable=False),
        sa.Column("account_number", sa.String(40), nullable=False),
        sa.Column("account_holder_name", sa.String(160), nullable=False),
        sa.Column("ifsc_code", sa.String(20), nullable=False),
        sa.Column("branch_name", sa.String(160), nullable=True),
        sa.Column("upi_id", sa.String(120), nullable=True),
        sa.Column("upi_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_bank_detail_single_default",
        "bank_detail",
        ["is_default"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default = 1"),
    )

    # -----------------------
    # orders
    # -----------------------
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("user_email", sa.String(120), nullable=False),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("investment_plan.id"), nullable=True),
        sa.Column("plan_name", sa.String(120), nullable=False),
        sa.Column("roi_percentage", sa.Numeric(6, 2), nullable=True),
        sa.Column("duration_months", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("payment_proof", sa.String(500), nullable=True),
        sa.Column("payment_note", sa.Text(), nullable=True),
        sa.Column("transaction_id", sa.String(120), nullable=True),
        sa.Column("bank_details", JSONType, nullable=True),
        sa.Column("admin_note", sa.Text(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("decided_by", sa.String(120), nullable=True),
        sa.Column("certificate", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_order_amount_positive"),
        sa.CheckConstraint(
            "status in ('pending','payment_uploaded','paid','processing','cancelled')",
            name="ck_order_status",
        ),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_plan_id", "orders", ["plan_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    # -----------------------
    # kyc (one row per user)
    # -----------------------
    op.create_table(
        "kyc",
        sa.Column("id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("document_type", sa.String(30), nullable=True),
        sa.Column("document_number", sa.String(60), nullable=True),
        sa.Column("full_name", sa.String(160), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("document_url", sa.String(500), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("resubmitted_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by", sa.String(120), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status in ('pending','submitted','approved','rejected')", name="ck_kyc_status"),
        sa.CheckConstraint(
            "(status = 'rejected') = (rejection_reason IS NOT NULL AND rejection_reason <> '')",
            name="ck_kyc_rejection_reason",
        ),
    )
    op.create_index("ix_kyc_status", "kyc", ["status"])

    # -----------------------
    # queries + query_message
    # -----------------------
    op.create_table(
        "queries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_email", sa.String(120), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="general"),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("type in ('general','priority')", name="ck_query_type"),
        sa.CheckConstraint("status in ('open','replied','resolved')", name="ck_query_status"),
        sa.CheckConstraint("type <> 'priority' OR user_id IS NOT NULL", name="ck_query_priority_owner"),
    )
    op.create_index("ix_queries_user_id", "queries", ["user_id"])
    op.create_index("ix_queries_status", "queries", ["status"])

    op.create_table(
        "query_message",
        sa.Column("seq", sa.Integer(), primary_key=True),
        sa.Column("query_id", sa.Uuid(), sa.ForeignKey("queries.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender", sa.String(10), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("sender in ('user','admin')", name="ck_query_message_sender"),
    )
    op.create_index("ix_query_message_query_id", "query_message", ["query_id"])

    # -----------------------
    # notification
    # -----------------------
    op.create_table(
        "notification",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="info"),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("type in ('info','success','warning','error')", name="ck_notification_type"),
    )
    op.create_index("ix_notification_user_id", "notification", ["user_id"])
    op.create_index("ix_notification_created_at", "notification", ["created_at"])

    # -----------------------
    # feedback
    # -----------------------
    op.create_table(
        "feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_email", sa.String(120), nullable=False),
        sa.Column("user_name", sa.String(120), nullable=False),
        sa.Column("feedback", sa.Text(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="general"),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("admin_note", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_feedback_rating"),
        sa.CheckConstraint("status in ('new','reviewed','resolved')", name="ck_feedback_status"),
    )
    op.create_index("ix_feedback_user_id", "feedback", ["user_id"])


def downgrade():
    op.drop_index("ix_feedback_user_id", table_name="feedback")
    op.drop_table("feedback")
    op.drop_index("ix_notification_created_at", table_name="notification")
    op.drop_index("ix_notification_user_id", table_name="notification")
    op.drop_table("notification")
    op.drop_index("ix_query_message_query_id", table_name="query_message")
    op.drop_table("query_message")
    op.drop_index("ix_queries_status", table_name="queries")
    op.drop_index("ix_queries_user_id", table_name="queries")
    op.drop_table("queries")
    op.drop_index("ix_kyc_status", table_name="kyc")
    op.drop_table("kyc")
    op.drop_index("ix_orders_created_at", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_plan_id", table_name="orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("uq_bank_detail_single_default", table_name="bank_detail")
    op.drop_table("bank_detail")
    op.drop_table("investment_plan")
    op.drop_table("user")
