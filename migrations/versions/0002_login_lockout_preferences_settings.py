"""Login lockout counters, user preferences, admin settings

Revision ID: 0002_lockout_prefs_settings
Revises: 0001_initial_schema
Create Date: 2026-10-19 14:30:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0002_lockout_prefs_settings"
down_revision = "0001_initial_schema"
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    with op.batch_alter_table("user") as batch_op:
        batch_op.add_column(
            sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0")
        )
        batch_op.add_column(sa.Column("locked_until", sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column("preferences", JSONType, nullable=True))

    op.create_table(
        "admin_setting",
        sa.Column("key", sa.String(60), primary_key=True),
        sa.Column("value", JSONType, nullable=False),
        sa.Column("updated_by", sa.String(120), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("admin_setting")

    with op.batch_alter_table("user") as batch_op:
        batch_op.drop_column("preferences")
        batch_op.drop_column("locked_until")
        batch_op.drop_column("failed_login_attempts")
