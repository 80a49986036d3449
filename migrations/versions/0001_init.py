"""init schema: users, emails, secure codes

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql as pg


# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", pg.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status in ('active','disabled')", name="ck_users_users_status"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )

    # emails (plain text, not citext: addresses are unique as stored)
    op.create_table(
        "emails",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_emails_user_id_users"), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", pg.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_emails"),
        sa.UniqueConstraint("email", name="uq_emails_email"),
    )
    op.create_index("ix_emails_user_id", "emails", ["user_id"], unique=False)
    op.create_index(
        "uq_emails_one_primary",
        "emails",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("is_primary"),
    )

    # secure codes (hashed one-time codes)
    op.create_table(
        "secure_codes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_secure_codes_user_id_users"), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("created_at", pg.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("type in ('verify_email','reset_password')", name="ck_secure_codes_secure_codes_type"),
        sa.PrimaryKeyConstraint("id", name="pk_secure_codes"),
    )
    op.create_index(
        "ix_secure_codes_user_type_created", "secure_codes", ["user_id", "type", "created_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_secure_codes_user_type_created", table_name="secure_codes")
    op.drop_table("secure_codes")
    op.drop_index("uq_emails_one_primary", table_name="emails")
    op.drop_index("ix_emails_user_id", table_name="emails")
    op.drop_table("emails")
    op.drop_table("users")
