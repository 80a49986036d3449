"""secure codes: bind verify_email codes to the address they were sent to

Revision ID: 0002_secure_code_email_id
Revises: 0001_init
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_secure_code_email_id"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # existing codes carry no address and can no longer activate anything
    op.execute("DELETE FROM secure_codes WHERE type = 'verify_email'")
    op.add_column("secure_codes", sa.Column("email_id", sa.Integer(), nullable=True))
    op.create_foreign_key(
        "fk_secure_codes_email_id_emails",
        "secure_codes",
        "emails",
        ["email_id"],
        ["id"],
        ondelete="CASCADE",
    )


def downgrade() -> None:
    op.drop_constraint("fk_secure_codes_email_id_emails", "secure_codes", type_="foreignkey")
    op.drop_column("secure_codes", "email_id")
