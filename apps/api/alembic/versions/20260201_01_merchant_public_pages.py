"""Allow admin-created merchant pages without an owning account.

Revision ID: 20260201_01
Revises: 20260101_01
Create Date: 2026-02-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20260201_01"
down_revision: Union[str, None] = "20260101_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "merchants",
        sa.Column("is_public_page", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.alter_column("merchants", "user_id", existing_type=sa.dialects.postgresql.UUID(as_uuid=True), nullable=True)


def downgrade() -> None:
    op.execute("DELETE FROM merchants WHERE user_id IS NULL")
    op.alter_column("merchants", "user_id", existing_type=sa.dialects.postgresql.UUID(as_uuid=True), nullable=False)
    op.drop_column("merchants", "is_public_page")
