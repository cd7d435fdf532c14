"""add_settlement_claims

Revision ID: 8d2e4b6f1a35
Revises: 3f1a9c2e7b10
Create Date: 2026-10-21 14:03:51.902117

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8d2e4b6f1a35'
down_revision: Union[str, Sequence[str], None] = '3f1a9c2e7b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: mint claims on certificates, stats-applied flag on results."""
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TYPE mintstatus ADD VALUE IF NOT EXISTS 'minting'")

    # batch_alter_table handles both PostgreSQL (direct ALTER) and SQLite (table rebuild)
    with op.batch_alter_table("certificates") as batch_op:
        batch_op.add_column(sa.Column('mint_claimed_at', sa.DateTime(timezone=True), nullable=True))

    # results recorded before this revision were already counted
    with op.batch_alter_table("test_results") as batch_op:
        batch_op.add_column(
            sa.Column('stats_applied', sa.Boolean(), nullable=False, server_default=sa.true())
        )
    with op.batch_alter_table("test_results") as batch_op:
        batch_op.alter_column('stats_applied', server_default=None)


def downgrade() -> None:
    """Downgrade schema: drop claim columns. The enum value stays."""
    op.execute("UPDATE certificates SET mint_status = 'placeholder' WHERE mint_status = 'minting'")
    with op.batch_alter_table("test_results") as batch_op:
        batch_op.drop_column('stats_applied')
    with op.batch_alter_table("certificates") as batch_op:
        batch_op.drop_column('mint_claimed_at')
