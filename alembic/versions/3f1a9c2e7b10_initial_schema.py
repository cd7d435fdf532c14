"""initial_schema

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 09:12:44.118203

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

skill_level = sa.Enum('senior', 'middle', 'junior', 'failed', name='skilllevel')
mint_status = sa.Enum('minted', 'placeholder', name='mintstatus')


def upgrade() -> None:
    """Create tests, results, certificates, stats and used payment signatures."""
    op.create_table(
        'tests',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('topic', sa.String(), nullable=False),
        sa.Column('main_category', sa.String(), nullable=False),
        sa.Column('narrow_category', sa.String(), nullable=False),
        sa.Column('specific_category', sa.String(), nullable=False),
        sa.Column('questions', sa.Text(), nullable=False),
        sa.Column('payment_signature', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tests_wallet_address', 'tests', ['wallet_address'])

    op.create_table(
        'test_results',
        sa.Column('test_id', sa.String(), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('topic', sa.String(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('level', skill_level, nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('sol_reward_milli', sa.Integer(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['test_id'], ['tests.id']),
        sa.PrimaryKeyConstraint('test_id'),
    )
    op.create_index('ix_test_results_wallet_address', 'test_results', ['wallet_address'])

    op.create_table(
        'certificates',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('test_id', sa.String(), nullable=True),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('topic', sa.String(), nullable=False),
        sa.Column('level', skill_level, nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('nft_mint', sa.String(), nullable=True),
        sa.Column('nft_metadata_uri', sa.String(), nullable=True),
        sa.Column('mint_status', mint_status, nullable=False),
        sa.Column('earned_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['test_id'], ['test_results.test_id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('test_id'),
    )
    op.create_index('ix_certificates_wallet_address', 'certificates', ['wallet_address'])

    op.create_table(
        'user_stats',
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('total_tests', sa.Integer(), nullable=False),
        sa.Column('total_certificates', sa.Integer(), nullable=False),
        sa.Column('total_sol_earned_milli', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('wallet_address'),
    )

    op.create_table(
        'payment_signatures',
        sa.Column('signature', sa.String(), nullable=False),
        sa.Column('wallet_address', sa.String(), nullable=False),
        sa.Column('lamports', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('signature'),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('payment_signatures')
    op.drop_table('user_stats')
    op.drop_index('ix_certificates_wallet_address', table_name='certificates')
    op.drop_table('certificates')
    op.drop_index('ix_test_results_wallet_address', table_name='test_results')
    op.drop_table('test_results')
    op.drop_index('ix_tests_wallet_address', table_name='tests')
    op.drop_table('tests')
    skill_level.drop(op.get_bind(), checkfirst=True)
    mint_status.drop(op.get_bind(), checkfirst=True)
