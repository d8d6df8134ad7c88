"""Add subscription_document table

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'a7c1e2d3f4b5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'subscription_document',
        sa.Column('document_id', sa.String(length=64), nullable=False),
        sa.Column('collection', sa.String(length=100), nullable=False, server_default='subscriptions'),
        sa.Column('data', sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'), nullable=False, comment='camelCase subscription record'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('document_id')
    )

    # Snapshots list one collection at a time
    op.create_index('ix_subscription_document_collection', 'subscription_document', ['collection'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_subscription_document_collection', table_name='subscription_document')
    op.drop_table('subscription_document')
