"""create_users_and_generations

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-10-02 11:40:12.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3f1c9a7d2e10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('email', sa.TEXT(), nullable=False),
        sa.Column('plan', sa.TEXT(), nullable=False, server_default='free'),
        sa.Column('scheduled_plan', sa.TEXT(), nullable=True),
        sa.Column('generations_used', sa.INTEGER(), nullable=False, server_default='0'),
        sa.Column('generations_limit', sa.INTEGER(), nullable=False, server_default='2'),
        sa.Column('stripe_customer_id', sa.TEXT(), nullable=True),
        sa.Column('stripe_subscription_id', sa.TEXT(), nullable=True),
        sa.Column('subscription_status', sa.TEXT(), nullable=True),
        sa.Column('current_period_end', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_customer_id'),
        sa.CheckConstraint('generations_used >= 0', name='ck_users_generations_used_nonneg'),
        sa.CheckConstraint('generations_limit > 0', name='ck_users_generations_limit_pos'),
    )

    op.create_table(
        'generations',
        sa.Column('id', sa.TEXT(), nullable=False),
        sa.Column('user_id', sa.TEXT(), nullable=False),
        sa.Column('title', sa.TEXT(), nullable=True),
        sa.Column('status', sa.TEXT(), nullable=False, server_default='starting'),
        sa.Column('uploaded_image_url', sa.TEXT(), nullable=True),
        sa.Column('image_url', sa.TEXT(), nullable=True),
        sa.Column('selected_props', sa.JSON(), nullable=True),
        sa.Column('selected_template', sa.TEXT(), nullable=True),
        sa.Column('prediction_id', sa.TEXT(), nullable=True),
        sa.Column('error', sa.TEXT(), nullable=True),
        sa.Column('file_size', sa.TEXT(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('starting', 'processing', 'succeeded', 'failed')",
            name='ck_generations_status',
        ),
        sa.CheckConstraint(
            "status <> 'succeeded' OR image_url IS NOT NULL",
            name='ck_generations_succeeded_has_image',
        ),
    )
    op.create_index('idx_generations_user_created', 'generations', ['user_id', 'created_at'])
    # Reaper scan: in-flight rows by age
    op.create_index('idx_generations_status_updated', 'generations', ['status', 'updated_at'])


def downgrade() -> None:
    op.drop_index('idx_generations_status_updated', table_name='generations')
    op.drop_index('idx_generations_user_created', table_name='generations')
    op.drop_table('generations')
    op.drop_table('users')
