"""Create scoring tables: leads, conversion_rates, client_settings, scoring_job_logs

Revision ID: d3f1a6c20e58
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'd3f1a6c20e58'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('client_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('service', sa.Text(), nullable=True),
        sa.Column('ad_set_name', sa.Text(), nullable=True),
        sa.Column('ad_name', sa.Text(), nullable=True),
        sa.Column('zip', sa.Text(), nullable=True),
        sa.Column('lead_date', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='new'),
        sa.Column('unqualified_lead_reason', sa.Text(), nullable=True),
        sa.Column('proposal_amount', sa.Float(), nullable=True),
        sa.Column('job_booked_amount', sa.Float(), nullable=True),
        sa.Column('lead_score', sa.Integer(), nullable=True),
        sa.Column('conversion_rates', sa.JSON(), nullable=True),
        sa.Column('status_history', sa.JSON(), nullable=True),
        sa.Column('rate_batch_id', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_manual_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_client_id_is_deleted', 'leads', ['client_id', 'is_deleted'])
    op.create_index('ix_leads_client_id_rate_batch_id', 'leads', ['client_id', 'rate_batch_id'])

    op.create_table('conversion_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('client_id', sa.Text(), nullable=False),
        sa.Column('key_field', sa.Text(), nullable=False),
        sa.Column('key_name', sa.Text(), nullable=False),
        sa.Column('conversion_rate', sa.Float(), nullable=False),
        sa.Column('past_total_count', sa.Integer(), nullable=False),
        sa.Column('past_total_est', sa.Integer(), nullable=False),
        sa.Column('last_batch_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'key_field', 'key_name', name='uq_conversion_rate_key'),
    )

    op.create_table('client_settings',
        sa.Column('client_id', sa.Text(), nullable=False),
        sa.Column('fb_pixel_id', sa.Text(), nullable=True),
        sa.Column('fb_pixel_token', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('client_id'),
    )

    op.create_table('scoring_job_logs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('job_name', sa.Text(), nullable=False),
        sa.Column('trigger', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('client_id', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('processed_count', sa.Integer(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scoring_job_logs_job_name_started_at', 'scoring_job_logs', ['job_name', 'started_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_scoring_job_logs_job_name_started_at', table_name='scoring_job_logs')
    op.drop_table('scoring_job_logs')
    op.drop_table('client_settings')
    op.drop_table('conversion_rates')
    op.drop_index('ix_leads_client_id_rate_batch_id', table_name='leads')
    op.drop_index('ix_leads_client_id_is_deleted', table_name='leads')
    op.drop_table('leads')
