"""create_delivery_tables

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSON_DOCUMENT = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Create outbox_events and dead_letter_events."""
    op.create_table(
        'outbox_events',
        # Primary key (UUID v7 for time-ordering)
        sa.Column('id', sa.Uuid(), nullable=False),

        # Aggregate context (for ordered delivery per entity)
        sa.Column('aggregate_type', sa.String(length=100), nullable=False),
        sa.Column('aggregate_id', sa.String(length=255), nullable=False),

        # Event identification and payload
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('payload', JSON_DOCUMENT, nullable=False),
        sa.Column('correlation_id', sa.String(length=255), nullable=True),

        # Processing state
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id', name=op.f('pk_outbox_events'))
    )
    op.create_index('ix_outbox_events_event_type', 'outbox_events', ['event_type'], unique=False)
    op.create_index('ix_outbox_events_correlation_id', 'outbox_events', ['correlation_id'], unique=False)
    op.create_index('ix_outbox_events_created_at', 'outbox_events', ['created_at'], unique=False)
    # Relay selection: PENDING rows in creation order
    op.create_index('ix_outbox_events_status_created', 'outbox_events', ['status', 'created_at'], unique=False)
    op.create_index(
        'ix_outbox_events_aggregate',
        'outbox_events',
        ['aggregate_type', 'aggregate_id', 'created_at'],
        unique=False
    )

    op.create_table(
        'dead_letter_events',
        sa.Column('id', sa.Uuid(), nullable=False),

        # Original delivery
        sa.Column('original_topic', sa.String(length=255), nullable=False),
        sa.Column('payload', JSON_DOCUMENT, nullable=False),
        sa.Column('metadata', JSON_DOCUMENT, nullable=False),

        # Retry state
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_until', sa.DateTime(timezone=True), nullable=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id', name=op.f('pk_dead_letter_events'))
    )
    op.create_index('ix_dead_letter_events_created_at', 'dead_letter_events', ['created_at'], unique=False)
    # Processor selection: pending rows that are due
    op.create_index(
        'ix_dead_letter_events_status_next_retry',
        'dead_letter_events',
        ['status', 'next_retry_at'],
        unique=False
    )
    op.create_index(
        'ix_dead_letter_events_topic_status',
        'dead_letter_events',
        ['original_topic', 'status'],
        unique=False
    )


def downgrade() -> None:
    """Drop outbox_events and dead_letter_events."""
    op.drop_index('ix_dead_letter_events_topic_status', table_name='dead_letter_events')
    op.drop_index('ix_dead_letter_events_status_next_retry', table_name='dead_letter_events')
    op.drop_index('ix_dead_letter_events_created_at', table_name='dead_letter_events')
    op.drop_table('dead_letter_events')

    op.drop_index('ix_outbox_events_aggregate', table_name='outbox_events')
    op.drop_index('ix_outbox_events_status_created', table_name='outbox_events')
    op.drop_index('ix_outbox_events_created_at', table_name='outbox_events')
    op.drop_index('ix_outbox_events_correlation_id', table_name='outbox_events')
    op.drop_index('ix_outbox_events_event_type', table_name='outbox_events')
    op.drop_table('outbox_events')
