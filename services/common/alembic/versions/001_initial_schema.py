"""Initial inventory schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

media_type_enum = sa.Enum('video', 'image', 'item', name='mediatype')
media_status_enum = sa.Enum('preparing', 'processing', 'ready', 'errored', name='mediastatus')
extraction_status_enum = sa.Enum('pending', 'processing', 'completed', 'failed', name='extractionstatus')
transcript_status_enum = sa.Enum('pending', 'processing', 'completed', 'error', name='transcriptstatus')


def upgrade() -> None:
    """Create the inventory tables."""

    # Assets: source videos, images and merged items share one table
    op.create_table(
        'assets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('media_type', media_type_enum, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=False),
        sa.Column('processing_status', media_status_enum, nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('extraction_status', extraction_status_enum, nullable=False),
        sa.Column('transcript_processing_status', transcript_status_enum, nullable=False),
        sa.Column('transcript', json_type, nullable=True),
        sa.Column('transcript_text', sa.Text(), nullable=True),
        sa.Column('transcript_error', sa.Text(), nullable=True),
        sa.Column('is_source_video', sa.Boolean(), nullable=False),
        sa.Column('is_processed', sa.Boolean(), nullable=False),
        sa.Column('external_media_ref', sa.String(length=255), nullable=True),
        sa.Column('media_ref_permanent', sa.Boolean(), nullable=False),
        sa.Column('correlation_id', sa.String(length=255), nullable=True),
        sa.Column('playback_id', sa.String(length=255), nullable=True),
        sa.Column('duration', sa.Float(), nullable=True),
        sa.Column('aspect_ratio', sa.String(length=32), nullable=True),
        sa.Column('max_resolution', sa.String(length=32), nullable=True),
        sa.Column('source_video_id', sa.String(length=36), nullable=True),
        sa.Column('item_timestamp', sa.Float(), nullable=True),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('inferred_room_name', sa.String(length=120), nullable=True),
        sa.Column('brand', sa.String(length=120), nullable=True),
        sa.Column('model', sa.String(length=120), nullable=True),
        sa.Column('condition', sa.String(length=120), nullable=True),
        sa.Column('serial_number', sa.String(length=120), nullable=True),
        sa.Column('purchase_date', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['source_video_id'], ['assets.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assets_user_id', 'assets', ['user_id'])
    op.create_index('ix_assets_external_media_ref', 'assets', ['external_media_ref'])
    op.create_index('ix_assets_correlation_id', 'assets', ['correlation_id'])
    op.create_index('ix_assets_source_video_id', 'assets', ['source_video_id'])

    # Webhook Events
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_type', sa.String(length=120), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('payload', json_type, nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('asset_id', sa.String(length=36), nullable=True),
        sa.Column('external_asset_id', sa.String(length=255), nullable=True),
        sa.Column('upload_id', sa.String(length=255), nullable=True),
        sa.Column('correlation_id', sa.String(length=255), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id')
    )
    op.create_index('ix_webhook_events_processed', 'webhook_events', ['processed'])
    op.create_index('ix_webhook_events_external_asset_id', 'webhook_events', ['external_asset_id'])
    op.create_index('ix_webhook_events_upload_id', 'webhook_events', ['upload_id'])

    # Scratch Items: raw per-frame detections awaiting merge
    op.create_table(
        'scratch_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('external_media_ref', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('video_timestamp', sa.Float(), nullable=True),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_scratch_items_user_id', 'scratch_items', ['user_id'])
    op.create_index('ix_scratch_items_external_media_ref', 'scratch_items', ['external_media_ref'])

    # Tags and Rooms
    for table in ('tags', 'rooms'):
        op.create_table(
            table,
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('user_id', sa.String(length=64), nullable=False),
            sa.Column('name', sa.String(length=120), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('user_id', 'name', name=f'uq_{table}_user_name')
        )
        op.create_index(f'ix_{table}_user_id', table, ['user_id'])

    # Item links
    op.create_table(
        'item_tags',
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('tag_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['item_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('item_id', 'tag_id')
    )
    op.create_table(
        'item_rooms',
        sa.Column('item_id', sa.String(length=36), nullable=False),
        sa.Column('room_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['item_id'], ['assets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('item_id')
    )


def downgrade() -> None:
    """Drop the inventory tables."""
    op.drop_table('item_rooms')
    op.drop_table('item_tags')
    op.drop_table('rooms')
    op.drop_table('tags')
    op.drop_table('scratch_items')
    op.drop_table('webhook_events')
    op.drop_table('assets')

    bind = op.get_bind()
    for enum_type in (transcript_status_enum, extraction_status_enum, media_status_enum, media_type_enum):
        enum_type.drop(bind, checkfirst=True)
