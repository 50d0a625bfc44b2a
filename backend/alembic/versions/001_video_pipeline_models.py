"""Video pipeline models migration.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create videos table
    op.create_table(
        'videos',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('course_id', sa.Uuid(), nullable=False),
        sa.Column('uploaded_by', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='draft'),
        sa.Column('source_path', sa.String(1024), nullable=True),
        sa.Column('original_filename', sa.String(255), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('thumbnail_url', sa.String(1024), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('processing_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_videos_course_id', 'videos', ['course_id'])
    op.create_index('ix_videos_status', 'videos', ['status'])

    # Create video_renditions table
    op.create_table(
        'video_renditions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('video_id', sa.Uuid(), nullable=False),
        sa.Column('resolution', sa.String(20), nullable=False),
        sa.Column('bitrate', sa.Integer(), nullable=False),
        sa.Column('object_key', sa.String(1024), nullable=True),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('video_id', 'resolution', name='uq_video_renditions_video_resolution'),
    )
    op.create_index('ix_video_renditions_video_id', 'video_renditions', ['video_id'])


def downgrade() -> None:
    op.drop_index('ix_video_renditions_video_id', table_name='video_renditions')
    op.drop_table('video_renditions')
    op.drop_index('ix_videos_status', table_name='videos')
    op.drop_index('ix_videos_course_id', table_name='videos')
    op.drop_table('videos')
