"""Initial schema: users, materials, downloads and download tokens.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

download_tokens rows are single-use credentials. They are deleted on
redemption, and the expires_at index backs the periodic purge of tokens
that were never redeemed.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(255), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, server_default=''),
        sa.Column('name', sa.String(255), nullable=False, server_default='User'),
        sa.Column('avatar_url', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'materials',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('course', sa.String(100), nullable=False),
        sa.Column('year', sa.String(20), nullable=False),
        sa.Column('semester', sa.String(20), nullable=False),
        sa.Column('material_type', sa.String(50), nullable=False),
        sa.Column('file_type', sa.String(20), nullable=False),
        sa.Column('file_url', sa.String(2048), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=True),
        sa.Column('uploaded_by', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('downloads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_materials_course_year_semester', 'materials', ['course', 'year', 'semester'])
    op.create_index('ix_materials_created_at', 'materials', ['created_at'])

    op.create_table(
        'downloads',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('material_id', sa.String(36), sa.ForeignKey('materials.id'), nullable=False),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_downloads_material_id', 'downloads', ['material_id'])
    op.create_index('ix_downloads_user_id', 'downloads', ['user_id'])

    op.create_table(
        'download_tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('token', sa.String(64), nullable=False, unique=True),
        sa.Column('material_id', sa.String(36), sa.ForeignKey('materials.id'), nullable=False),
        sa.Column('user_id', sa.String(255), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_download_tokens_expires_at', 'download_tokens', ['expires_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('ix_download_tokens_expires_at', table_name='download_tokens')
    op.drop_table('download_tokens')
    op.drop_index('ix_downloads_user_id', table_name='downloads')
    op.drop_index('ix_downloads_material_id', table_name='downloads')
    op.drop_table('downloads')
    op.drop_index('ix_materials_created_at', table_name='materials')
    op.drop_index('ix_materials_course_year_semester', table_name='materials')
    op.drop_table('materials')
    op.drop_table('users')
