"""archiving_and_site_settings

Revision ID: 8f2d4b61c0e5
Revises: 3a9c1e7d2b40
Create Date: 2026-10-19 16:40:07.114382

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8f2d4b61c0e5'
down_revision: Union[str, None] = '3a9c1e7d2b40'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        'archiving',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('image_original', sa.String(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('range', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('author', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index(op.f('ix_archiving_id'), 'archiving', ['id'], unique=False)
    op.create_index(op.f('ix_archiving_created_at'), 'archiving', ['created_at'], unique=False)

    op.create_table(
        'archiving_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.String(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )

    op.create_table(
        'site_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('site_name', sa.String(), nullable=False, server_default='Archiving'),
        sa.Column('site_description', sa.Text(), nullable=True),
        sa.Column('site_language', sa.String(16), nullable=False, server_default='ko_KR'),
        sa.Column('organization_name', sa.String(), nullable=True),
        sa.Column('logo_url', sa.String(), nullable=True),
        sa.Column('favicon_url', sa.String(), nullable=True),
        sa.Column('theme_color', sa.String(16), nullable=False, server_default='#ffffff'),
        sa.Column('updated_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )


def downgrade() -> None:
    op.drop_table('site_settings')
    op.drop_table('archiving_categories')
    op.drop_index(op.f('ix_archiving_created_at'), table_name='archiving')
    op.drop_index(op.f('ix_archiving_id'), table_name='archiving')
    op.drop_table('archiving')
