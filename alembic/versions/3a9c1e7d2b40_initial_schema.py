"""initial_schema

Revision ID: 3a9c1e7d2b40
Revises:
Create Date: 2026-10-19 10:12:41.508231

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3a9c1e7d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('nickname', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('avatar_url', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('tel', sa.String(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)

    op.create_table(
        'gallery',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('image_width', sa.Integer(), nullable=True),
        sa.Column('image_height', sa.Integer(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('range', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('author', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('embedding', sa.JSON(), nullable=True),
        sa.Column('gemini_category', sa.String(32), nullable=True),
        sa.Column('gemini_description', sa.Text(), nullable=True),
        sa.Column('gemini_tags', sa.JSON(), nullable=False, server_default='[]'),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_gallery_id'), 'gallery', ['id'], unique=False)
    op.create_index(op.f('ix_gallery_author'), 'gallery', ['author'], unique=False)
    op.create_index(op.f('ix_gallery_created_at'), 'gallery', ['created_at'], unique=False)

    op.create_table(
        'gallery_scraps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('gallery_id', sa.Integer(), sa.ForeignKey('gallery.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('gallery_id', 'user_id', name='uq_gallery_scraps_item_user'),
    )
    op.create_index(op.f('ix_gallery_scraps_gallery_id'), 'gallery_scraps', ['gallery_id'], unique=False)

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False, unique=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='blog'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_categories_type'), 'categories', ['type'], unique=False)

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='blog'),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('subtitle', sa.String(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('content', sa.JSON(), nullable=False),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('title_style', sa.String(20), nullable=False, server_default='text'),
        sa.Column('title_image_url', sa.String(), nullable=True),
        sa.Column('author_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scrap_count', sa.Integer(), nullable=False, server_default='0'),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index(op.f('ix_posts_id'), 'posts', ['id'], unique=False)
    op.create_index(op.f('ix_posts_type'), 'posts', ['type'], unique=False)
    op.create_index(op.f('ix_posts_slug'), 'posts', ['slug'], unique=True)
    op.create_index(op.f('ix_posts_author_id'), 'posts', ['author_id'], unique=False)
    op.create_index(op.f('ix_posts_published_at'), 'posts', ['published_at'], unique=False)

    op.create_table(
        'post_slug_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('old_slug', sa.String(), nullable=False),
        sa.Column('new_slug', sa.String(), nullable=False),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_post_slug_history_post_id'), 'post_slug_history', ['post_id'], unique=False)
    op.create_index(op.f('ix_post_slug_history_old_slug'), 'post_slug_history', ['old_slug'], unique=False)

    op.create_table(
        'post_views',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('visitor_hash', sa.String(64), nullable=False),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_post_views_post_id'), 'post_views', ['post_id'], unique=False)
    op.create_index(op.f('ix_post_views_visitor_hash'), 'post_views', ['visitor_hash'], unique=False)

    op.create_table(
        'post_scraps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('post_id', 'user_id', name='uq_post_scraps_post_user'),
    )
    op.create_index(op.f('ix_post_scraps_post_id'), 'post_scraps', ['post_id'], unique=False)

    op.create_table(
        'references',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('url', sa.String(), nullable=False),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('logo_url', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('range', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('author', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )
    op.create_index(op.f('ix_references_id'), 'references', ['id'], unique=False)

    op.create_table(
        'reference_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.String(), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
    )

    op.create_table(
        'reference_scraps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference_id', sa.Integer(), sa.ForeignKey('references.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        _timestamp('created_at'),
        sa.UniqueConstraint('reference_id', 'user_id', name='uq_reference_scraps_reference_user'),
    )
    op.create_index(op.f('ix_reference_scraps_reference_id'), 'reference_scraps', ['reference_id'], unique=False)

    op.create_table(
        'banners',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('subtitle', sa.String(), nullable=True),
        sa.Column('label', sa.String(), nullable=True),
        sa.Column('image_url', sa.String(), nullable=False),
        sa.Column('link', sa.String(), nullable=True),
        sa.Column('is_continuous', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
    )
    op.create_index(op.f('ix_banners_order_index'), 'banners', ['order_index'], unique=False)


def downgrade() -> None:
    # Children before parents
    for table in (
        'banners',
        'reference_scraps',
        'reference_categories',
        'references',
        'post_scraps',
        'post_views',
        'post_slug_history',
        'posts',
        'categories',
        'gallery_scraps',
        'gallery',
        'users',
    ):
        op.drop_table(table)
