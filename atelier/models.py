"""
SQLAlchemy models for the application.
All database models inherit from Base (declarative base).

List-valued columns (tags, ranges, embeddings, gallery image lists inside post
documents) are stored as JSON so the schema runs on PostgreSQL and SQLite.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from atelier.database import Base


ROLE_USER = "user"
ROLE_EDITOR = "editor"
ROLE_SUB_ADMIN = "sub-admin"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_EDITOR, ROLE_SUB_ADMIN, ROLE_ADMIN)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Account profile.
    The role column drives every permission predicate.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=ROLE_USER, index=True)
    nickname = Column(String, nullable=True)
    name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    tel = Column(String, nullable=True)
    status = Column(String(20), nullable=False, default="active")
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class GalleryItem(Base):
    """
    Gallery image with curator metadata and AI-derived analysis.
    """
    __tablename__ = "gallery"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=False)
    image_width = Column(Integer, nullable=True)
    image_height = Column(Integer, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    category = Column(String, nullable=True)
    range = Column(JSON, nullable=False, default=list)
    author = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    embedding = Column(JSON(none_as_null=True), nullable=True)
    gemini_category = Column(String(32), nullable=True)
    gemini_description = Column(Text, nullable=True)
    gemini_tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)


class GalleryScrap(Base):
    """A user's bookmark on a gallery item."""
    __tablename__ = "gallery_scraps"
    __table_args__ = (UniqueConstraint("gallery_id", "user_id", name="uq_gallery_scraps_item_user"),)

    id = Column(Integer, primary_key=True)
    gallery_id = Column(Integer, ForeignKey("gallery.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class PostCategory(Base):
    """Blog category, ordered per post type."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False, unique=True)
    type = Column(String(20), nullable=False, default="blog", index=True)
    order_index = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Post(Base):
    """
    Blog entry.
    content holds the editor document tree ({"type": "doc", "content": [...]}).
    published_at is set on the first draft -> published transition and cleared
    on unpublish.
    """
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(20), nullable=False, default="blog", index=True)
    title = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    summary = Column(Text, nullable=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    content = Column(JSON, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    title_style = Column(String(20), nullable=False, default="text")
    title_image_url = Column(String, nullable=True)
    author_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True), nullable=True, index=True)
    view_count = Column(Integer, nullable=False, default=0)
    scrap_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)


class PostSlugHistory(Base):
    """Previous slugs of a post, so old links keep resolving."""
    __tablename__ = "post_slug_history"

    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    old_slug = Column(String, nullable=False, index=True)
    new_slug = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class PostView(Base):
    """One counted view, keyed by a hash of the visitor's IP and user agent."""
    __tablename__ = "post_views"

    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    visitor_hash = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class PostScrap(Base):
    __tablename__ = "post_scraps"
    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_post_scraps_post_user"),)

    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Reference(Base):
    """
    Curated external link.
    range holds the reference category names the entry belongs to.
    """
    __tablename__ = "references"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    logo_url = Column(String, nullable=False)
    category = Column(String, nullable=True)
    range = Column(JSON, nullable=False, default=list)
    clicks = Column(Integer, nullable=False, default=0)
    author = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class ReferenceCategory(Base):
    __tablename__ = "reference_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class ReferenceScrap(Base):
    __tablename__ = "reference_scraps"
    __table_args__ = (UniqueConstraint("reference_id", "user_id", name="uq_reference_scraps_reference_user"),)

    id = Column(Integer, primary_key=True)
    reference_id = Column(Integer, ForeignKey("references.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Banner(Base):
    """
    Homepage promotional entry.
    A continuous banner ignores its date window; otherwise it is shown only
    between start_date and end_date.
    """
    __tablename__ = "banners"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    subtitle = Column(String, nullable=True)
    label = Column(String, nullable=True)
    image_url = Column(String, nullable=False)
    link = Column(String, nullable=True)
    is_continuous = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    order_index = Column(Integer, nullable=False, default=0, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Archiving(Base):
    """
    Archived external link with a thumbnail for the dashboard and the original
    image for public pages. range holds archiving category names.
    """
    __tablename__ = "archiving"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String, nullable=False)
    image_url = Column(String, nullable=False)
    image_original = Column(String, nullable=True)
    category = Column(String, nullable=True)
    range = Column(JSON, nullable=False, default=list)
    clicks = Column(Integer, nullable=False, default=0)
    author = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class ArchivingCategory(Base):
    __tablename__ = "archiving_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class SiteSettings(Base):
    """Single-row site identity shown in the public header and footer."""
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True)
    site_name = Column(String, nullable=False, default="Archiving")
    site_description = Column(Text, nullable=True)
    site_language = Column(String(16), nullable=False, default="ko_KR")
    organization_name = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)
    favicon_url = Column(String, nullable=True)
    theme_color = Column(String(16), nullable=False, default="#ffffff")
    updated_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)
