"""
Blog post routes.
Public listing and slug lookup, dashboard CRUD with role-based ownership rules,
publish lifecycle, view counting, bookmarks and post categories.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, delete, func, or_
from datetime import timedelta
from typing import Optional
import hashlib
import logging

from atelier.config import settings
from atelier.database import get_db
from atelier.editor.document import DocumentError, iter_image_urls, replace_image_urls, validate_document
from atelier.models import (
    Post,
    PostCategory,
    PostScrap,
    PostSlugHistory,
    PostView,
    User,
    ROLE_ADMIN,
    utcnow,
)
from atelier.schemas import (
    AuthorSummary,
    CategoryCreate,
    CategoryResponse,
    PostCreate,
    PostDetailResponse,
    PostResponse,
    PostSummaryResponse,
    PostTextRequest,
    PostUpdate,
    PublishRequest,
)
from atelier.services.image_analysis import ImageAnalysisError
from atelier.services.post_assist import NotEnoughContent, PostAssistant, get_post_assistant
from atelier.services.post_images import move_temp_images
from atelier.utils.jwt_auth import get_current_user, get_optional_user, require_roles
from atelier.utils.permissions import EDITOR_ROLES, can_delete_post, can_edit_post, post_visibility_scope
from atelier.utils.rate_limit import limiter, RATE_LIMITS
from atelier.utils.slugify import generate_slug, is_valid_slug

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts")

REQUIRED_POST_FIELDS = ["title", "slug", "content"]
INVALID_SLUG_MESSAGE = "Slug may only contain lowercase letters, digits and single hyphens"


# --- helpers ----------------------------------------------------------------

async def _get_post_or_404(db: AsyncSession, post_id: int) -> Post:
    result = await db.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if not post:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Post not found", "detail": f"Post ID {post_id} does not exist"}
        )
    return post


async def _get_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def _ensure_post_permission(db: AsyncSession, post: Post, user: User, action: str = "edit") -> None:
    """Raise 403 unless the user's role allows acting on this post."""
    author = await _get_user(db, post.author_id)
    author_role = author.role if author else None
    check = can_delete_post if action == "delete" else can_edit_post

    if not check(user.id, user.role, post.author_id, author_role):
        logger.warning(f"User {user.id} ({user.role}) denied {action} on post {post.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": f"You do not have permission to {action} this post"}
        )


async def _can_see_post(db: AsyncSession, post: Post, user: Optional[User]) -> bool:
    """Drafts are only visible to users allowed to edit them."""
    if post.is_published:
        return True
    if user is None:
        return False
    author = await _get_user(db, post.author_id)
    return can_edit_post(user.id, user.role, post.author_id, author.role if author else None)


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = select(Post.id).where(Post.slug == slug)
    if exclude_id is not None:
        query = query.where(Post.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.first() is not None


def _validate_content(content: dict) -> None:
    try:
        validate_document(content)
    except DocumentError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid document", "detail": str(e)}
        )


async def _relocate_images(post: Post, user_id: str) -> None:
    """Move temp uploads referenced by the post into its own folder and rewrite URLs."""
    urls = list(iter_image_urls(post.content))
    if post.title_image_url:
        urls.append(post.title_image_url)

    mapping = await move_temp_images(urls, user_id, post.type, post.id)
    if not mapping:
        return

    post.content = replace_image_urls(post.content, mapping)
    if post.title_image_url in mapping:
        post.title_image_url = mapping[post.title_image_url]


async def _post_detail(db: AsyncSession, post: Post, user: Optional[User]) -> PostDetailResponse:
    detail = PostDetailResponse.model_validate(post)

    author = await _get_user(db, post.author_id)
    detail.author = AuthorSummary.model_validate(author) if author else None

    if user is not None:
        result = await db.execute(
            select(PostScrap.id).where(PostScrap.post_id == post.id, PostScrap.user_id == user.id)
        )
        detail.userScraped = result.first() is not None

    detail.currentSlug = post.slug
    return detail


def _visitor_hash(request: Request) -> str:
    """sha256 of "ip-user_agent"; the IP comes from the proxy chain when present."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")
    user_agent = request.headers.get("user-agent", "unknown")
    return hashlib.sha256(f"{ip}-{user_agent}".encode("utf-8")).hexdigest()


# --- listing ----------------------------------------------------------------

@router.get("")
async def list_published_posts(
    type: str = "blog",
    limit: int = Query(12, ge=1, le=100),
    offset: int = Query(0, ge=0),
    category_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Published posts, newest publication first.

    Args:
        type: Post type
        limit: Page size
        offset: Number of posts to skip
        category_id: Category filter ("all" or empty disables it)
    """
    try:
        conditions = [Post.type == type, Post.is_published.is_(True), Post.published_at.is_not(None)]
        if category_id and category_id != "all":
            if not category_id.isdigit():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": "Invalid category_id"}
                )
            conditions.append(Post.category_id == int(category_id))

        count_result = await db.execute(select(func.count(Post.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Post)
            .where(*conditions)
            .order_by(Post.published_at.desc(), Post.id.desc())
            .offset(offset)
            .limit(limit)
        )
        posts = result.scalars().all()

        return {
            "data": [PostSummaryResponse.model_validate(post) for post in posts],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < total,
            },
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching posts: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve posts", "detail": str(e)}
        )


@router.get("/admin")
async def list_dashboard_posts(
    type: str = "blog",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Dashboard post list, drafts included.
    admin sees everything, sub-admin everything not written by an admin,
    editor only their own posts.
    """
    try:
        conditions = [Post.type == type]
        scope = post_visibility_scope(user.role)
        if scope == "non_admin":
            admin_ids = select(User.id).where(User.role == ROLE_ADMIN)
            conditions.append(or_(Post.author_id.is_(None), Post.author_id.not_in(admin_ids)))
        elif scope == "own":
            conditions.append(Post.author_id == user.id)

        count_result = await db.execute(select(func.count(Post.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Post)
            .where(*conditions)
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset(offset)
            .limit(limit)
        )
        posts = result.scalars().all()

        logger.info(f"Dashboard list for {user.id} ({user.role}, scope={scope}): {len(posts)}/{total}")

        return {
            "data": [PostSummaryResponse.model_validate(post) for post in posts],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + limit < total,
            },
        }

    except Exception as e:
        logger.error(f"Error fetching dashboard posts: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve posts", "detail": str(e)}
        )


# --- writing assistance -----------------------------------------------------

def get_assistant() -> PostAssistant:
    """FastAPI dependency wrapping a missing API key as a 500."""
    try:
        return get_post_assistant()
    except ImageAnalysisError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": str(e)}
        )


@router.post("/generate-summary")
@limiter.limit(RATE_LIMITS["generate"])
async def generate_post_summary(
    request: Request,
    payload: PostTextRequest,
    user: User = Depends(require_roles(*EDITOR_ROLES)),
    assistant: PostAssistant = Depends(get_assistant),
):
    """
    Korean preview summary for the post card. Bodies under 20 characters
    return an empty summary.

    Raises:
        HTTPException: 400 without a title and body, 500 if generation fails
    """
    try:
        summary = await assistant.summarize(payload.title, payload.subtitle, payload.content)
        return {"success": True, "summary": summary}

    except NotEnoughContent as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(e)}
        )
    except Exception as e:
        logger.error(f"Summary generation failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Summary generation failed", "detail": str(e)}
        )


@router.post("/generate-tags")
@limiter.limit(RATE_LIMITS["generate"])
async def generate_post_tags(
    request: Request,
    payload: PostTextRequest,
    user: User = Depends(require_roles(*EDITOR_ROLES)),
    assistant: PostAssistant = Depends(get_assistant),
):
    """
    Raises:
        HTTPException: 400 when there is too little text, 500 if generation fails
    """
    try:
        tags = await assistant.suggest_tags(payload.title, payload.subtitle, payload.content)
        return {"success": True, "tags": tags}

    except NotEnoughContent as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(e)}
        )
    except Exception as e:
        logger.error(f"Tag generation failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Tag generation failed", "detail": str(e)}
        )


# --- categories -------------------------------------------------------------

@router.get("/categories")
async def list_categories(type: str = "blog", db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(
            select(PostCategory)
            .where(PostCategory.type == type)
            .order_by(PostCategory.order_index.asc())
        )
        return {"categories": [CategoryResponse.model_validate(c) for c in result.scalars().all()]}

    except Exception as e:
        logger.error(f"Error fetching categories: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve categories", "detail": str(e)}
        )


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """New categories go to the end of their type's ordering with a timestamped slug."""
    try:
        max_result = await db.execute(
            select(func.max(PostCategory.order_index)).where(PostCategory.type == payload.type)
        )
        max_order = max_result.scalar() or 0

        category = PostCategory(
            name=payload.name.strip(),
            slug=generate_slug(payload.name, True),
            type=payload.type,
            order_index=max_order + 1,
        )
        db.add(category)
        await db.flush()
        await db.refresh(category)

        logger.info(f"Created category {category.id} ({category.slug}) order {category.order_index}")

        return {"category": CategoryResponse.model_validate(category)}

    except Exception as e:
        logger.error(f"Error creating category: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create category", "detail": str(e)}
        )


@router.delete("/categories")
async def delete_category(
    id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Delete a category.

    Raises:
        HTTPException: 400 while any post still uses the category, 404 if not found
    """
    try:
        result = await db.execute(select(PostCategory).where(PostCategory.id == id))
        category = result.scalar_one_or_none()
        if not category:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Category not found"}
            )

        in_use = await db.execute(select(Post.id).where(Post.category_id == id).limit(1))
        if in_use.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Category is used by existing posts and cannot be deleted"}
            )

        await db.delete(category)
        await db.flush()

        logger.info(f"Deleted category {id}")

        return {"message": "Category deleted"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting category {id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete category", "detail": str(e)}
        )


# --- slug lookups -----------------------------------------------------------

@router.get("/by-slug/{slug}", response_model=PostDetailResponse)
async def get_post_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """
    Public post page lookup.
    Old slugs resolve through the slug history; currentSlug tells the client where to redirect.
    """
    try:
        result = await db.execute(select(Post).where(Post.slug == slug, Post.is_published.is_(True)))
        post = result.scalar_one_or_none()

        if post is None:
            history = await db.execute(
                select(PostSlugHistory.post_id)
                .where(PostSlugHistory.old_slug == slug)
                .order_by(PostSlugHistory.created_at.desc(), PostSlugHistory.id.desc())
                .limit(1)
            )
            post_id = history.scalar_one_or_none()
            if post_id is not None:
                result = await db.execute(select(Post).where(Post.id == post_id, Post.is_published.is_(True)))
                post = result.scalar_one_or_none()
                if post is not None:
                    logger.info(f"Resolved old slug '{slug}' to '{post.slug}'")

        if post is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Post not found"}
            )

        return await _post_detail(db, post, user)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching post by slug '{slug}': {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve post", "detail": str(e)}
        )


@router.get("/slug/{slug}")
async def get_post_by_slug_any_state(
    slug: str,
    type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """Dashboard lookup by slug, drafts included."""
    try:
        query = select(Post).where(Post.slug == slug)
        if type:
            query = query.where(Post.type == type)
        result = await db.execute(query)
        post = result.scalar_one_or_none()

        if post is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Post not found"}
            )

        return {"data": PostResponse.model_validate(post)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching post by slug '{slug}': {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve post", "detail": str(e)}
        )


# --- CRUD -------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Save a new post as a draft.
    Images uploaded to the author's temp folder are moved into the post's folder.

    Raises:
        HTTPException: 400 for missing fields, invalid or duplicate slug, or an
            invalid document; 500 if save fails
    """
    missing = [field for field in REQUIRED_POST_FIELDS if not getattr(payload, field)]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing required fields", "required": REQUIRED_POST_FIELDS, "missing": missing}
        )

    if not is_valid_slug(payload.slug):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": INVALID_SLUG_MESSAGE}
        )

    _validate_content(payload.content)

    try:
        if await _slug_taken(db, payload.slug):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Slug already exists"}
            )

        post = Post(
            type=payload.type,
            title=payload.title,
            subtitle=payload.subtitle or None,
            summary=payload.summary or None,
            slug=payload.slug,
            content=payload.content,
            category_id=payload.category_id or None,
            tags=payload.tags,
            title_style=payload.title_style,
            title_image_url=payload.title_image_url or None,
            author_id=user.id,
            is_published=False,
        )
        db.add(post)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Slug already exists"}
            )

        await _relocate_images(post, user.id)
        await db.flush()
        await db.refresh(post)

        logger.info(f"Created draft post {post.id} '{post.slug}' by {user.id}")

        return {"message": "Post saved", "data": PostResponse.model_validate(post)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating post: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create post", "detail": str(e)}
        )


@router.get("/{post_id}")
async def get_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    try:
        post = await _get_post_or_404(db, post_id)
        if not await _can_see_post(db, post, user):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Post not found"}
            )
        return {"data": PostResponse.model_validate(post)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching post {post_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve post", "detail": str(e)}
        )


@router.put("/{post_id}")
async def update_post(
    post_id: int,
    payload: PostUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Update a post.
    A slug change is validated, checked for collisions and recorded in the slug history.

    Returns:
        dict: message, updated post and slugChanged

    Raises:
        HTTPException: 400 for invalid data or slug collision, 403 without
            permission, 404 if not found, 500 if update fails
    """
    try:
        post = await _get_post_or_404(db, post_id)
        await _ensure_post_permission(db, post, user, "edit")

        changes = payload.model_dump(exclude_unset=True)

        cleared = [field for field in REQUIRED_POST_FIELDS if field in changes and not changes[field]]
        if cleared:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Missing required fields", "required": REQUIRED_POST_FIELDS, "missing": cleared}
            )

        old_slug = post.slug
        new_slug = changes.get("slug", old_slug)
        slug_changed = new_slug != old_slug

        if slug_changed:
            if not is_valid_slug(new_slug):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": INVALID_SLUG_MESSAGE}
                )
            if await _slug_taken(db, new_slug, exclude_id=post_id):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": "Slug already exists"}
                )

        if "content" in changes:
            _validate_content(changes["content"])

        for field in ("subtitle", "summary", "title_image_url", "category_id"):
            if field in changes and not changes[field]:
                changes[field] = None

        for field, value in changes.items():
            setattr(post, field, value)
        post.updated_at = utcnow()

        if slug_changed:
            db.add(PostSlugHistory(post_id=post_id, old_slug=old_slug, new_slug=new_slug))
            logger.info(f"Post {post_id} slug changed: '{old_slug}' -> '{new_slug}'")

        if "content" in changes or "title_image_url" in changes:
            await _relocate_images(post, user.id)

        await db.flush()
        await db.refresh(post)

        return {
            "message": "Post updated",
            "data": PostResponse.model_validate(post),
            "slugChanged": slug_changed,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating post {post_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update post", "detail": str(e)}
        )


@router.delete("/{post_id}")
async def delete_post(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        post = await _get_post_or_404(db, post_id)
        await _ensure_post_permission(db, post, user, "delete")

        await db.execute(delete(PostView).where(PostView.post_id == post_id))
        await db.execute(delete(PostScrap).where(PostScrap.post_id == post_id))
        await db.execute(delete(PostSlugHistory).where(PostSlugHistory.post_id == post_id))
        await db.delete(post)
        await db.flush()

        logger.info(f"Deleted post {post_id} by {user.id}")

        return {"message": "Post deleted"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting post {post_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete post", "detail": str(e)}
        )


@router.patch("/{post_id}/publish")
async def set_publish_state(
    post_id: int,
    payload: PublishRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Publish or unpublish a post.
    published_at is stamped on the draft -> published transition, kept while
    the post stays published and cleared on unpublish.
    """
    try:
        post = await _get_post_or_404(db, post_id)
        await _ensure_post_permission(db, post, user, "edit")

        if payload.is_published:
            if not post.is_published or post.published_at is None:
                post.published_at = utcnow()
        else:
            post.published_at = None
        post.is_published = payload.is_published
        post.updated_at = utcnow()

        await db.flush()
        await db.refresh(post)

        logger.info(f"Post {post_id} is_published={post.is_published} by {user.id}")

        return {
            "message": "Post published" if post.is_published else "Post unpublished",
            "data": PostResponse.model_validate(post),
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing publish state of post {post_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to change publish state", "detail": str(e)}
        )


# --- views and bookmarks ----------------------------------------------------

@router.get("/{post_id}/view", response_model=PostDetailResponse)
async def get_post_view(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """Post detail with author and the caller's bookmark state."""
    try:
        post = await _get_post_or_404(db, post_id)
        if not await _can_see_post(db, post, user):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Post not found"}
            )
        return await _post_detail(db, post, user)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching post view {post_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve post", "detail": str(e)}
        )


@router.post("/{post_id}/view")
@limiter.limit(RATE_LIMITS["view"])
async def count_post_view(
    request: Request,
    post_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Count a view at most once per visitor per VIEW_DEDUP_MINUTES.

    Returns:
        dict: viewCount and whether this call incremented it
    """
    try:
        post = await _get_post_or_404(db, post_id)
        visitor = _visitor_hash(request)
        window_start = utcnow() - timedelta(minutes=settings.VIEW_DEDUP_MINUTES)

        recent = await db.execute(
            select(PostView.id)
            .where(
                PostView.post_id == post_id,
                PostView.visitor_hash == visitor,
                PostView.created_at >= window_start,
            )
            .limit(1)
        )
        if recent.first() is not None:
            return {"message": "Already viewed", "viewCount": post.view_count, "incremented": False}

        db.add(PostView(post_id=post_id, visitor_hash=visitor))
        await db.execute(
            update(Post).where(Post.id == post_id).values(view_count=Post.view_count + 1)
        )
        await db.flush()
        await db.refresh(post)

        return {"message": "View counted", "viewCount": post.view_count, "incremented": True}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error counting view for post {post_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to count view", "detail": str(e)}
        )


@router.post("/{post_id}/scrap")
async def toggle_post_scrap(
    post_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Toggle the caller's bookmark; scrap_count never drops below zero."""
    try:
        post = await _get_post_or_404(db, post_id)

        result = await db.execute(
            select(PostScrap).where(PostScrap.post_id == post_id, PostScrap.user_id == user.id)
        )
        existing = result.scalar_one_or_none()

        if existing:
            await db.delete(existing)
            post.scrap_count = max(0, (post.scrap_count or 0) - 1)
            scraped = False
        else:
            db.add(PostScrap(post_id=post_id, user_id=user.id))
            post.scrap_count = (post.scrap_count or 0) + 1
            scraped = True

        await db.flush()

        return {"scraped": scraped, "scrapCount": post.scrap_count}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling scrap on post {post_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to toggle scrap", "detail": str(e)}
        )
