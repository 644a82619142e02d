"""
Gallery routes.
Public listing and detail, curator CRUD, AI analysis, embedding backfill and
similar-image search.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, cast, or_, String
from typing import Optional
import hmac
import logging
import math

from atelier.config import settings
from atelier.database import get_db
from atelier.models import GalleryItem, GalleryScrap, User, ROLE_ADMIN
from atelier.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    GalleryItemCreate,
    GalleryItemResponse,
    GalleryItemUpdate,
    MigrateRequest,
    SimilarRequest,
)
from atelier.services.cloudinary_service import delete_image_by_url
from atelier.services.image_analysis import (
    ImageAnalysisError,
    ImageAnalyzer,
    fetch_image,
    get_image_analyzer,
)
from atelier.services.similarity import rank_similar
from atelier.utils.image_converter import get_image_dimensions
from atelier.utils.jwt_auth import get_current_user, get_optional_user, require_roles
from atelier.utils.permissions import EDITOR_ROLES, can_edit_gallery_item, can_manage_gallery
from atelier.utils.rate_limit import limiter, RATE_LIMITS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gallery")

TOP_TAGS_LIMIT = 10


def get_analyzer() -> ImageAnalyzer:
    """FastAPI dependency wrapping analyzer construction errors as a 500."""
    try:
        return get_image_analyzer()
    except ImageAnalysisError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": str(e)}
        )


async def require_migration_access(
    x_migration_token: Optional[str] = Header(None, alias="X-Migration-Token"),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[User]:
    """
    Admit batch migration callers.
    A matching X-Migration-Token bypasses the role check; otherwise an editor+ user is required.
    """
    if x_migration_token and settings.MIGRATION_TOKEN and hmac.compare_digest(
        x_migration_token, settings.MIGRATION_TOKEN
    ):
        logger.info("Migration token accepted")
        return None

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "Authentication required"}
        )
    if not can_manage_gallery(user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Forbidden", "message": "Gallery management requires editor role"}
        )
    return user


async def require_admin_api_key(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Admit the maintenance API key as a bearer token, or an admin user."""
    if settings.ADMIN_API_KEY and authorization and hmac.compare_digest(
        authorization, f"Bearer {settings.ADMIN_API_KEY}"
    ):
        return None

    user = await get_optional_user(request, authorization, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized"}
        )
    if user.role != ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Forbidden", "message": "Admin role required"}
        )
    return None


async def _get_item_or_404(db: AsyncSession, item_id: int) -> GalleryItem:
    result = await db.execute(select(GalleryItem).where(GalleryItem.id == item_id))
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Gallery not found", "detail": f"Gallery ID {item_id} does not exist"}
        )
    return item


def _tag_condition(tag: str):
    """Matches items carrying the tag in either the curator or the AI tag list."""
    needle = f'"{tag}"'
    return or_(
        cast(GalleryItem.tags, String).contains(needle, autoescape=True),
        cast(GalleryItem.gemini_tags, String).contains(needle, autoescape=True),
    )


def _search_condition(word: str):
    return or_(
        GalleryItem.title.ilike(f"%{word}%"),
        GalleryItem.description.ilike(f"%{word}%"),
        GalleryItem.gemini_description.ilike(f"%{word}%"),
    )


@router.get("")
async def list_gallery(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    tags: str = "",
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated gallery listing, newest first.

    Args:
        page: 1-based page number
        limit: Items per page
        search: Whitespace separated words, all of which must match
        tags: Comma separated tags, all of which must match (tags or gemini_tags)
        db: Database session (injected by FastAPI dependency)

    Returns:
        dict: success, data, pagination and the applied filters

    Raises:
        HTTPException: 500 if database query fails
    """
    try:
        filter_tags = [tag.strip() for tag in tags.split(",") if tag.strip()]
        words = search.split()

        conditions = [_search_condition(word) for word in words]
        conditions.extend(_tag_condition(tag) for tag in filter_tags)

        count_result = await db.execute(
            select(func.count(GalleryItem.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await db.execute(
            select(GalleryItem)
            .where(*conditions)
            .order_by(GalleryItem.created_at.desc(), GalleryItem.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = result.scalars().all()

        logger.info(f"Retrieved {len(items)} gallery items (page {page}, total {total})")

        return {
            "success": True,
            "data": [GalleryItemResponse.from_item(item) for item in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
            "filters": {"search": search, "tags": filter_tags},
        }

    except Exception as e:
        logger.error(f"Error fetching gallery list: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve gallery", "detail": str(e)}
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_gallery_item(
    payload: GalleryItemCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*EDITOR_ROLES)),
):
    """
    Create a gallery item owned by the caller.

    Raises:
        HTTPException: 400 if title or image_url is missing, 500 if save fails
    """
    if not payload.title or not payload.image_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Title and image_url are required"}
        )

    try:
        item = GalleryItem(
            title=payload.title.strip(),
            description=payload.description,
            image_url=payload.image_url,
            image_width=payload.image_width,
            image_height=payload.image_height,
            tags=payload.tags,
            category=payload.category,
            range=payload.range,
            author=user.id,
            embedding=payload.embedding or None,
            gemini_category=payload.gemini_category,
            gemini_description=payload.gemini_description,
            gemini_tags=payload.gemini_tags,
        )
        db.add(item)
        await db.flush()
        await db.refresh(item)

        logger.info(f"Created gallery item {item.id} by user {user.id}")

        return {"success": True, "data": GalleryItemResponse.from_item(item)}

    except Exception as e:
        logger.error(f"Error creating gallery item: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create gallery item", "detail": str(e)}
        )


@router.post("/analyze", response_model=AnalyzeResponse)
@limiter.limit(RATE_LIMITS["analyze"])
async def analyze_gallery_image(
    request: Request,
    payload: AnalyzeRequest,
    user: User = Depends(require_roles(*EDITOR_ROLES)),
    analyzer: ImageAnalyzer = Depends(get_analyzer),
):
    """
    Run the Gemini analysis pipeline on an image URL.

    Returns:
        AnalyzeResponse: category, summary, visual_detail, tags, embedding

    Raises:
        HTTPException: 500 if the image cannot be fetched or the analysis is unusable
    """
    try:
        analysis = await analyzer.analyze(payload.image_url)
        return AnalyzeResponse(**analysis.to_dict())

    except ImageAnalysisError as e:
        logger.error(f"Image analysis failed for {payload.image_url}: {str(e)}")
        detail = {"error": str(e)}
        if e.raw is not None:
            detail["raw"] = e.raw
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
    except Exception as e:
        logger.error(f"Error analyzing image: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Image analysis failed", "detail": str(e)}
        )


@router.get("/migrate")
async def get_migration_status(db: AsyncSession = Depends(get_db)):
    """Embedding backfill progress."""
    try:
        total_result = await db.execute(select(func.count(GalleryItem.id)))
        total = total_result.scalar() or 0
        remaining_result = await db.execute(
            select(func.count(GalleryItem.id)).where(GalleryItem.embedding.is_(None))
        )
        remaining = remaining_result.scalar() or 0
        processed = total - remaining

        return {
            "success": True,
            "status": {
                "total": total,
                "processed": processed,
                "remaining": remaining,
                "percentage": round(processed / total * 100) if total else 0,
            },
        }

    except Exception as e:
        logger.error(f"Error fetching migration status: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve migration status", "detail": str(e)}
        )


@router.post("/migrate")
@limiter.limit(RATE_LIMITS["migrate"])
async def migrate_gallery(
    request: Request,
    payload: Optional[MigrateRequest] = None,
    db: AsyncSession = Depends(get_db),
    caller: Optional[User] = Depends(require_migration_access),
    analyzer: ImageAnalyzer = Depends(get_analyzer),
):
    """
    Analyse a batch of items that have no embedding yet.
    Items are processed one by one; a failing item is reported and skipped.

    Returns:
        dict: processed/failed counts, per-item results and totalRemaining
    """
    limit = payload.limit if payload else 5

    try:
        result = await db.execute(
            select(GalleryItem)
            .where(GalleryItem.embedding.is_(None))
            .order_by(GalleryItem.id.asc())
            .limit(limit)
        )
        items = result.scalars().all()

        if not items:
            return {
                "success": True,
                "message": "No images left to analyze",
                "processed": 0,
                "failed": 0,
                "totalRemaining": 0,
                "processedItems": [],
                "failedItems": [],
            }

        processed_items = []
        failed_items = []

        for item in items:
            try:
                analysis = await analyzer.analyze(item.image_url, tolerate_parse_errors=True)
                item.embedding = analysis.embedding
                item.gemini_category = analysis.category
                item.gemini_description = analysis.summary
                item.gemini_tags = analysis.tags
                await db.flush()
                processed_items.append({"id": item.id, "title": item.title, "status": "success"})
                logger.info(f"Migrated gallery item {item.id}")
            except Exception as e:
                logger.warning(f"Migration failed for gallery item {item.id}: {str(e)}")
                failed_items.append({
                    "id": item.id,
                    "title": item.title,
                    "status": "failed",
                    "error": str(e),
                })

        remaining_result = await db.execute(
            select(func.count(GalleryItem.id)).where(GalleryItem.embedding.is_(None))
        )

        return {
            "success": True,
            "processed": len(processed_items),
            "failed": len(failed_items),
            "totalRemaining": remaining_result.scalar() or 0,
            "processedItems": processed_items,
            "failedItems": failed_items,
        }

    except Exception as e:
        logger.error(f"Error running gallery migration: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Migration failed", "detail": str(e)}
        )


@router.get("/random")
async def random_gallery(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await db.execute(select(GalleryItem).order_by(func.random()).limit(limit))
        items = result.scalars().all()
        return {"success": True, "data": [GalleryItemResponse.from_item(item) for item in items]}

    except Exception as e:
        logger.error(f"Error fetching random gallery items: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve gallery", "detail": str(e)}
        )


@router.get("/tags/top")
async def top_tags(db: AsyncSession = Depends(get_db)):
    """Most frequent tags across curator and AI tag lists, for the filter bar."""
    try:
        result = await db.execute(select(GalleryItem.tags, GalleryItem.gemini_tags))

        counts = {}
        for tags, gemini_tags in result.all():
            for tag in (tags or []) + (gemini_tags or []):
                if isinstance(tag, str) and tag:
                    counts[tag] = counts.get(tag, 0) + 1

        ranked = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)[:TOP_TAGS_LIMIT]
        return {"success": True, "tags": [{"tag": tag, "count": count} for tag, count in ranked]}

    except Exception as e:
        logger.error(f"Error fetching top tags: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve tags", "detail": str(e)}
        )


@router.post("/dimensions")
async def update_dimensions(
    force: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    authorized: None = Depends(require_admin_api_key),
):
    """
    Backfill image_width/image_height by downloading each image.

    Args:
        force: Re-measure every item instead of only those without a width
        limit: Batch size
    """
    try:
        query = select(GalleryItem).order_by(GalleryItem.id.asc()).limit(limit)
        if not force:
            query = query.where(GalleryItem.image_width.is_(None))
        result = await db.execute(query)
        items = result.scalars().all()

        successful = 0
        failed = 0
        results = []

        for item in items:
            try:
                image = await fetch_image(item.image_url)
                dimensions = get_image_dimensions(image.data)
            except ImageAnalysisError as e:
                logger.warning(f"Failed to fetch image for gallery item {item.id}: {str(e)}")
                dimensions = None

            if dimensions is None:
                failed += 1
                results.append({"id": item.id, "status": "failed"})
                continue

            item.image_width, item.image_height = dimensions
            successful += 1
            results.append({"id": item.id, "status": "success", "width": dimensions[0], "height": dimensions[1]})

        await db.flush()
        logger.info(f"Image dimensions update: {successful} succeeded, {failed} failed")

        return {
            "success": True,
            "processed": len(items),
            "successful": successful,
            "failed": failed,
            "results": results,
        }

    except Exception as e:
        logger.error(f"Error updating image dimensions: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update image dimensions", "detail": str(e)}
        )


@router.get("/{item_id}")
async def get_gallery_item(item_id: int, db: AsyncSession = Depends(get_db)):
    try:
        item = await _get_item_or_404(db, item_id)
        count_result = await db.execute(
            select(func.count(GalleryScrap.id)).where(GalleryScrap.gallery_id == item_id)
        )
        return {
            "success": True,
            "data": GalleryItemResponse.from_item(item),
            "scrapCount": count_result.scalar() or 0,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching gallery item {item_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve gallery item", "detail": str(e)}
        )


@router.patch("/{item_id}")
async def update_gallery_item(
    item_id: int,
    payload: GalleryItemUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Partial update of a gallery item.

    Raises:
        HTTPException: 400 for a null or empty required field, 403 unless the caller
            owns the item or is admin/sub-admin,
            404 if not found, 500 if update fails
    """
    try:
        item = await _get_item_or_404(db, item_id)

        if not can_edit_gallery_item(user.id, user.role, item.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to edit this item"}
            )

        changes = payload.model_dump(exclude_unset=True)
        for field in ("title", "image_url", "tags", "range", "gemini_tags"):
            if field in changes and changes[field] is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": f"{field} cannot be null"}
                )
        for field in ("title", "image_url"):
            if field in changes and not changes[field].strip():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": f"{field} cannot be empty"}
                )

        for field, value in changes.items():
            setattr(item, field, value)

        await db.flush()
        await db.refresh(item)

        logger.info(f"Updated gallery item {item_id}: {sorted(changes)}")

        return {"success": True, "data": GalleryItemResponse.from_item(item)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating gallery item {item_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update gallery item", "detail": str(e)}
        )


@router.delete("/{item_id}")
async def delete_gallery_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Delete a gallery item and its stored image.
    A storage failure is logged and does not block removing the row.
    """
    try:
        item = await _get_item_or_404(db, item_id)

        if not can_edit_gallery_item(user.id, user.role, item.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to delete this item"}
            )

        try:
            await delete_image_by_url(item.image_url)
        except Exception as e:
            logger.warning(f"Failed to delete stored image for gallery item {item_id}: {str(e)}")

        await db.execute(delete(GalleryScrap).where(GalleryScrap.gallery_id == item_id))
        await db.delete(item)
        await db.flush()

        logger.info(f"Deleted gallery item {item_id}")

        return {"success": True, "message": "Gallery item deleted", "deleted_id": item_id}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting gallery item {item_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete gallery item", "detail": str(e)}
        )


@router.post("/{item_id}/similar")
async def similar_gallery_items(
    item_id: int,
    payload: Optional[SimilarRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Items whose embeddings are close to this item's.

    Raises:
        HTTPException: 400 if the item has no embedding, 404 if not found
    """
    limit = payload.limit if payload else 10

    try:
        item = await _get_item_or_404(db, item_id)
        if not item.embedding:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "No embedding found. Please re-analyze the image."}
            )

        result = await db.execute(
            select(GalleryItem).where(GalleryItem.id != item_id, GalleryItem.embedding.is_not(None))
        )
        candidates = result.scalars().all()

        ranked = rank_similar(
            item.embedding,
            ((candidate, candidate.embedding) for candidate in candidates),
            threshold=settings.SIMILARITY_THRESHOLD,
            limit=limit,
        )

        logger.info(f"Found {len(ranked)} similar items for gallery item {item_id} out of {len(candidates)}")

        return {
            "success": True,
            "data": [
                {**GalleryItemResponse.from_item(candidate).model_dump(), "similarity": round(score, 4)}
                for candidate, score in ranked
            ],
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error searching similar items for {item_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to search similar images", "detail": str(e)}
        )


@router.post("/{item_id}/scrap")
async def toggle_gallery_scrap(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Toggle the caller's bookmark on a gallery item."""
    try:
        await _get_item_or_404(db, item_id)

        result = await db.execute(
            select(GalleryScrap).where(GalleryScrap.gallery_id == item_id, GalleryScrap.user_id == user.id)
        )
        existing = result.scalar_one_or_none()

        if existing:
            await db.delete(existing)
            scraped = False
        else:
            db.add(GalleryScrap(gallery_id=item_id, user_id=user.id))
            scraped = True
        await db.flush()

        count_result = await db.execute(
            select(func.count(GalleryScrap.id)).where(GalleryScrap.gallery_id == item_id)
        )

        return {"success": True, "scraped": scraped, "scrapCount": count_result.scalar() or 0}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling scrap on gallery item {item_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to toggle scrap", "detail": str(e)}
        )
