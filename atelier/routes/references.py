"""
Reference directory routes.
Curated external links with click counting, bookmarks and a category list.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, cast, or_, String
from typing import Optional
from urllib.parse import urlparse
import logging
import math

from atelier.database import get_db
from atelier.models import Reference, ReferenceCategory, ReferenceScrap, User, utcnow
from atelier.schemas import (
    BulkDeleteRequest,
    ReferenceCategoryCreate,
    ReferenceCategoryResponse,
    ReferenceCreate,
    ReferenceResponse,
    ReferenceUpdate,
)
from atelier.utils.jwt_auth import get_current_user, get_optional_user, require_roles
from atelier.utils.permissions import MANAGER_ROLES, can_edit_reference
from atelier.utils.rate_limit import limiter, RATE_LIMITS, is_authenticated_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/references")
categories_router = APIRouter(prefix="/references-categories")

SORT_FIELDS = {
    "created_at": Reference.created_at,
    "clicks": Reference.clicks,
    "title": Reference.title,
}


def is_valid_url(url: Optional[str]) -> bool:
    """Absolute http(s) URL with a host."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


async def _get_reference_or_404(db: AsyncSession, reference_id: int) -> Reference:
    result = await db.execute(select(Reference).where(Reference.id == reference_id))
    reference = result.scalar_one_or_none()
    if not reference:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Reference not found", "detail": f"Reference ID {reference_id} does not exist"}
        )
    return reference


@router.get("")
async def list_references(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    sort: str = "created_at",
    order: str = "desc",
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated reference listing.

    Args:
        category: Only references whose range contains this category name
        sort: created_at, clicks or title (anything else falls back to created_at)
        order: "asc" or "desc"
        search: Substring matched against title and description
    """
    try:
        conditions = []
        if category:
            conditions.append(cast(Reference.range, String).contains(f'"{category}"', autoescape=True))
        if search:
            conditions.append(or_(
                Reference.title.ilike(f"%{search}%"),
                Reference.description.ilike(f"%{search}%"),
            ))

        sort_column = SORT_FIELDS.get(sort, Reference.created_at)
        ordering = sort_column.asc() if order == "asc" else sort_column.desc()

        count_result = await db.execute(select(func.count(Reference.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Reference)
            .where(*conditions)
            .order_by(ordering, Reference.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        references = result.scalars().all()

        return {
            "success": True,
            "data": [ReferenceResponse.model_validate(r) for r in references],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    except Exception as e:
        logger.error(f"Error fetching references: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve references", "detail": str(e)}
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_reference(
    payload: ReferenceCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Raises:
        HTTPException: 400 if a required field is missing or the URL is invalid
    """
    if not (payload.title and payload.url and payload.image_url and payload.logo_url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "title, url, image_url, and logo_url are required"}
        )
    if not is_valid_url(payload.url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid URL format"}
        )

    try:
        reference = Reference(
            title=payload.title,
            description=payload.description or None,
            url=payload.url,
            image_url=payload.image_url,
            logo_url=payload.logo_url,
            category=payload.category,
            range=payload.range,
            clicks=0,
            author=user.id,
        )
        db.add(reference)
        await db.flush()
        await db.refresh(reference)

        logger.info(f"Created reference {reference.id} by {user.id}")

        return {"success": True, "data": ReferenceResponse.model_validate(reference)}

    except Exception as e:
        logger.error(f"Error creating reference: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create reference", "detail": str(e)}
        )


@router.delete("/bulk")
async def bulk_delete_references(
    payload: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    if not payload.ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "ids must be a non-empty list"}
        )

    try:
        await db.execute(delete(ReferenceScrap).where(ReferenceScrap.reference_id.in_(payload.ids)))
        result = await db.execute(delete(Reference).where(Reference.id.in_(payload.ids)))
        deleted = result.rowcount

        logger.info(f"Bulk deleted {deleted} reference(s) by {user.id}")

        return {"success": True, "deleted": deleted, "message": f"Deleted {deleted} references"}

    except Exception as e:
        logger.error(f"Error bulk deleting references: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete references", "detail": str(e)}
        )


@router.get("/{reference_id}")
async def get_reference(reference_id: int, db: AsyncSession = Depends(get_db)):
    try:
        reference = await _get_reference_or_404(db, reference_id)
        return {"success": True, "data": ReferenceResponse.model_validate(reference)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching reference {reference_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve reference", "detail": str(e)}
        )


@router.put("/{reference_id}")
@limiter.limit(RATE_LIMITS["click"], exempt_when=is_authenticated_request)
async def update_reference(
    request: Request,
    reference_id: int,
    payload: ReferenceUpdate,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
):
    """
    Update a reference.

    A body carrying clicks is an anonymous click: the counter is incremented by
    one and nothing else changes. Any other update needs the owner or admin/sub-admin.
    Only uncredentialed requests count against the click rate limit.
    """
    try:
        reference = await _get_reference_or_404(db, reference_id)

        if payload.clicks is not None:
            await db.execute(
                update(Reference).where(Reference.id == reference_id).values(clicks=Reference.clicks + 1)
            )
            await db.flush()
            await db.refresh(reference)
            return {"success": True, "data": ReferenceResponse.model_validate(reference)}

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"error": "Unauthorized", "message": "Authentication required"}
            )
        if not can_edit_reference(user.id, user.role, reference.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to edit this reference"}
            )

        changes = payload.model_dump(exclude_unset=True, exclude={"clicks"})
        if "url" in changes and not is_valid_url(changes["url"]):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "Invalid URL format"}
            )
        if "range" in changes and changes["range"] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "range cannot be null"}
            )
        for field in ("title", "image_url", "logo_url"):
            if field in changes and not changes[field]:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": f"{field} cannot be empty"}
                )

        for field, value in changes.items():
            setattr(reference, field, value)
        reference.updated_at = utcnow()

        await db.flush()
        await db.refresh(reference)

        logger.info(f"Updated reference {reference_id} by {user.id}: {sorted(changes)}")

        return {"success": True, "data": ReferenceResponse.model_validate(reference)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating reference {reference_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update reference", "detail": str(e)}
        )


@router.delete("/{reference_id}")
async def delete_reference(
    reference_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        reference = await _get_reference_or_404(db, reference_id)
        if not can_edit_reference(user.id, user.role, reference.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to delete this reference"}
            )

        await db.execute(delete(ReferenceScrap).where(ReferenceScrap.reference_id == reference_id))
        await db.delete(reference)
        await db.flush()

        logger.info(f"Deleted reference {reference_id} by {user.id}")

        return {"success": True, "message": "Reference deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting reference {reference_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete reference", "detail": str(e)}
        )


@router.post("/{reference_id}/scrap")
async def toggle_reference_scrap(
    reference_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        await _get_reference_or_404(db, reference_id)

        result = await db.execute(
            select(ReferenceScrap).where(
                ReferenceScrap.reference_id == reference_id,
                ReferenceScrap.user_id == user.id,
            )
        )
        existing = result.scalar_one_or_none()

        if existing:
            await db.delete(existing)
            scraped = False
        else:
            db.add(ReferenceScrap(reference_id=reference_id, user_id=user.id))
            scraped = True
        await db.flush()

        count_result = await db.execute(
            select(func.count(ReferenceScrap.id)).where(ReferenceScrap.reference_id == reference_id)
        )

        return {"success": True, "scraped": scraped, "scrapCount": count_result.scalar() or 0}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error toggling scrap on reference {reference_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to toggle scrap", "detail": str(e)}
        )


# --- categories -------------------------------------------------------------

@categories_router.get("")
async def list_reference_categories(db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(ReferenceCategory).order_by(ReferenceCategory.name.asc()))
        return {
            "success": True,
            "data": [ReferenceCategoryResponse.model_validate(c) for c in result.scalars().all()],
        }

    except Exception as e:
        logger.error(f"Error fetching reference categories: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve categories", "detail": str(e)}
        )


@categories_router.post("", status_code=status.HTTP_201_CREATED)
async def create_reference_category(
    payload: ReferenceCategoryCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Raises:
        HTTPException: 409 if a category with the same name exists
    """
    name = payload.name.strip()
    try:
        existing = await db.execute(select(ReferenceCategory.id).where(ReferenceCategory.name == name))
        if existing.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "Category already exists"}
            )

        category = ReferenceCategory(name=name, description=payload.description or None)
        db.add(category)
        await db.flush()
        await db.refresh(category)

        logger.info(f"Created reference category {category.id} '{name}'")

        return {"success": True, "data": ReferenceCategoryResponse.model_validate(category)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating reference category: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create category", "detail": str(e)}
        )
