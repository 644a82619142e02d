"""
Archiving routes.
Archived external links with a dashboard thumbnail and the original image,
plus the archiving category list.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, cast, String
from typing import Optional
import logging
import math

from atelier.database import get_db
from atelier.models import Archiving, ArchivingCategory, User, utcnow
from atelier.routes.references import is_valid_url
from atelier.schemas import (
    ArchivingCategoryUpdate,
    ArchivingCreate,
    ArchivingResponse,
    ArchivingUpdate,
    BulkDeleteRequest,
    ReferenceCategoryCreate,
    ReferenceCategoryResponse,
)
from atelier.utils.jwt_auth import get_current_user, require_roles
from atelier.utils.permissions import MANAGER_ROLES, can_edit_archiving

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/archiving")
categories_router = APIRouter(prefix="/archiving-categories")

SORT_FIELDS = {
    "created_at": Archiving.created_at,
    "clicks": Archiving.clicks,
    "title": Archiving.title,
}


async def _get_archiving_or_404(db: AsyncSession, archiving_id: int) -> Archiving:
    result = await db.execute(select(Archiving).where(Archiving.id == archiving_id))
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Archiving not found", "detail": f"Archiving ID {archiving_id} does not exist"}
        )
    return item


async def _get_category_or_404(db: AsyncSession, category_id: int) -> ArchivingCategory:
    result = await db.execute(select(ArchivingCategory).where(ArchivingCategory.id == category_id))
    category = result.scalar_one_or_none()
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Category not found"}
        )
    return category


@router.get("")
async def list_archiving(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    sort: str = "created_at",
    order: str = "desc",
    db: AsyncSession = Depends(get_db),
):
    """
    Paginated archive listing.

    Args:
        category: Only items whose range contains this category name
        sort: created_at, clicks or title (anything else falls back to created_at)
        order: "asc" or "desc"
    """
    try:
        conditions = []
        if category:
            conditions.append(cast(Archiving.range, String).contains(f'"{category}"', autoescape=True))

        sort_column = SORT_FIELDS.get(sort, Archiving.created_at)
        ordering = sort_column.asc() if order == "asc" else sort_column.desc()

        count_result = await db.execute(select(func.count(Archiving.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Archiving)
            .where(*conditions)
            .order_by(ordering, Archiving.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return {
            "success": True,
            "data": [ArchivingResponse.model_validate(a) for a in result.scalars().all()],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    except Exception as e:
        logger.error(f"Error fetching archiving: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve archiving", "detail": str(e)}
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_archiving(
    payload: ArchivingCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Raises:
        HTTPException: 400 if title, url or image_url is missing or the URL is invalid
    """
    if not (payload.title and payload.url and payload.image_url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "title, url, and image_url are required"}
        )
    if not is_valid_url(payload.url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid URL format"}
        )

    try:
        item = Archiving(
            title=payload.title,
            description=payload.description or None,
            url=payload.url,
            image_url=payload.image_url,
            image_original=payload.image_original or None,
            category=payload.category,
            range=payload.range,
            clicks=0,
            author=user.id,
        )
        db.add(item)
        await db.flush()
        await db.refresh(item)

        logger.info(f"Created archiving {item.id} by {user.id}")

        return {"success": True, "data": ArchivingResponse.model_validate(item)}

    except Exception as e:
        logger.error(f"Error creating archiving: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create archiving", "detail": str(e)}
        )


@router.delete("/bulk")
async def bulk_delete_archiving(
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
        result = await db.execute(delete(Archiving).where(Archiving.id.in_(payload.ids)))
        deleted = result.rowcount

        logger.info(f"Bulk deleted {deleted} archiving item(s) by {user.id}")

        return {"success": True, "deleted": deleted, "message": f"Deleted {deleted} items"}

    except Exception as e:
        logger.error(f"Error bulk deleting archiving: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete archiving", "detail": str(e)}
        )


@router.get("/{archiving_id}")
async def get_archiving(archiving_id: int, db: AsyncSession = Depends(get_db)):
    try:
        item = await _get_archiving_or_404(db, archiving_id)
        return {"success": True, "data": ArchivingResponse.model_validate(item)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching archiving {archiving_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve archiving", "detail": str(e)}
        )


@router.put("/{archiving_id}")
async def update_archiving(
    archiving_id: int,
    payload: ArchivingUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Update an archived link; owner or admin/sub-admin.

    Raises:
        HTTPException: 400 for an invalid URL, a null range or an empty
            required field, 403 without permission, 404 if not found
    """
    try:
        item = await _get_archiving_or_404(db, archiving_id)
        if not can_edit_archiving(user.id, user.role, item.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to edit this item"}
            )

        changes = payload.model_dump(exclude_unset=True)
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
        for field in ("title", "image_url"):
            if field in changes and not changes[field]:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": f"{field} cannot be empty"}
                )

        for field, value in changes.items():
            setattr(item, field, value)
        item.updated_at = utcnow()

        await db.flush()
        await db.refresh(item)

        logger.info(f"Updated archiving {archiving_id} by {user.id}: {sorted(changes)}")

        return {"success": True, "data": ArchivingResponse.model_validate(item)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating archiving {archiving_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update archiving", "detail": str(e)}
        )


@router.delete("/{archiving_id}")
async def delete_archiving(
    archiving_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        item = await _get_archiving_or_404(db, archiving_id)
        if not can_edit_archiving(user.id, user.role, item.author):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to delete this item"}
            )

        await db.delete(item)
        await db.flush()

        logger.info(f"Deleted archiving {archiving_id} by {user.id}")

        return {"success": True, "message": "Archiving deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting archiving {archiving_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete archiving", "detail": str(e)}
        )


# --- categories -------------------------------------------------------------

@categories_router.get("")
async def list_archiving_categories(db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(ArchivingCategory).order_by(ArchivingCategory.name.asc()))
        return {
            "success": True,
            "data": [ReferenceCategoryResponse.model_validate(c) for c in result.scalars().all()],
        }

    except Exception as e:
        logger.error(f"Error fetching archiving categories: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve categories", "detail": str(e)}
        )


@categories_router.post("", status_code=status.HTTP_201_CREATED)
async def create_archiving_category(
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
        existing = await db.execute(select(ArchivingCategory.id).where(ArchivingCategory.name == name))
        if existing.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "Category already exists"}
            )

        category = ArchivingCategory(name=name, description=payload.description or None)
        db.add(category)
        await db.flush()
        await db.refresh(category)

        logger.info(f"Created archiving category {category.id} '{name}'")

        return {"success": True, "data": ReferenceCategoryResponse.model_validate(category)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating archiving category: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create category", "detail": str(e)}
        )


@categories_router.get("/{category_id}")
async def get_archiving_category(category_id: int, db: AsyncSession = Depends(get_db)):
    try:
        category = await _get_category_or_404(db, category_id)
        return {"success": True, "data": ReferenceCategoryResponse.model_validate(category)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching archiving category {category_id}: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve category", "detail": str(e)}
        )


@categories_router.put("/{category_id}")
async def update_archiving_category(
    category_id: int,
    payload: ArchivingCategoryUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """
    Rename a category or change its description.

    Raises:
        HTTPException: 400 without a name, 404 if not found, 409 if another
            category already has the name
    """
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Category name is required"}
        )

    try:
        category = await _get_category_or_404(db, category_id)

        existing = await db.execute(
            select(ArchivingCategory.id).where(
                ArchivingCategory.name == name,
                ArchivingCategory.id != category_id,
            )
        )
        if existing.first() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"error": "Category already exists"}
            )

        category.name = name
        if "description" in payload.model_fields_set:
            category.description = payload.description or None
        category.updated_at = utcnow()

        await db.flush()
        await db.refresh(category)

        logger.info(f"Updated archiving category {category_id} by {user.id}")

        return {"success": True, "data": ReferenceCategoryResponse.model_validate(category)}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating archiving category {category_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update category", "detail": str(e)}
        )


@categories_router.delete("/{category_id}")
async def delete_archiving_category(
    category_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    try:
        category = await _get_category_or_404(db, category_id)
        await db.delete(category)
        await db.flush()

        logger.info(f"Deleted archiving category {category_id} by {user.id}")

        return {"success": True, "message": "Category deleted successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting archiving category {category_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete category", "detail": str(e)}
        )
