"""
Homepage banner routes.
A banner is shown when active and either continuous or inside its date window.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from datetime import datetime, timezone
from typing import Optional
import logging

from atelier.database import get_db
from atelier.models import Banner, User, utcnow
from atelier.schemas import BannerCreate, BannerResponse, BannerUpdate
from atelier.utils.jwt_auth import require_roles
from atelier.utils.permissions import MANAGER_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/banners")


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise to aware UTC; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_schedule(is_continuous: bool, start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    """
    Raises:
        HTTPException: 400 if a scheduled banner lacks a date or ends before it starts
    """
    if is_continuous:
        return
    if start_date is None or end_date is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "start_date and end_date are required for a scheduled banner"}
        )
    if to_utc(start_date) > to_utc(end_date):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "start_date must not be after end_date"}
        )


async def _get_banner_or_404(db: AsyncSession, banner_id: int) -> Banner:
    result = await db.execute(select(Banner).where(Banner.id == banner_id))
    banner = result.scalar_one_or_none()
    if not banner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "Banner not found", "detail": f"Banner ID {banner_id} does not exist"}
        )
    return banner


@router.get("/active", response_model=list[BannerResponse])
async def list_active_banners(db: AsyncSession = Depends(get_db)):
    """Banners to show right now, in display order."""
    try:
        now = utcnow()
        result = await db.execute(
            select(Banner)
            .where(
                Banner.is_active.is_(True),
                or_(
                    Banner.is_continuous.is_(True),
                    and_(Banner.start_date <= now, Banner.end_date >= now),
                ),
            )
            .order_by(Banner.order_index.asc(), Banner.id.asc())
        )
        return [BannerResponse.model_validate(b) for b in result.scalars().all()]

    except Exception as e:
        logger.error(f"Error fetching active banners: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve banners", "detail": str(e)}
        )


@router.get("", response_model=list[BannerResponse])
async def list_banners(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    try:
        result = await db.execute(select(Banner).order_by(Banner.order_index.asc(), Banner.id.asc()))
        return [BannerResponse.model_validate(b) for b in result.scalars().all()]

    except Exception as e:
        logger.error(f"Error fetching banners: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve banners", "detail": str(e)}
        )


@router.post("", response_model=BannerResponse, status_code=status.HTTP_201_CREATED)
async def create_banner(
    payload: BannerCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    validate_schedule(payload.is_continuous, payload.start_date, payload.end_date)

    try:
        data = payload.model_dump()
        data["start_date"] = to_utc(data["start_date"])
        data["end_date"] = to_utc(data["end_date"])

        banner = Banner(**data)
        db.add(banner)
        await db.flush()
        await db.refresh(banner)

        logger.info(f"Created banner {banner.id} by {user.id}")

        return BannerResponse.model_validate(banner)

    except Exception as e:
        logger.error(f"Error creating banner: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to create banner", "detail": str(e)}
        )


@router.put("/{banner_id}", response_model=BannerResponse)
async def update_banner(
    banner_id: int,
    payload: BannerUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Partial update; the schedule is re-validated against the merged values."""
    try:
        banner = await _get_banner_or_404(db, banner_id)
        changes = payload.model_dump(exclude_unset=True)

        for field in ("title", "image_url", "is_continuous", "order_index", "is_active"):
            if field in changes and changes[field] is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": f"{field} cannot be null"}
                )

        for field in ("start_date", "end_date"):
            if field in changes:
                changes[field] = to_utc(changes[field])

        validate_schedule(
            changes.get("is_continuous", banner.is_continuous),
            changes.get("start_date", banner.start_date),
            changes.get("end_date", banner.end_date),
        )

        for field, value in changes.items():
            setattr(banner, field, value)

        await db.flush()
        await db.refresh(banner)

        logger.info(f"Updated banner {banner_id} by {user.id}: {sorted(changes)}")

        return BannerResponse.model_validate(banner)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating banner {banner_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update banner", "detail": str(e)}
        )


@router.delete("/{banner_id}")
async def delete_banner(
    banner_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    try:
        banner = await _get_banner_or_404(db, banner_id)
        await db.delete(banner)
        await db.flush()

        logger.info(f"Deleted banner {banner_id} by {user.id}")

        return {"message": "Banner deleted", "deleted_id": banner_id}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting banner {banner_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete banner", "detail": str(e)}
        )
