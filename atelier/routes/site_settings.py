"""
Site settings routes.
A single row of site identity fields, readable by anyone and written by an admin.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from atelier.database import get_db
from atelier.models import SiteSettings, User, ROLE_ADMIN, utcnow
from atelier.schemas import SiteSettingsResponse, SiteSettingsUpdate
from atelier.utils.jwt_auth import require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings")

REQUIRED_FIELDS = ("site_name", "site_language", "theme_color")


async def _get_site_settings(db: AsyncSession):
    result = await db.execute(select(SiteSettings).order_by(SiteSettings.id.asc()).limit(1))
    return result.scalar_one_or_none()


@router.get("/site")
async def get_site_settings(db: AsyncSession = Depends(get_db)):
    """Current settings, or data null before an admin has saved any."""
    try:
        row = await _get_site_settings(db)
        return {
            "success": True,
            "data": SiteSettingsResponse.model_validate(row) if row else None,
        }

    except Exception as e:
        logger.error(f"Error fetching site settings: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve site settings", "detail": str(e)}
        )


@router.post("/site")
async def save_site_settings(
    payload: SiteSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(ROLE_ADMIN)),
):
    """
    Create the settings row on first save, update it afterwards.
    Omitted fields keep their current value.

    Raises:
        HTTPException: 400 if site_name, site_language or theme_color is null or empty
    """
    changes = payload.model_dump(exclude_unset=True)
    for field in REQUIRED_FIELDS:
        if field in changes and not changes[field]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": f"{field} cannot be empty"}
            )

    try:
        row = await _get_site_settings(db)
        if row is None:
            row = SiteSettings()
            db.add(row)

        for field, value in changes.items():
            setattr(row, field, value)
        row.updated_by = user.id
        row.updated_at = utcnow()

        await db.flush()
        await db.refresh(row)

        logger.info(f"Site settings saved by {user.id}: {sorted(changes)}")

        return {"success": True, "data": SiteSettingsResponse.model_validate(row)}

    except Exception as e:
        logger.error(f"Error saving site settings: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to save site settings", "detail": str(e)}
        )
