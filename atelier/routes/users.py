"""
User management routes.
Profile edits, role assignment and account deletion gated by the role ladder.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, or_
from typing import Optional
import logging

from atelier.database import get_db
from atelier.models import Archiving, GalleryItem, GalleryScrap, Post, PostScrap, Reference, ReferenceScrap, User, ROLES
from atelier.schemas import ProfileUpdate, UserResponse, UserUpdate
from atelier.utils.jwt_auth import get_current_user, require_roles
from atelier.utils.permissions import (
    MANAGER_ROLES,
    assignable_roles,
    can_change_role,
    can_delete_user,
    can_edit_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users")


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "User not found"}
        )
    return user


@router.get("", response_model=list[UserResponse])
async def list_users(
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """User list for the dashboard, searchable by email, nickname, name or phone."""
    try:
        query = select(User).order_by(User.created_at.desc()).limit(limit)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                User.email.ilike(pattern),
                User.nickname.ilike(pattern),
                User.name.ilike(pattern),
                User.phone.ilike(pattern),
            ))

        result = await db.execute(query)
        return [UserResponse.model_validate(u) for u in result.scalars().all()]

    except Exception as e:
        logger.error(f"Error fetching users: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to retrieve users", "detail": str(e)}
        )


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """
    Edit a user's profile and, separately gated, their role.
    On their own account users may only change ProfileUpdate fields.

    Raises:
        HTTPException: 400 for an unknown role, 403 when the caller may not
            edit the profile or hand out the requested role, 404 if not found
    """
    try:
        target = await _get_user_or_404(db, user_id)
        changes = payload.model_dump(exclude_unset=True)
        new_role = changes.pop("role", None)

        if changes and not can_edit_user(current.id, current.role, target.id, target.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to edit this user"}
            )

        if "status" in changes and changes["status"] is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"error": "status cannot be null"}
            )

        if current.id == target.id:
            restricted = sorted(set(changes) - set(ProfileUpdate.model_fields))
            if restricted:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={"error": "Only nickname and avatar_url can be changed on your own account", "fields": restricted}
                )

        if new_role is not None and new_role != target.role:
            if new_role not in ROLES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={"error": "Invalid role", "allowed": list(ROLES)}
                )
            if not can_change_role(current.id, current.role, target.id, target.role):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={"error": "You do not have permission to change this user's role"}
                )
            if new_role not in assignable_roles(current.role):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail={"error": f"You cannot assign the role '{new_role}'"}
                )
            logger.info(f"User {current.id} changed role of {target.id}: {target.role} -> {new_role}")
            target.role = new_role

        for field, value in changes.items():
            setattr(target, field, value)

        await db.flush()
        await db.refresh(target)

        return UserResponse.model_validate(target)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to update user", "detail": str(e)}
        )


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current: User = Depends(get_current_user),
):
    """
    Delete an account and its bookmarks; authored content is kept without an author.
    """
    try:
        target = await _get_user_or_404(db, user_id)

        if not can_delete_user(current.id, current.role, target.id, target.role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "You do not have permission to delete this user"}
            )

        await db.execute(delete(GalleryScrap).where(GalleryScrap.user_id == user_id))
        await db.execute(delete(PostScrap).where(PostScrap.user_id == user_id))
        await db.execute(delete(ReferenceScrap).where(ReferenceScrap.user_id == user_id))
        await db.execute(update(Post).where(Post.author_id == user_id).values(author_id=None))
        await db.execute(update(GalleryItem).where(GalleryItem.author == user_id).values(author=None))
        await db.execute(update(Reference).where(Reference.author == user_id).values(author=None))
        await db.execute(update(Archiving).where(Archiving.author == user_id).values(author=None))
        await db.delete(target)
        await db.flush()

        logger.info(f"User {current.id} deleted user {user_id}")

        return {"success": True, "message": "User deleted"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {str(e)}", exc_info=True)
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete user", "detail": str(e)}
        )
