"""
Role-based permission predicates.

Pure functions over (current user, target owner) pairs. Route dependencies and
handlers call these to decide between 403 and proceeding; they never touch the
database themselves.

Role ladder:
    user < editor < sub-admin < admin

Posts:
    editor     -> own posts only
    sub-admin  -> every post except those written by an admin
    admin      -> every post
"""
from typing import Optional, Tuple

from atelier.models import ROLE_ADMIN, ROLE_EDITOR, ROLE_SUB_ADMIN, ROLES


MANAGER_ROLES = (ROLE_ADMIN, ROLE_SUB_ADMIN)
EDITOR_ROLES = (ROLE_ADMIN, ROLE_SUB_ADMIN, ROLE_EDITOR)


def is_manager(role: Optional[str]) -> bool:
    return role in MANAGER_ROLES


def is_editor(role: Optional[str]) -> bool:
    return role in EDITOR_ROLES


def can_edit_post(
    current_user_id: str,
    current_role: Optional[str],
    author_id: Optional[str],
    author_role: Optional[str] = None,
) -> bool:
    """
    Check whether the current user may edit a post.

    Args:
        current_user_id: ID of the acting user
        current_role: Role of the acting user
        author_id: ID of the post author
        author_role: Role of the post author (needed for the sub-admin rule)

    Returns:
        bool: True if editing is allowed
    """
    if current_role == ROLE_ADMIN:
        return True

    if current_role == ROLE_SUB_ADMIN:
        return author_role != ROLE_ADMIN

    if current_role == ROLE_EDITOR:
        return author_id is not None and current_user_id == author_id

    return False


def can_delete_post(
    current_user_id: str,
    current_role: Optional[str],
    author_id: Optional[str],
    author_role: Optional[str] = None,
) -> bool:
    """Deleting follows the same rule as editing."""
    return can_edit_post(current_user_id, current_role, author_id, author_role)


def can_manage_gallery(role: Optional[str]) -> bool:
    """Create, analyze and migrate gallery items."""
    return is_editor(role)


def can_edit_gallery_item(current_user_id: str, role: Optional[str], owner_id: Optional[str]) -> bool:
    """Managers edit any item; everyone else only what they uploaded."""
    if is_manager(role):
        return True
    return owner_id is not None and owner_id == current_user_id


def can_manage_references(role: Optional[str]) -> bool:
    return is_manager(role)


def can_edit_reference(current_user_id: str, role: Optional[str], owner_id: Optional[str]) -> bool:
    if is_manager(role):
        return True
    return owner_id is not None and owner_id == current_user_id


def can_edit_archiving(current_user_id: str, role: Optional[str], owner_id: Optional[str]) -> bool:
    """Archived links follow the reference rule: owner or admin/sub-admin."""
    return can_edit_reference(current_user_id, role, owner_id)


def can_edit_user(current_id: str, current_role: Optional[str], target_id: str, target_role: Optional[str]) -> bool:
    """Profile edits: yourself, anyone for admin, any non-admin for sub-admin."""
    if target_id == current_id:
        return True
    if current_role == ROLE_ADMIN:
        return True
    return current_role == ROLE_SUB_ADMIN and target_role != ROLE_ADMIN


def can_change_role(current_id: str, current_role: Optional[str], target_id: str, target_role: Optional[str]) -> bool:
    """Nobody changes their own role."""
    if target_id == current_id:
        return False
    if current_role == ROLE_ADMIN:
        return True
    return current_role == ROLE_SUB_ADMIN and target_role != ROLE_ADMIN


def can_delete_user(current_id: str, current_role: Optional[str], target_id: str, target_role: Optional[str]) -> bool:
    return can_change_role(current_id, current_role, target_id, target_role)


def assignable_roles(current_role: Optional[str]) -> Tuple[str, ...]:
    """Roles the current user may hand out."""
    if current_role == ROLE_ADMIN:
        return ROLES
    if current_role == ROLE_SUB_ADMIN:
        return tuple(role for role in ROLES if role != ROLE_ADMIN)
    return ()


def post_visibility_scope(role: Optional[str]) -> Optional[str]:
    """
    Which posts a role sees in the dashboard list.

    Returns:
        "all" for admin, "non_admin" for sub-admin, "own" for editor,
        None when the role has no dashboard access.
    """
    if role == ROLE_ADMIN:
        return "all"
    if role == ROLE_SUB_ADMIN:
        return "non_admin"
    if role == ROLE_EDITOR:
        return "own"
    return None
