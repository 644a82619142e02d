"""
JWT token-based identity for API callers.
Resolves the bearer token to a User row; the role always comes from the database,
never from the token claims.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.config import settings
from atelier.database import get_db
from atelier.models import User


ALGORITHM = "HS256"
TOKEN_COOKIE_NAME = "access_token"


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: User identifier stored in the "sub" claim
        expires_delta: Optional custom expiration time

    Returns:
        str: Encoded JWT token
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify and decode a JWT token.

    Raises:
        HTTPException: 401 if token is invalid, expired, or malformed
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid token", "message": "Authentication token is invalid or expired"}
        )

    if payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid token type", "message": "Token is not an access token"}
        )

    return payload


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Token from the httpOnly cookie, falling back to the Authorization header."""
    token = request.cookies.get(TOKEN_COOKIE_NAME)

    if not token and authorization:
        parts = authorization.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            token = parts[1]

    return token


async def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token (fallback to cookie)"),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    FastAPI dependency for endpoints that also serve anonymous visitors.
    A missing token yields None; a present but invalid token is still a 401.
    """
    token = extract_token(request, authorization)
    if not token:
        return None

    payload = verify_token(token)
    result = await db.execute(select(User).where(User.id == payload["sub"]))
    return result.scalar_one_or_none()


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """
    FastAPI dependency requiring an authenticated user.

    Raises:
        HTTPException: 401 if no valid token or the user no longer exists
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Unauthorized", "message": "Authentication required"},
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


def require_roles(*roles: str):
    """
    Build a dependency that only admits users holding one of the given roles.

    Usage:
        @router.post("/gallery")
        async def create(user: User = Depends(require_roles("admin", "editor"))):
            ...
    """
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "Forbidden", "message": f"Requires one of roles: {', '.join(roles)}"}
            )
        return user

    return dependency
