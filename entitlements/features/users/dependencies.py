"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from entitlements.core.database.engine import get_db
from entitlements.features.users.models import User
from entitlements.features.users.auth import verify_appwrite_account
from entitlements.utils import utcnow


security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from JWT token.

    This dependency:
    1. Extracts JWT from Authorization header
    2. Verifies JWT with Appwrite on every request
    3. Looks up or creates user in local database
    4. Updates last_login_at timestamp
    """
    profile = await verify_appwrite_account(credentials.credentials)
    appwrite_id = profile["$id"]

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        user = User(
            appwrite_id=appwrite_id,
            email=profile.get("email", ""),
            name=profile.get("name") or "Unknown",
        )
        db.add(user)

    user.last_login_at = utcnow()
    await db.commit()
    await db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


async def get_current_admin_user(
    user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Require platform admin privileges.

    Usage:
        @router.get("/entitlements/audit")
        async def audit(admin: User = Depends(get_current_admin_user)):
            ...
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
