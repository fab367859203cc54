"""Request dependencies — bearer authentication and role gates."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.errors import AppError, AuthError, ForbiddenError
from app.models.tables import User
from app.services.auth import decode_access_token, has_role

bearer = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    """The authenticated user plus the role claimed by their access token."""
    user: User
    role: str

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return has_role(self.role, "admin")


async def get_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    if credentials is None:
        raise AuthError("Access token is required")
    claims = decode_access_token(credentials.credentials)
    user = await db.get(User, int(claims["sub"]))
    if user is None:
        raise AuthError("Invalid token")
    if not user.is_active:
        raise AuthError("Account is deactivated")
    return AuthContext(user=user, role=claims.get("role", "user"))


async def get_current_user(auth: AuthContext = Depends(get_auth)) -> User:
    return auth.user


async def get_optional_role(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[str]:
    """Role of the caller when a valid token is sent; anonymous otherwise."""
    if credentials is None:
        return None
    try:
        return decode_access_token(credentials.credentials).get("role")
    except AppError:
        return None


def require_role(required: str):
    async def dependency(auth: AuthContext = Depends(get_auth)) -> AuthContext:
        if not has_role(auth.role, required):
            raise ForbiddenError("Insufficient permissions")
        return auth
    return dependency


require_moderator = require_role("moderator")
require_admin = require_role("admin")


def ensure_owner_or_admin(item, auth: AuthContext) -> None:
    """Only the user who added an item, or an admin, may change it."""
    if not auth.is_admin and item.added_by_id != auth.user_id:
        raise ForbiddenError("Access denied")
