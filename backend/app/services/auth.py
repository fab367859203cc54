"""Accounts, password hashing and bearer tokens.

Access tokens carry the user's id and role and are signed with
``settings.jwt_secret``; refresh tokens are signed with a separate secret and
the current one is stored on the user, so a new login, a logout or a password
change invalidates the previous refresh token.
"""

import asyncio
import copy
import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

import bcrypt
import jwt
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from app.config import settings
from app.errors import AuthError, ConflictError, NotFoundError, ValidationFailed
from app.models.schemas import (
    AdminLoginRequest, PasswordChange, ProfileUpdate, RegisterRequest, WatchlistEntry,
)
from app.models.tables import Movie, Series, User, utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ROLE_RANK = {"user": 0, "moderator": 1, "admin": 2}


# ── Passwords ────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# bcrypt is CPU bound; keep it off the event loop
async def hash_password_async(plain: str) -> str:
    return await asyncio.to_thread(hash_password, plain)


async def verify_password_async(plain: str, hashed: Optional[str]) -> bool:
    return await asyncio.to_thread(verify_password, plain, hashed)


# ── Tokens ───────────────────────────────────────────────────────

def create_access_token(user: User) -> str:
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def create_refresh_token(user: User) -> str:
    now = utcnow()
    payload = {
        "sub": str(user.id),
        "type": "refresh",
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(days=settings.refresh_token_expire_days),
    }
    return jwt.encode(payload, settings.refresh_token_secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str, expected_type: str) -> dict:
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    if claims.get("type") != expected_type or not str(claims.get("sub", "")).isdigit():
        raise AuthError("Invalid token")
    return claims


def decode_access_token(token: str) -> dict:
    return _decode(token, settings.jwt_secret, "access")


def decode_refresh_token(token: str) -> dict:
    return _decode(token, settings.refresh_token_secret, "refresh")


def has_role(role: Optional[str], required: str) -> bool:
    return ROLE_RANK.get(role or "", -1) >= ROLE_RANK[required]


def issue_tokens(user: User) -> dict[str, str]:
    """New access/refresh pair; the refresh token replaces any previous one."""
    refresh = create_refresh_token(user)
    user.refresh_token = refresh
    return {"accessToken": create_access_token(user), "refreshToken": refresh}


def session_view(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "avatar": user.avatar,
        "preferences": user.to_document()["preferences"],
        "lastLogin": user.last_login,
    }


# ── Accounts ─────────────────────────────────────────────────────

async def find_by_email(db: AsyncSession, email: str) -> Optional[User]:
    stmt = select(User).where(func.lower(User.email) == email.strip().lower())
    return (await db.execute(stmt)).scalar_one_or_none()


async def register(db: AsyncSession, data: RegisterRequest) -> User:
    email = data.email.strip().lower()
    stmt = select(User.id).where(or_(func.lower(User.email) == email, User.username == data.username))
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("User with this email or username already exists")

    user = User(
        username=data.username,
        email=email,
        password_hash=await hash_password_async(data.password),
        role="user",
        last_login=utcnow(),
    )
    db.add(user)
    await db.flush()
    logger.info(f"Registered user {user.username} (id={user.id})")
    return user


async def login(db: AsyncSession, email: str, password: str) -> User:
    user = await find_by_email(db, email)
    if user is None or not await verify_password_async(password, user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated. Please contact support.")
    user.last_login = utcnow()
    return user


async def _master_admin(db: AsyncSession) -> User:
    user = await find_by_email(db, settings.admin_email)
    if user is None:
        username = "admin"
        taken = (await db.execute(select(User.id).where(User.username == username))).first()
        if taken is not None:
            username = f"admin-{uuid.uuid4().hex[:6]}"
        user = User(
            username=username,
            email=settings.admin_email.strip().lower(),
            password_hash=await hash_password_async(settings.admin_password),
            role="admin",
            is_active=True,
        )
        db.add(user)
        await db.flush()
        logger.info(f"Provisioned master admin account {user.email}")
    return user


async def admin_login(db: AsyncSession, data: AdminLoginRequest) -> User:
    """Admin sign-in: shared admin key plus credentials.

    The configured master admin (``ADMIN_EMAIL``/``ADMIN_PASSWORD``) is
    created on first use when ``ADMIN_AUTO_PROVISION`` is on; anyone else
    must be an active admin account with a matching password.
    """
    if not settings.has_admin_key or data.admin_key != settings.admin_secret_key:
        raise AuthError("Invalid admin credentials")

    is_master = (
        settings.admin_auto_provision
        and settings.admin_email
        and settings.admin_password
        and data.email.strip().lower() == settings.admin_email.strip().lower()
        and data.password == settings.admin_password
    )
    if is_master:
        user = await _master_admin(db)
    else:
        user = await find_by_email(db, data.email)
        if (
            user is None
            or user.role != "admin"
            or not user.is_active
            or not await verify_password_async(data.password, user.password_hash)
        ):
            raise AuthError("Invalid admin credentials")

    user.last_login = utcnow()
    return user


async def refresh(db: AsyncSession, token: Optional[str]) -> User:
    if not token:
        raise AuthError("Refresh token is required")
    claims = decode_refresh_token(token)
    user = await db.get(User, int(claims["sub"]))
    if user is None or not user.is_active or user.refresh_token != token:
        raise AuthError("Invalid refresh token")
    return user


def logout(user: User) -> None:
    user.refresh_token = None


async def update_profile(db: AsyncSession, user: User, changes: ProfileUpdate) -> User:
    if changes.username and changes.username != user.username:
        taken = await db.execute(
            select(User.id).where(User.username == changes.username, User.id != user.id)
        )
        if taken.first() is not None:
            raise ConflictError("Username is already taken")
        user.username = changes.username
    if changes.avatar is not None:
        user.avatar = changes.avatar
    if changes.preferences is not None:
        user.preferences = changes.preferences.model_dump()
    return user


async def change_password(user: User, data: PasswordChange) -> None:
    if not await verify_password_async(data.current_password, user.password_hash):
        raise ValidationFailed("Current password is incorrect")
    user.password_hash = await hash_password_async(data.new_password)
    # force re-login everywhere
    user.refresh_token = None


# ── Watchlist ────────────────────────────────────────────────────

CONTENT_MODELS = {"Movie": Movie, "Series": Series}


async def add_to_watchlist(db: AsyncSession, user: User, content_type: str, content_id: int) -> list[dict]:
    if await db.get(CONTENT_MODELS[content_type], content_id) is None:
        raise NotFoundError(f"{content_type} not found")

    entries = copy.deepcopy(user.watchlist or [])
    if any(e["content_type"] == content_type and e["content_id"] == content_id for e in entries):
        raise ConflictError("Already in watchlist")
    entry = WatchlistEntry(content_type=content_type, content_id=content_id)
    entries.append(entry.model_dump(mode="json"))
    user.watchlist = entries
    flag_modified(user, "watchlist")
    return entries


def remove_from_watchlist(user: User, content_type: str, content_id: int) -> list[dict]:
    entries = [
        e for e in (user.watchlist or [])
        if not (e["content_type"] == content_type and e["content_id"] == content_id)
    ]
    if len(entries) == len(user.watchlist or []):
        raise NotFoundError("Item not in watchlist")
    user.watchlist = entries
    flag_modified(user, "watchlist")
    return entries


async def resolve_watchlist(db: AsyncSession, user: User) -> list[dict]:
    """Watchlist entries joined with a summary of the referenced item.

    Entries whose item has been deleted are returned with ``item = None``.
    """
    entries = user.watchlist or []
    resolved = []
    for content_type, model in CONTENT_MODELS.items():
        ids = [e["content_id"] for e in entries if e["content_type"] == content_type]
        if not ids:
            continue
        rows = (await db.execute(select(model).where(model.id.in_(ids)))).scalars().all()
        by_id = {row.id: row for row in rows}
        for entry in entries:
            if entry["content_type"] != content_type:
                continue
            item = by_id.get(entry["content_id"])
            resolved.append({
                **entry,
                "item": None if item is None else {
                    "id": item.id,
                    "title": item.title,
                    "slug": item.slug,
                    "poster_path": item.poster_path,
                    "release_year": item.release_year,
                    "rating": item.rating,
                },
            })
    resolved.sort(key=lambda e: e.get("added_at") or "")
    return resolved
