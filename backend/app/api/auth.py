"""Account endpoints — registration, sessions, profile and watchlist."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.api.responses import ok
from app.database import flush_or_conflict, get_db
from app.models.schemas import (
    AdminLoginRequest, ContentType, LoginRequest, PasswordChange, ProfileUpdate, RefreshRequest,
    RegisterRequest, WatchlistAdd,
)
from app.models.tables import User
from app.services import auth as auth_service

router = APIRouter()


def _session(user: User) -> dict:
    return {"user": auth_service.session_view(user), **auth_service.issue_tokens(user)}


# ── Sessions ─────────────────────────────────────────────────────

@router.post("/auth/register", status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    user = await auth_service.register(db, body)
    session = _session(user)
    await db.flush()
    return ok(session, "User registered successfully")


@router.post("/auth/login")
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await auth_service.login(db, body.email, body.password)
    session = _session(user)
    await db.flush()
    return ok(session, "Login successful")


@router.post("/auth/admin-login")
async def admin_login(body: AdminLoginRequest, db: AsyncSession = Depends(get_db)):
    user = await auth_service.admin_login(db, body)
    session = _session(user)
    await db.flush()
    return ok(session, "Admin login successful")


@router.post("/auth/refresh")
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    user = await auth_service.refresh(db, body.refresh_token)
    tokens = auth_service.issue_tokens(user)
    await db.flush()
    return ok(tokens, "Token refreshed successfully")


@router.post("/auth/logout")
async def logout(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    auth_service.logout(user)
    await db.flush()
    return ok(message="Logged out successfully")


# ── Profile ──────────────────────────────────────────────────────

@router.get("/auth/profile")
async def get_profile(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    doc = user.to_document()
    doc["watchlist"] = await auth_service.resolve_watchlist(db, user)
    return ok({"user": doc})


@router.put("/auth/profile")
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.update_profile(db, user, body)
    await flush_or_conflict(db, "Username is already taken")
    return ok({"user": user.to_document()}, "Profile updated successfully")


@router.put("/auth/password")
async def change_password(
    body: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.change_password(user, body)
    await db.flush()
    return ok(message="Password changed successfully. Please login again.")


# ── Watchlist ────────────────────────────────────────────────────

@router.get("/auth/watchlist")
async def get_watchlist(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return ok({"watchlist": await auth_service.resolve_watchlist(db, user)})


@router.post("/auth/watchlist", status_code=201)
async def add_to_watchlist(
    body: WatchlistAdd,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await auth_service.add_to_watchlist(db, user, body.content_type, body.content_id)
    await db.flush()
    return ok({"watchlist": entries}, "Added to watchlist")


@router.delete("/auth/watchlist/{content_type}/{content_id}")
async def remove_from_watchlist(
    content_type: ContentType,
    content_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = auth_service.remove_from_watchlist(user, content_type, content_id)
    await db.flush()
    return ok({"watchlist": entries}, "Removed from watchlist")
