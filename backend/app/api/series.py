"""Series endpoints — listing, detail, CRUD and season/episode management."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthContext, ensure_owner_or_admin, get_optional_role, require_admin, require_moderator
from app.api.responses import ok
from app.database import flush_or_conflict, get_db
from app.errors import NotFoundError
from app.models.schemas import EpisodeIn, EpisodeUpdate, SeasonIn, SeriesIn, ServerIn, StatusUpdate
from app.models.tables import Series
from app.services import catalog, episodes
from app.services.auth import has_role
from app.services.counters import increment
from app.services.query import build_filter_query, build_search_query, build_sort_query

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE = "Series with this title and year already exists"

# Series-only filter keys on top of the shared catalog filters
SERIES_FILTERS = {"seriesStatus": "series_status"}


async def _get_series(db: AsyncSession, series_id: int) -> Series:
    series = await db.get(Series, series_id)
    if series is None:
        raise NotFoundError("Series not found")
    return series


async def _editable_series(db: AsyncSession, series_id: int, auth: AuthContext) -> Series:
    series = await _get_series(db, series_id)
    ensure_owner_or_admin(series, auth)
    return series


# ── Listing ──────────────────────────────────────────────────────

@router.get("/series")
async def list_series(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: str = "",
    sortBy: str = "createdAt",
    sortOrder: str = "desc",
    role: Optional[str] = Depends(get_optional_role),
    db: AsyncSession = Depends(get_db),
):
    predicate = (
        build_filter_query(request.query_params, SERIES_FILTERS)
        & build_search_query(search, catalog.SERIES_SEARCH_FIELDS)
    )
    predicate = catalog.visible_to(predicate, has_role(role, "admin"))
    docs, pg = await catalog.list_collection(
        db, Series, predicate, build_sort_query(sortBy, sortOrder), page, limit
    )
    return ok({"series": docs, "pagination": pg.envelope()})


@router.get("/series/trending")
async def trending_series(limit: int = 10, db: AsyncSession = Depends(get_db)):
    predicate = catalog.published().where("views", "gte", 1)
    series = await catalog.fetch_documents(db, Series, predicate, build_sort_query("trending"), limit)
    return ok({"series": series})


@router.get("/series/latest")
async def latest_series(limit: int = 12, db: AsyncSession = Depends(get_db)):
    return ok({"series": await catalog.latest(db, limit, "series")})


# ── Detail ───────────────────────────────────────────────────────

@router.get("/series/{identifier}")
async def get_series(
    identifier: str,
    role: Optional[str] = Depends(get_optional_role),
    db: AsyncSession = Depends(get_db),
):
    series = await catalog.lookup(db, Series, identifier, has_role(role, "admin"))
    doc = series.to_document()
    doc["views"] = await increment(db, Series, series.id, "views")
    return ok({"series": doc})


@router.get("/series/{series_id}/season/{season_number}/episode/{episode_number}")
async def get_episode(
    series_id: int,
    season_number: int,
    episode_number: int,
    db: AsyncSession = Depends(get_db),
):
    """A single episode; every fetch counts as a view of that episode."""
    series = await _get_series(db, series_id)
    episode = episodes.record_episode_view(series, season_number, episode_number)
    await db.flush()
    return ok({
        "episode": episode,
        "series": {
            "id": series.id,
            "title": series.title,
            "slug": series.slug,
            "poster_path": series.poster_path,
        },
    })


# ── CRUD ─────────────────────────────────────────────────────────

@router.post("/series", status_code=201)
async def create_series(
    body: SeriesIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = Series(**catalog.column_values(body), added_by_id=auth.user_id)
    db.add(series)
    await flush_or_conflict(db, DUPLICATE)
    logger.info(f"Series {series.id} '{series.title}' created by user {auth.user_id}")
    return ok({"series": series.to_document()}, "Series created successfully")


@router.put("/series/{series_id}")
async def update_series(
    series_id: int,
    body: SeriesIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    values = catalog.column_values(body, exclude_unset=True)
    values.pop("seasons", None)
    for key, value in values.items():
        setattr(series, key, value)
    if "seasons" in body.model_fields_set:
        episodes.replace_seasons(series, body.seasons)
    series.last_modified_by_id = auth.user_id
    await flush_or_conflict(db, DUPLICATE)
    return ok({"series": series.to_document()}, "Series updated successfully")


@router.delete("/series/{series_id}")
async def delete_series(
    series_id: int,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    await db.delete(series)
    await db.flush()
    logger.info(f"Series {series_id} deleted by user {auth.user_id}")
    return ok(message="Series deleted successfully")


# ── Seasons & episodes ───────────────────────────────────────────

@router.post("/series/{series_id}/seasons", status_code=201)
async def add_season(
    series_id: int,
    body: SeasonIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    episodes.add_season(series, body)
    series.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"series": series.to_document()}, "Season added successfully")


@router.post("/series/{series_id}/season/{season_number}/episodes", status_code=201)
async def add_episode(
    series_id: int,
    season_number: int,
    body: EpisodeIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    episodes.add_episode(series, season_number, body)
    series.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"series": series.to_document()}, "Episode added successfully")


@router.put("/series/{series_id}/season/{season_number}/episode/{episode_number}")
async def update_episode(
    series_id: int,
    season_number: int,
    episode_number: int,
    body: EpisodeUpdate,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    episode = episodes.update_episode(series, season_number, episode_number, body)
    series.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"episode": episode}, "Episode updated successfully")


@router.post("/series/{series_id}/season/{season_number}/episode/{episode_number}/servers")
async def add_episode_server(
    series_id: int,
    season_number: int,
    episode_number: int,
    body: ServerIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    series = await _editable_series(db, series_id, auth)
    episode = episodes.add_server_to_episode(series, season_number, episode_number, body)
    series.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"episode": episode}, "Server added to episode successfully")


@router.patch("/series/{series_id}/status")
async def update_series_status(
    series_id: int,
    body: StatusUpdate,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    series = await _get_series(db, series_id)
    series.admin_status = body.admin_status
    series.last_modified_by_id = auth.user_id
    await db.flush()
    logger.info(f"Series {series_id} status -> {body.admin_status}")
    return ok({"series": series.to_document()}, "Series status updated successfully")
