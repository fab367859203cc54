"""Admin endpoints — dashboard statistics and TMDB import."""

import logging
from typing import Literal, Optional

import httpx
from fastapi import APIRouter, Depends
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthContext, require_admin
from app.api.responses import ok
from app.clients.tmdb import TmdbClient
from app.config import settings
from app.database import get_db
from app.errors import UpstreamError, ValidationFailed
from app.models.schemas import TmdbImportOptions, TmdbPopularRequest
from app.models.tables import Ad, Movie, Series, User
from app.services.catalog import PUBLISHED
from app.services.tmdb_import import TmdbImporter, upstream_error

logger = logging.getLogger(__name__)

router = APIRouter()


def get_tmdb_client() -> Optional[TmdbClient]:
    """TMDB client from settings; None when no API key is configured."""
    if not settings.has_tmdb:
        return None
    return TmdbClient(
        settings.tmdb_api_key,
        language=settings.tmdb_language,
        base_url=settings.tmdb_base_url,
        image_base=settings.tmdb_image_base_url,
        timeout=settings.tmdb_timeout_seconds,
    )


def _require(tmdb: Optional[TmdbClient]) -> TmdbClient:
    if tmdb is None:
        raise UpstreamError("TMDB API key is not configured")
    return tmdb


def _importer(tmdb: Optional[TmdbClient], db: AsyncSession) -> TmdbImporter:
    return TmdbImporter(_require(tmdb), db)


# ── Dashboard ────────────────────────────────────────────────────

@router.get("/admin/dashboard")
async def dashboard(auth: AuthContext = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    """Catalog, audience and ad totals."""
    stats = {}
    for label, model in (("Movies", Movie), ("Series", Series)):
        total, published, views = (await db.execute(
            select(
                func.count(model.id),
                func.coalesce(func.sum(case((model.admin_status == PUBLISHED, 1), else_=0)), 0),
                func.coalesce(func.sum(model.views), 0),
            )
        )).one()
        stats[f"total{label}"] = total
        stats[f"published{label}"] = published
        stats[f"views{label}"] = views

    stats["totalUsers"] = await db.scalar(select(func.count(User.id))) or 0
    stats["totalAds"] = await db.scalar(select(func.count(Ad.id))) or 0
    stats["activeAds"] = await db.scalar(select(func.count(Ad.id)).where(Ad.is_active.is_(True))) or 0
    stats["totalViews"] = stats.pop("viewsMovies") + stats.pop("viewsSeries")
    return ok({"stats": stats})


# ── TMDB ─────────────────────────────────────────────────────────

@router.get("/admin/tmdb/status")
async def tmdb_status(
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    if tmdb is None:
        return ok({"configured": False, "connected": False})
    return ok(await TmdbImporter(tmdb, db).status())


@router.get("/admin/tmdb/search")
async def tmdb_search(
    query: str = "",
    type: Literal["movie", "tv"] = "movie",
    page: int = 1,
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    """TMDB search results flagged with whether each one is already in the catalog."""
    if len(query.strip()) < 2:
        raise ValidationFailed("Search query must be at least 2 characters long")
    tmdb = _require(tmdb)
    try:
        data = await tmdb.search(type, query.strip(), page)
    except httpx.HTTPError as e:
        raise upstream_error(e, "Search")

    results = data.get("results", [])
    model = Movie if type == "movie" else Series
    ids = [r["id"] for r in results if "id" in r]
    existing = set((await db.execute(select(model.tmdb_id).where(model.tmdb_id.in_(ids)))).scalars())
    return ok({
        "results": [{**r, "alreadyImported": r.get("id") in existing} for r in results],
        "page": data.get("page", page),
        "totalPages": data.get("total_pages", 0),
        "totalResults": data.get("total_results", 0),
    })


@router.post("/admin/tmdb/movie/{tmdb_id}")
async def import_movie(
    tmdb_id: int,
    body: Optional[TmdbImportOptions] = None,
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    options = body or TmdbImportOptions()
    movie, is_new = await _importer(tmdb, db).import_movie(tmdb_id, auth.user_id, options.force_update)
    message = "Movie imported successfully" if is_new else "Movie updated from TMDB"
    return ok({"movie": movie.to_document(), "isNew": is_new}, message)


@router.post("/admin/tmdb/series/{tmdb_id}")
async def import_series(
    tmdb_id: int,
    body: Optional[TmdbImportOptions] = None,
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    options = body or TmdbImportOptions()
    series, is_new = await _importer(tmdb, db).import_series(
        tmdb_id,
        auth.user_id,
        force_update=options.force_update,
        import_seasons=options.import_seasons,
        update_seasons=options.update_seasons,
    )
    message = "Series imported successfully" if is_new else "Series updated from TMDB"
    return ok({"series": series.to_document(), "isNew": is_new}, message)


@router.post("/admin/tmdb/popular/movies")
async def import_popular_movies(
    body: Optional[TmdbPopularRequest] = None,
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    options = body or TmdbPopularRequest()
    results = await _importer(tmdb, db).import_popular("movie", auth.user_id, options.pages)
    logger.info(f"Popular movie import: {len(results['imported'])} imported, {len(results['skipped'])} skipped")
    return ok(results, f"Imported {len(results['imported'])} movies")


@router.post("/admin/tmdb/popular/series")
async def import_popular_series(
    body: Optional[TmdbPopularRequest] = None,
    auth: AuthContext = Depends(require_admin),
    tmdb: Optional[TmdbClient] = Depends(get_tmdb_client),
    db: AsyncSession = Depends(get_db),
):
    options = body or TmdbPopularRequest()
    results = await _importer(tmdb, db).import_popular("tv", auth.user_id, options.pages, options.import_seasons)
    logger.info(f"Popular series import: {len(results['imported'])} imported, {len(results['skipped'])} skipped")
    return ok(results, f"Imported {len(results['imported'])} series")
