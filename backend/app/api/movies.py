"""Movie endpoints — listing, detail, CRUD, streaming servers and counters."""

import copy
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified

from app.api.deps import AuthContext, ensure_owner_or_admin, get_optional_role, require_admin, require_moderator
from app.api.responses import ok
from app.database import flush_or_conflict, get_db
from app.errors import NotFoundError
from app.models.schemas import MovieIn, ServerIn, StatusUpdate, StreamServer
from app.models.tables import Movie
from app.services import catalog
from app.services.auth import has_role
from app.services.counters import increment
from app.services.query import build_filter_query, build_search_query, build_sort_query

logger = logging.getLogger(__name__)

router = APIRouter()

DUPLICATE = "Movie with this title and year already exists"


async def _get_movie(db: AsyncSession, movie_id: int) -> Movie:
    movie = await db.get(Movie, movie_id)
    if movie is None:
        raise NotFoundError("Movie not found")
    return movie


# ── Listing ──────────────────────────────────────────────────────

@router.get("/movies")
async def list_movies(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: str = "",
    sortBy: str = "createdAt",
    sortOrder: str = "desc",
    role: Optional[str] = Depends(get_optional_role),
    db: AsyncSession = Depends(get_db),
):
    """Published movies with filters, search and sorting. Admins may filter by adminStatus."""
    predicate = build_filter_query(request.query_params) & build_search_query(search, catalog.MOVIE_SEARCH_FIELDS)
    predicate = catalog.visible_to(predicate, has_role(role, "admin"))
    docs, pg = await catalog.list_collection(
        db, Movie, predicate, build_sort_query(sortBy, sortOrder), page, limit
    )
    return ok({"movies": docs, "pagination": pg.envelope()})


@router.get("/movies/trending")
async def trending_movies(limit: int = 10, db: AsyncSession = Depends(get_db)):
    predicate = catalog.published().where("views", "gte", 1)
    movies = await catalog.fetch_documents(db, Movie, predicate, build_sort_query("trending"), limit)
    return ok({"movies": movies})


@router.get("/movies/latest")
async def latest_movies(limit: int = 12, db: AsyncSession = Depends(get_db)):
    return ok({"movies": await catalog.latest(db, limit, "movie")})


@router.get("/movies/genre/{genre}")
async def movies_by_genre(
    genre: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    docs, pg = await catalog.by_genre(db, genre, page, limit, "movie")
    return ok({"movies": docs, "genre": genre, "pagination": pg.envelope()})


# ── Detail ───────────────────────────────────────────────────────

@router.get("/movies/{identifier}")
async def get_movie(
    identifier: str,
    role: Optional[str] = Depends(get_optional_role),
    db: AsyncSession = Depends(get_db),
):
    """Movie by id or slug; every fetch counts as a view."""
    movie = await catalog.lookup(db, Movie, identifier, has_role(role, "admin"))
    doc = movie.to_document()
    doc["views"] = await increment(db, Movie, movie.id, "views")
    return ok({"movie": doc})


@router.get("/movies/{movie_id}/related")
async def related_movies(movie_id: int, limit: int = 8, db: AsyncSession = Depends(get_db)):
    movie = await _get_movie(db, movie_id)
    return ok({"movies": await catalog.related_movies(db, movie, limit)})


# ── CRUD ─────────────────────────────────────────────────────────

@router.post("/movies", status_code=201)
async def create_movie(
    body: MovieIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    movie = Movie(**catalog.column_values(body), added_by_id=auth.user_id)
    db.add(movie)
    await flush_or_conflict(db, DUPLICATE)
    logger.info(f"Movie {movie.id} '{movie.title}' created by user {auth.user_id}")
    return ok({"movie": movie.to_document()}, "Movie created successfully")


@router.put("/movies/{movie_id}")
async def update_movie(
    movie_id: int,
    body: MovieIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    movie = await _get_movie(db, movie_id)
    ensure_owner_or_admin(movie, auth)
    for key, value in catalog.column_values(body, exclude_unset=True).items():
        setattr(movie, key, value)
    movie.last_modified_by_id = auth.user_id
    await flush_or_conflict(db, DUPLICATE)
    return ok({"movie": movie.to_document()}, "Movie updated successfully")


@router.delete("/movies/{movie_id}")
async def delete_movie(
    movie_id: int,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    movie = await _get_movie(db, movie_id)
    ensure_owner_or_admin(movie, auth)
    await db.delete(movie)
    await db.flush()
    logger.info(f"Movie {movie_id} deleted by user {auth.user_id}")
    return ok(message="Movie deleted successfully")


# ── Servers ──────────────────────────────────────────────────────

@router.post("/movies/{movie_id}/servers")
async def add_server(
    movie_id: int,
    body: ServerIn,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    movie = await _get_movie(db, movie_id)
    ensure_owner_or_admin(movie, auth)
    servers = copy.deepcopy(movie.servers or [])
    servers.append(StreamServer(**body.model_dump()).model_dump(mode="json"))
    movie.servers = servers
    flag_modified(movie, "servers")
    movie.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"movie": movie.to_document()}, "Server added successfully")


@router.delete("/movies/{movie_id}/servers/{server_id}")
async def remove_server(
    movie_id: int,
    server_id: str,
    auth: AuthContext = Depends(require_moderator),
    db: AsyncSession = Depends(get_db),
):
    movie = await _get_movie(db, movie_id)
    ensure_owner_or_admin(movie, auth)
    servers = [s for s in movie.servers or [] if s.get("id") != server_id]
    if len(servers) == len(movie.servers or []):
        raise NotFoundError("Server not found")
    movie.servers = servers
    flag_modified(movie, "servers")
    movie.last_modified_by_id = auth.user_id
    await db.flush()
    return ok({"movie": movie.to_document()}, "Server removed successfully")


# ── Counters & status ────────────────────────────────────────────

@router.post("/movies/{movie_id}/like")
async def like_movie(movie_id: int, db: AsyncSession = Depends(get_db)):
    likes = await increment(db, Movie, movie_id, "likes")
    return ok({"likes": likes}, "Movie liked")


@router.post("/movies/{movie_id}/download")
async def count_download(movie_id: int, db: AsyncSession = Depends(get_db)):
    downloads = await increment(db, Movie, movie_id, "downloads")
    return ok({"downloads": downloads})


@router.patch("/movies/{movie_id}/status")
async def update_movie_status(
    movie_id: int,
    body: StatusUpdate,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    movie = await _get_movie(db, movie_id)
    movie.admin_status = body.admin_status
    movie.last_modified_by_id = auth.user_id
    await db.flush()
    logger.info(f"Movie {movie_id} status -> {body.admin_status}")
    return ok({"movie": movie.to_document()}, "Movie status updated successfully")
