"""Catalog queries — listing, merged movie/series feeds, ranking and search.

Movies and series are separate tables but the site presents them as one
catalog. Merged views run the same predicate against both, tag each document
with its ``content_type``, then sort and slice in memory. The number of rows
fetched per collection for a merged view is capped by
``settings.catalog_max_feed_size``.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import NotFoundError, ValidationFailed
from app.models.tables import Movie, Series, as_utc, utcnow
from app.services.pagination import Page, paginate
from app.services.query import (
    MIN_SEARCH_LENGTH, Condition, Ordering, Predicate, SortKey,
    build_search_query, build_sort_query, compile_predicate, order_by_clauses, sort_documents,
)

logger = logging.getLogger(__name__)

PUBLISHED = "Published"

MOVIE_SEARCH_FIELDS = ("title", "overview", "director", "cast.name")
SERIES_SEARCH_FIELDS = ("title", "overview", "cast.name", "creators.name", "networks.name")
CONTENT_SEARCH_FIELDS = ("title", "overview", "director", "cast.name", "creators.name")
SEARCH_FIELDS = ("title", "overview", "director", "cast.name", "creators.name", "networks.name")

# Feed type → [(model, extra predicate)]
FEED_TYPES = {
    "all": ((Movie, Predicate()), (Series, Predicate())),
    "movie": ((Movie, Predicate().where("type", "eq", "Movie")),),
    "series": ((Series, Predicate().where("type", "eq", "Series")),),
    "anime": ((Series, Predicate().where("type", "eq", "Anime")),),
    "kdrama": ((Series, Predicate().where("type", "eq", "Kdrama")),),
}

# Search maps anime to movies and lets "series" include anime series
SEARCH_TYPES = {
    "all": ((Movie, Predicate()), (Series, Predicate())),
    "movie": ((Movie, Predicate().where("type", "eq", "Movie")),),
    "anime": ((Movie, Predicate().where("type", "eq", "Anime")),),
    "series": ((Series, Predicate().where("type", "in", ("Series", "Anime"))),),
    "kdrama": ((Series, Predicate().where("type", "eq", "Kdrama")),),
}

SEARCH_SORTS = {
    "rating": (SortKey("rating"),),
    "year": (SortKey("release_year"),),
    "alphabetical": (SortKey("title", descending=False),),
    "views": (SortKey("views"),),
}

TIMEFRAMES = {"week": timedelta(days=7), "month": timedelta(days=30)}


def published() -> Predicate:
    return Predicate().where("admin_status", "eq", PUBLISHED)


def visible_to(predicate: Predicate, is_admin: bool) -> Predicate:
    """Published items only, unless an admin asks for a specific status."""
    status_clauses = [
        c for c in predicate.clauses if isinstance(c, Condition) and c.field == "admin_status"
    ]
    if is_admin and status_clauses:
        return predicate
    stripped = Predicate(tuple(c for c in predicate.clauses if c not in status_clauses))
    return stripped & published()


def column_values(body: BaseModel, exclude_unset: bool = False) -> dict[str, Any]:
    """Request body → column values; nested lists are stored in their JSON form."""
    native = body.model_dump(exclude_unset=exclude_unset)
    as_json = body.model_dump(mode="json", exclude_unset=exclude_unset)
    return {
        key: as_json[key] if isinstance(value, (list, dict)) else value
        for key, value in native.items()
    }


def half(limit: int) -> int:
    return max(1, math.ceil(limit / 2))


# ── Fetching ─────────────────────────────────────────────────────

async def fetch_documents(
    db: AsyncSession,
    model,
    predicate: Predicate,
    ordering: Ordering = (),
    limit: Optional[int] = None,
) -> list[dict]:
    """Documents matching ``predicate`` in ``ordering``, at most ``limit`` of them."""
    sql, residual = compile_predicate(model, predicate)
    stmt = select(model).where(*sql).order_by(*order_by_clauses(model, ordering))
    if residual.is_empty and limit:
        stmt = stmt.limit(limit)
    else:
        stmt = stmt.limit(settings.catalog_max_feed_size)

    rows = (await db.execute(stmt)).scalars().all()
    docs = [row.to_document() for row in rows]
    if not residual.is_empty:
        docs = [d for d in docs if residual.matches(d)]
    docs = sort_documents(docs, ordering)
    return docs[:limit] if limit else docs


async def list_collection(
    db: AsyncSession,
    model,
    predicate: Predicate,
    ordering: Ordering,
    page: Any = None,
    limit: Any = None,
) -> tuple[list[dict], Page]:
    """One page of a single collection.

    Fully SQL-expressible predicates are paginated by the database; anything
    with a residual (JSON-array or sub-document conditions) is filtered and
    sliced in memory.
    """
    sql, residual = compile_predicate(model, predicate)
    if residual.is_empty:
        total = await db.scalar(select(func.count()).select_from(model).where(*sql))
        pg = paginate(page, limit, total or 0)
        stmt = (
            select(model)
            .where(*sql)
            .order_by(*order_by_clauses(model, ordering))
            .offset(pg.skip)
            .limit(pg.limit)
        )
        rows = (await db.execute(stmt)).scalars().all()
        return [row.to_document() for row in rows], pg

    docs = await fetch_documents(db, model, predicate, ordering)
    pg = paginate(page, limit, len(docs))
    return pg.slice(docs), pg


async def merged_feed(
    db: AsyncSession,
    predicate: Predicate,
    ordering: Ordering,
    page: Any = None,
    limit: Any = None,
    content_type: str = "all",
    targets: Optional[Sequence] = None,
) -> tuple[list[dict], Page, dict]:
    """Merged, re-sorted and paginated movie + series feed."""
    targets = targets if targets is not None else FEED_TYPES.get(content_type, FEED_TYPES["all"])
    docs: list[dict] = []
    for model, extra in targets:
        docs.extend(await fetch_documents(db, model, predicate & extra, ordering))

    if len(targets) > 1:
        docs = sort_documents(docs, ordering)

    pg = paginate(page, limit, len(docs))
    stats = {
        "totalResults": len(docs),
        "movieCount": sum(1 for d in docs if d["content_type"] == "Movie"),
        "seriesCount": sum(1 for d in docs if d["content_type"] == "Series"),
    }
    return pg.slice(docs), pg, stats


# ── Scores ───────────────────────────────────────────────────────

def trending_score(doc: dict, now: Optional[datetime] = None) -> float:
    now = now or utcnow()
    created = as_utc(doc.get("created_at")) or now
    days = (now - created).total_seconds() / 86400
    freshness = max(0.0, 10 - days)
    return (doc.get("views") or 0) * 0.6 + (doc.get("rating") or 0) * 0.2 + (doc.get("likes") or 0) * 0.1 + freshness


def featured_score(doc: dict) -> float:
    return (doc.get("rating") or 0) * 0.7 + math.log((doc.get("views") or 0) + 1) * 0.3


def relevance_score(doc: dict, term: str, current_year: Optional[int] = None) -> float:
    current_year = current_year or utcnow().year
    term = term.lower()
    title = (doc.get("title") or "").lower()
    score = 0.0
    if term in title:
        score += 100
        if title == term:
            score += 200
        if title.startswith(term):
            score += 50
    if term in (doc.get("overview") or "").lower():
        score += 20
    score += (doc.get("rating") or 0) * 5
    score += (doc.get("imdb_rating") or 0) * 3
    score += math.log((doc.get("views") or 0) + 1) * 2
    score += max(0, 10 - (current_year - (doc.get("release_year") or current_year)))
    return score


# ── Feeds ────────────────────────────────────────────────────────

async def latest(db: AsyncSession, limit: int = 20, content_type: str = "all") -> list[dict]:
    ordering = build_sort_query("newest")
    if content_type == "movie":
        return await fetch_documents(db, Movie, published(), ordering, limit)
    if content_type == "series":
        return await fetch_documents(db, Series, published(), ordering, limit)

    docs = await fetch_documents(db, Movie, published(), ordering, half(limit))
    docs += await fetch_documents(db, Series, published(), ordering, half(limit))
    return sort_documents(docs, ordering)[:limit]


async def by_genre(
    db: AsyncSession, genre: str, page: Any = None, limit: Any = None, content_type: str = "all"
) -> tuple[list[dict], Page]:
    predicate = published().where("genres", "eq", genre)
    ordering = (SortKey("rating"), SortKey("views"))
    targets = {
        "movie": ((Movie, Predicate()),),
        "series": ((Series, Predicate()),),
    }.get(content_type, FEED_TYPES["all"])

    docs: list[dict] = []
    for model, extra in targets:
        docs.extend(await fetch_documents(db, model, predicate & extra, ordering))
    # Movies first, then series, each in rating order
    pg = paginate(page, limit, len(docs))
    return pg.slice(docs), pg


def _timeframe_start(timeframe: str, now: datetime) -> Optional[datetime]:
    if timeframe == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe in TIMEFRAMES:
        return now - TIMEFRAMES[timeframe]
    return None


async def trending(
    db: AsyncSession,
    limit: int = 20,
    timeframe: str = "week",
    models: Sequence = (Movie, Series),
) -> list[dict]:
    now = utcnow()
    predicate = published().where("views", "gte", 1)
    start = _timeframe_start(timeframe, now)
    if start is not None:
        predicate = predicate.where("created_at", "gte", start)

    ordering = (SortKey("views"), SortKey("rating"), SortKey("created_at"))
    cap = limit if len(models) == 1 else half(limit)
    docs: list[dict] = []
    for model in models:
        docs.extend(await fetch_documents(db, model, predicate, ordering, cap))

    docs.sort(key=lambda d: trending_score(d, now), reverse=True)
    return docs[:limit]


async def featured(db: AsyncSession, limit: int = 10) -> list[dict]:
    predicate = published().where("status", "eq", "Featured")
    ordering = (SortKey("rating"), SortKey("views"))
    docs = await fetch_documents(db, Movie, predicate, ordering, half(limit))
    docs += await fetch_documents(db, Series, predicate, ordering, half(limit))
    docs.sort(key=featured_score, reverse=True)
    return docs[:limit]


def similar_to(source: dict, year_window: int = 2) -> Predicate:
    """Shares a genre, shares a language, or released within ``year_window`` years."""
    year = source.get("release_year") or 0
    return Predicate().any_of(
        Condition("genres", "in", tuple(source.get("genres") or ())),
        Condition("language", "in", tuple(source.get("language") or ())),
        Condition("release_year", "between", (year - year_window, year + year_window)),
    )


async def recommendations(
    db: AsyncSession, content_id: int, content_type: str, limit: int = 8
) -> list[dict]:
    source_model = Movie if content_type == "Movie" else Series
    source = await db.get(source_model, content_id)
    if source is None:
        raise NotFoundError("Content not found")

    similar = similar_to(source.to_document())
    ordering = (SortKey("rating"), SortKey("views"))
    docs: list[dict] = []
    for model in (Movie, Series):
        predicate = published() & similar
        if model is source_model:
            predicate = predicate.where("id", "ne", content_id)
        docs.extend(await fetch_documents(db, model, predicate, ordering, half(limit)))

    docs = docs[:limit]
    docs.sort(key=lambda d: d.get("rating") or 0, reverse=True)
    return docs


async def related_movies(db: AsyncSession, movie: Movie, limit: int = 8) -> list[dict]:
    """Published movies sharing a genre, a language or the release year."""
    predicate = published().where("id", "ne", movie.id) & similar_to(movie.to_document(), year_window=0)
    return await fetch_documents(db, Movie, predicate, (SortKey("rating"), SortKey("views")), limit)


# ── Search ───────────────────────────────────────────────────────

async def search(
    db: AsyncSession,
    term: Optional[str],
    filters: Predicate = Predicate(),
    content_type: str = "all",
    sort_by: str = "relevance",
    page: Any = None,
    limit: Any = None,
) -> tuple[list[dict], Page]:
    if not term or len(term.strip()) < MIN_SEARCH_LENGTH:
        raise ValidationFailed("Search query must be at least 2 characters long")
    term = term.strip()

    predicate = build_search_query(term, SEARCH_FIELDS) & filters & published()
    targets = SEARCH_TYPES.get(content_type, SEARCH_TYPES["all"])
    docs: list[dict] = []
    for model, extra in targets:
        docs.extend(await fetch_documents(db, model, predicate & extra))

    year = utcnow().year
    if sort_by in SEARCH_SORTS:
        docs = sort_documents(docs, SEARCH_SORTS[sort_by])
    else:
        docs.sort(key=lambda d: relevance_score(d, term, year), reverse=True)

    pg = paginate(page, limit, len(docs))
    return pg.slice(docs), pg


async def suggestions(db: AsyncSession, term: Optional[str], limit: int = 10) -> list[dict]:
    """Title prefix matches, alphabetical."""
    if not term or len(term.strip()) < MIN_SEARCH_LENGTH:
        return []
    predicate = published().where("title", "prefix", term.strip())
    ordering = (SortKey("title", descending=False),)
    docs = await fetch_documents(db, Movie, predicate, ordering, half(limit))
    docs += await fetch_documents(db, Series, predicate, ordering, half(limit))
    return sort_documents(docs, ordering)[:limit]


async def popular_terms(db: AsyncSession, limit: int = 15) -> list[str]:
    ordering = (SortKey("views"),)
    docs = await fetch_documents(db, Movie, published(), ordering, 10)
    docs += await fetch_documents(db, Series, published(), ordering, 10)
    return [d["title"] for d in sort_documents(docs, ordering)[:limit]]


# ── Lookup ───────────────────────────────────────────────────────

async def lookup(db: AsyncSession, model, identifier: str, is_admin: bool = False):
    """Find by numeric id or by slug. Non-admins only see published items."""
    if identifier.isdigit():
        stmt = select(model).where(model.id == int(identifier))
    else:
        stmt = select(model).where(model.slug == identifier)
    if not is_admin:
        stmt = stmt.where(model.admin_status == PUBLISHED)
    item = (await db.execute(stmt)).scalar_one_or_none()
    if item is None:
        raise NotFoundError(f"{model.content_type} not found")
    return item
