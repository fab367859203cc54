"""Combined movie + series feeds."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_optional_role
from app.api.responses import ok
from app.database import get_db
from app.errors import ValidationFailed
from app.models.schemas import ContentType
from app.services import catalog
from app.services.auth import has_role
from app.services.query import build_filter_query, build_search_query, build_sort_query

router = APIRouter()

FILTER_ECHO = ("type", "search", "genres", "language", "releaseYear", "quality", "rating", "sortBy", "sortOrder")


def content_filters(params) -> dict:
    """Query parameters usable as field filters; ``type`` selects the feed instead."""
    return {k: v for k, v in params.items() if k != "type"}


@router.get("/content")
async def list_content(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    type: str = "all",
    search: str = "",
    sortBy: str = "newest",
    sortOrder: str = "desc",
    role: Optional[str] = Depends(get_optional_role),
    db: AsyncSession = Depends(get_db),
):
    """Movies and series as one catalog, filtered, sorted and paginated together."""
    predicate = (
        build_filter_query(content_filters(request.query_params))
        & build_search_query(search, catalog.CONTENT_SEARCH_FIELDS)
    )
    predicate = catalog.visible_to(predicate, has_role(role, "admin"))
    docs, pg, stats = await catalog.merged_feed(
        db, predicate, build_sort_query(sortBy, sortOrder), page, limit, type
    )
    return ok({
        "content": docs,
        "pagination": pg.envelope(),
        "filters": {key: request.query_params.get(key, "") for key in FILTER_ECHO},
        "stats": stats,
    })


@router.get("/content/featured")
async def featured_content(limit: int = 10, db: AsyncSession = Depends(get_db)):
    return ok({"featured": await catalog.featured(db, limit)})


@router.get("/content/trending")
async def trending_content(limit: int = 20, timeframe: str = "week", db: AsyncSession = Depends(get_db)):
    items = await catalog.trending(db, limit, timeframe)
    return ok({"trending": items, "timeframe": timeframe})


@router.get("/content/latest")
async def latest_content(limit: int = 20, type: str = "all", db: AsyncSession = Depends(get_db)):
    return ok({"latest": await catalog.latest(db, limit, type), "type": type})


@router.get("/content/genre/{genre}")
async def content_by_genre(
    genre: str,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    type: str = "all",
    db: AsyncSession = Depends(get_db),
):
    docs, pg = await catalog.by_genre(db, genre, page, limit, type)
    return ok({"content": docs, "genre": genre, "pagination": pg.envelope()})


@router.get("/content/recommendations")
async def recommended_content(
    contentId: Optional[int] = None,
    contentType: Optional[ContentType] = None,
    limit: int = 8,
    db: AsyncSession = Depends(get_db),
):
    if contentId is None or contentType is None:
        raise ValidationFailed("Content ID and type are required")
    items = await catalog.recommendations(db, contentId, contentType, limit)
    return ok({"recommendations": items, "basedOn": {"id": contentId, "type": contentType}})
