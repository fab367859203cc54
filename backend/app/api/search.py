"""Catalog search, title suggestions and popular terms."""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.responses import ok
from app.database import get_db
from app.services import catalog
from app.services.query import build_filter_query

router = APIRouter()

SEARCH_FILTERS = ("genres", "language", "releaseYear", "quality", "rating")
SUGGESTION_FIELDS = ("id", "title", "slug", "poster_path", "release_year", "type", "content_type")


@router.get("/search")
async def search(
    request: Request,
    q: Optional[str] = None,
    type: str = "all",
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sortBy: str = "relevance",
    db: AsyncSession = Depends(get_db),
):
    """Relevance-ranked search across movies and series."""
    filters = build_filter_query({k: request.query_params[k] for k in SEARCH_FILTERS if k in request.query_params})
    results, pg = await catalog.search(db, q, filters, type, sortBy, page, limit)
    return ok({
        "results": results,
        "query": (q or "").strip(),
        "total": pg.total,
        "pagination": pg.full_envelope(),
        "filters": {"type": type, **{k: request.query_params.get(k) for k in SEARCH_FILTERS}},
    })


@router.get("/search/suggestions")
async def suggestions(q: Optional[str] = None, limit: int = 10, db: AsyncSession = Depends(get_db)):
    docs = await catalog.suggestions(db, q, limit)
    return ok({"suggestions": [{k: d.get(k) for k in SUGGESTION_FIELDS} for d in docs]})


@router.get("/search/popular")
async def popular(db: AsyncSession = Depends(get_db)):
    return ok({"popularTerms": await catalog.popular_terms(db)})
