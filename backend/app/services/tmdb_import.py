"""TMDB import service.

Fetches movie and series metadata from TMDB and maps it into catalog rows.
Imported items start as drafts. A second import of the same TMDB id is a
conflict unless the caller asks for an update in place.
"""

import logging
from datetime import date
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.tmdb import TmdbClient
from app.errors import AppError, ConflictError, NotFoundError, UpstreamError, ValidationFailed
from app.models.schemas import MovieIn, Season, SeriesIn
from app.models.tables import Movie, Series, utcnow
from app.services.catalog import column_values
from app.services.episodes import replace_seasons

logger = logging.getLogger(__name__)

SERIES_STATUSES = {"Returning Series", "Ended", "Canceled", "In Production", "Planned"}


def _date(value: Optional[str]) -> Optional[date]:
    try:
        return date.fromisoformat(value) if value else None
    except ValueError:
        return None


def _rating(value: Any) -> float:
    return round(float(value or 0), 1)


def _languages(data: dict) -> list[str]:
    names = [l.get("english_name") or l.get("name") for l in data.get("spoken_languages") or []]
    return [n for n in names if n] or ["English"]


def _people(tmdb: TmdbClient, people: list[dict], with_character: bool = True) -> list[dict]:
    out = []
    for person in people:
        entry = {"name": person.get("name", ""), "profile_path": tmdb.image_url(person.get("profile_path"), "w185")}
        if with_character:
            entry["character"] = person.get("character") or ""
        out.append(entry)
    return out


def series_type(data: dict) -> str:
    """Anime for Japanese animation, Kdrama for Korean productions, else Series."""
    genres = {g.get("name", "").lower() for g in data.get("genres") or []}
    origin = data.get("origin_country") or []
    if "animation" in genres and "JP" in origin:
        return "Anime"
    if "KR" in origin:
        return "Kdrama"
    return "Series"


# ── Mapping ──────────────────────────────────────────────────────

def map_movie(tmdb: TmdbClient, data: dict) -> dict:
    released = _date(data.get("release_date"))
    credits = data.get("credits") or {}
    director = next((c.get("name", "") for c in credits.get("crew") or [] if c.get("job") == "Director"), "")
    countries = data.get("production_countries") or []
    return {
        "title": data.get("title") or data.get("original_title") or "",
        "overview": data.get("overview") or "",
        "poster_path": tmdb.image_url(data.get("poster_path"), "w500"),
        "backdrop_path": tmdb.image_url(data.get("backdrop_path"), "w1280"),
        "release_year": released.year if released else utcnow().year,
        "release_date": released,
        "rating": _rating(data.get("vote_average")),
        "imdb_rating": _rating(data.get("vote_average")),
        "genres": [g["name"] for g in data.get("genres") or []],
        "type": "Movie",
        "runtime": data.get("runtime") or 0,
        "country": countries[0].get("name", "") if countries else "",
        "language": _languages(data),
        "director": director,
        "cast": _people(tmdb, (credits.get("cast") or [])[:10]),
        "tmdb_id": data["id"],
        "imdb_id": data.get("imdb_id") or None,
        "trailer_url": tmdb.trailer_url(data.get("videos")),
        "keywords": [k["name"] for k in (data.get("keywords") or {}).get("keywords", [])],
        "admin_status": "Draft",
    }


def map_series(tmdb: TmdbClient, data: dict) -> dict:
    first_aired = _date(data.get("first_air_date"))
    credits = data.get("credits") or {}
    external = data.get("external_ids") or {}
    countries = data.get("production_countries") or []
    return {
        "title": data.get("name") or data.get("original_name") or "",
        "overview": data.get("overview") or "",
        "poster_path": tmdb.image_url(data.get("poster_path"), "w500"),
        "backdrop_path": tmdb.image_url(data.get("backdrop_path"), "w1280"),
        "release_year": first_aired.year if first_aired else utcnow().year,
        "first_air_date": first_aired,
        "last_air_date": _date(data.get("last_air_date")),
        "rating": _rating(data.get("vote_average")),
        "imdb_rating": _rating(data.get("vote_average")),
        "genres": [g["name"] for g in data.get("genres") or []],
        "type": series_type(data),
        "episode_run_time": data.get("episode_run_time") or [],
        "country": countries[0].get("name", "") if countries else "",
        "original_country": data.get("origin_country") or [],
        "language": _languages(data),
        "original_language": data.get("original_language") or "en",
        "networks": [
            {"name": n.get("name", ""), "logo_path": tmdb.image_url(n.get("logo_path"), "w92")}
            for n in data.get("networks") or []
        ],
        "creators": _people(tmdb, data.get("created_by") or [], with_character=False),
        "cast": _people(tmdb, (credits.get("cast") or [])[:10]),
        "series_status": data.get("status") if data.get("status") in SERIES_STATUSES else "Returning Series",
        "tmdb_id": data["id"],
        "imdb_id": external.get("imdb_id") or None,
        "tvdb_id": external.get("tvdb_id") or None,
        "trailer_url": tmdb.trailer_url(data.get("videos")),
        "keywords": [k["name"] for k in (data.get("keywords") or {}).get("results", [])],
        "admin_status": "Draft",
    }


def map_season(tmdb: TmdbClient, data: dict) -> Season:
    """Validated season document from a TMDB season payload."""
    return Season(
        season_number=data["season_number"],
        name=data.get("name") or None,
        overview=(data.get("overview") or "")[:1000],
        poster_path=tmdb.image_url(data.get("poster_path"), "w500"),
        air_date=_date(data.get("air_date")),
        tmdb_id=data.get("id"),
        episodes=[
            {
                "episode_number": ep["episode_number"],
                "title": (ep.get("name") or f"Episode {ep['episode_number']}")[:200],
                "overview": (ep.get("overview") or "")[:1000],
                "runtime": ep.get("runtime") or 0,
                "air_date": _date(ep.get("air_date")),
                "still_path": tmdb.image_url(ep.get("still_path"), "w300"),
                "rating": _rating(ep.get("vote_average")),
                "tmdb_id": ep.get("id"),
            }
            for ep in data.get("episodes") or []
        ],
    )


def validated(schema: type[MovieIn] | type[SeriesIn], data: dict, what: str) -> dict:
    """Run mapped TMDB data through the same rules as a hand-entered item."""
    try:
        body = schema.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(
            f"TMDB {what} data is incomplete",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e
    return column_values(body, exclude_unset=True)


def upstream_error(e: httpx.HTTPError, what: str) -> AppError:
    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code == 404:
        return NotFoundError(f"{what} not found on TMDB")
    return UpstreamError(f"TMDB request failed: {e}")


# ── Import ───────────────────────────────────────────────────────

class TmdbImporter:
    """Creates or refreshes catalog rows from TMDB."""

    def __init__(self, tmdb: TmdbClient, db: AsyncSession):
        self.tmdb = tmdb
        self.db = db

    async def _existing(self, model, tmdb_id: int):
        stmt = select(model).where(model.tmdb_id == tmdb_id)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _flush(self, label: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(f"{label} with this title and year already exists") from e

    async def import_movie(self, tmdb_id: int, user_id: Optional[int], force_update: bool = False) -> tuple[Movie, bool]:
        existing = await self._existing(Movie, tmdb_id)
        if existing is not None and not force_update:
            raise ConflictError("Movie already exists in database")

        try:
            raw = await self.tmdb.get_movie(tmdb_id)
        except httpx.HTTPError as e:
            raise upstream_error(e, "Movie")
        data = validated(MovieIn, map_movie(self.tmdb, raw), "movie")

        if existing is not None:
            data.pop("admin_status")  # a refresh keeps the publication state
            for key, value in data.items():
                setattr(existing, key, value)
            existing.last_modified_by_id = user_id
            movie, is_new = existing, False
        else:
            movie, is_new = Movie(**data, added_by_id=user_id), True
            self.db.add(movie)

        await self._flush("Movie")
        logger.info(f"Imported movie tmdb_id={tmdb_id} '{movie.title}' (new={is_new})")
        return movie, is_new

    async def import_series(
        self,
        tmdb_id: int,
        user_id: Optional[int],
        force_update: bool = False,
        import_seasons: bool = False,
        update_seasons: bool = False,
    ) -> tuple[Series, bool]:
        existing = await self._existing(Series, tmdb_id)
        if existing is not None and not force_update:
            raise ConflictError("Series already exists in database")

        try:
            raw = await self.tmdb.get_series(tmdb_id)
        except httpx.HTTPError as e:
            raise upstream_error(e, "Series")
        data = validated(SeriesIn, map_series(self.tmdb, raw), "series")

        if existing is not None:
            data.pop("admin_status")  # a refresh keeps the publication state
            for key, value in data.items():
                setattr(existing, key, value)
            existing.last_modified_by_id = user_id
            # Existing seasons are kept unless a refresh was asked for
            if update_seasons:
                replace_seasons(existing, [])
            series, is_new = existing, False
        else:
            series, is_new = Series(**data, seasons=[], added_by_id=user_id), True
            self.db.add(series)

        if import_seasons:
            await self.import_seasons(series, tmdb_id, raw.get("seasons") or [])

        await self._flush("Series")
        logger.info(f"Imported series tmdb_id={tmdb_id} '{series.title}' (new={is_new})")
        return series, is_new

    async def import_seasons(self, series: Series, tmdb_id: int, summaries: list[dict]) -> dict:
        """Fetch every regular season; a season that fails is logged and skipped."""
        imported, failed = [], []
        seasons = [Season(**s) for s in series.seasons or []]

        for summary in summaries:
            number = summary.get("season_number")
            if not number:
                continue  # specials
            try:
                season = map_season(self.tmdb, await self.tmdb.get_season(tmdb_id, number))
            except (httpx.HTTPError, ValidationError, KeyError) as e:
                logger.warning(f"Series tmdb_id={tmdb_id}: season {number} import failed: {e}")
                failed.append(number)
                continue

            if any(s.season_number == number for s in seasons):
                seasons = [season if s.season_number == number else s for s in seasons]
            else:
                seasons.append(season)
            imported.append(number)

        replace_seasons(series, seasons)
        return {"imported": imported, "failed": failed}

    async def import_popular(
        self,
        media_type: str,
        user_id: Optional[int],
        pages: int = 1,
        import_seasons: bool = False,
    ) -> dict[str, list]:
        """Import TMDB's popular ``movie`` or ``tv`` lists page by page."""
        results: dict[str, list] = {"imported": [], "skipped": [], "errors": []}

        for page in range(1, pages + 1):
            try:
                items = await self.tmdb.get_popular(media_type, page)
            except httpx.HTTPError as e:
                raise upstream_error(e, "Popular list")

            for item in items:
                tmdb_id = item["id"]
                title = item.get("title") or item.get("name") or ""
                try:
                    async with self.db.begin_nested():
                        if media_type == "movie":
                            _, is_new = await self.import_movie(tmdb_id, user_id)
                        else:
                            _, is_new = await self.import_series(tmdb_id, user_id, import_seasons=import_seasons)
                    results["imported"].append({"tmdbId": tmdb_id, "title": title, "isNew": is_new})
                except ConflictError:
                    results["skipped"].append({"tmdbId": tmdb_id, "title": title, "reason": "Already exists"})
                except AppError as e:
                    logger.warning(f"Bulk import of tmdb_id={tmdb_id} failed: {e.message}")
                    results["errors"].append({"tmdbId": tmdb_id, "title": title, "error": e.message})

        return results

    async def status(self) -> dict:
        connected = await self.tmdb.test_connection()
        status = {"configured": True, "connected": connected}
        if not connected:
            status["error"] = "TMDB API unreachable or key rejected"
        return status
