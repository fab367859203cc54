"""Season and episode mutations on a series.

Seasons live in the series' ``seasons`` JSON column as plain dicts. Every
mutation works on a deep copy, validates the new piece with its pydantic
model, then reassigns the column so the ORM sees the change. Derived counts
are refreshed here and again by the save-time hook.
"""

import copy
import logging
from typing import Optional

from sqlalchemy.orm.attributes import flag_modified

from app.errors import ConflictError, NotFoundError
from app.models.schemas import Episode, EpisodeIn, EpisodeUpdate, Season, SeasonIn, ServerIn, StreamServer
from app.models.tables import Series, utcnow

logger = logging.getLogger(__name__)


def find_season(seasons: list[dict], season_number: int) -> Optional[dict]:
    for season in seasons:
        if season.get("season_number") == season_number:
            return season
    return None


def find_episode(season: dict, episode_number: int) -> Optional[dict]:
    for episode in season.get("episodes") or []:
        if episode.get("episode_number") == episode_number:
            return episode
    return None


def _store(series: Series, seasons: list[dict]) -> None:
    seasons.sort(key=lambda s: s.get("season_number", 0))
    series.seasons = seasons
    flag_modified(series, "seasons")
    series.refresh_counts()


def _locate(seasons: list[dict], season_number: int, episode_number: int) -> dict:
    season = find_season(seasons, season_number)
    if season is None:
        raise NotFoundError("Season not found")
    episode = find_episode(season, episode_number)
    if episode is None:
        raise NotFoundError("Episode not found")
    return episode


def replace_seasons(series: Series, seasons: list[Season]) -> None:
    """Overwrite the whole season list (create/update bodies, importer)."""
    _store(series, [s.model_dump(mode="json") for s in seasons])


def add_season(series: Series, data: SeasonIn) -> dict:
    seasons = copy.deepcopy(series.seasons or [])
    if find_season(seasons, data.season_number) is not None:
        raise ConflictError("Season already exists")

    season = Season(**data.model_dump()).model_dump(mode="json")
    seasons.append(season)
    _store(series, seasons)
    logger.info(f"Series {series.id}: added season {data.season_number}")
    return season


def add_episode(series: Series, season_number: int, data: EpisodeIn) -> dict:
    seasons = copy.deepcopy(series.seasons or [])
    season = find_season(seasons, season_number)
    if season is None:
        raise NotFoundError("Season not found")
    if find_episode(season, data.episode_number) is not None:
        raise ConflictError("Episode already exists")

    episode = Episode(**data.model_dump()).model_dump(mode="json")
    episodes = season.setdefault("episodes", [])
    episodes.append(episode)
    episodes.sort(key=lambda e: e.get("episode_number", 0))
    _store(series, seasons)
    logger.info(f"Series {series.id}: added S{season_number}E{data.episode_number}")
    return episode


def get_episode(series: Series, season_number: int, episode_number: int) -> dict:
    return _locate(series.seasons or [], season_number, episode_number)


def update_episode(series: Series, season_number: int, episode_number: int, changes: EpisodeUpdate) -> dict:
    seasons = copy.deepcopy(series.seasons or [])
    episode = _locate(seasons, season_number, episode_number)

    merged = {**episode, **changes.model_dump(mode="json", exclude_unset=True)}
    # Revalidate the merged episode; id and episode number are kept
    episode.clear()
    episode.update(Episode(**merged).model_dump(mode="json"))
    _store(series, seasons)
    return episode


def add_server_to_episode(series: Series, season_number: int, episode_number: int, server: ServerIn) -> dict:
    seasons = copy.deepcopy(series.seasons or [])
    episode = _locate(seasons, season_number, episode_number)

    entry = StreamServer(**server.model_dump()).model_dump(mode="json")
    episode.setdefault("servers", []).append(entry)
    _store(series, seasons)
    return episode


def record_episode_view(series: Series, season_number: int, episode_number: int) -> dict:
    """Bump an episode's view counter.

    Read-modify-write on the JSON document: concurrent views of the same
    series may lose an increment.
    """
    seasons = copy.deepcopy(series.seasons or [])
    episode = _locate(seasons, season_number, episode_number)
    episode["views"] = int(episode.get("views") or 0) + 1
    series.seasons = seasons
    flag_modified(series, "seasons")
    series.updated_at = utcnow()
    return episode
