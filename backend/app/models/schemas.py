"""Pydantic models — request bodies and the nested documents stored in JSON columns.

Stored documents (seasons, episodes, servers, cast, …) are dumped with
snake_case keys; the HTTP surface speaks camelCase through the alias
generator, and accepts either spelling on input.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Enumerations ─────────────────────────────────────────────────

StreamQuality = Literal["480p", "720p", "1080p", "4K"]
ServerType = Literal["embed", "direct", "torrent"]
ContentStatus = Literal["New", "Updated", "Featured"]
AdminStatus = Literal["Draft", "Published", "Pending", "Archived"]
MovieType = Literal["Movie", "Anime"]
SeriesType = Literal["Series", "Anime", "Kdrama"]
MovieQuality = Literal[
    "CAM", "TS", "TC", "WP", "SCR", "DVDScr", "R5", "DVDRip", "BDRip", "HDRip",
    "WEBRip", "WEB-DL", "BluRay", "4K", "HD", "Full HD", "Pre-DVDRip",
]
SeriesQuality = Literal["HDTV", "WEBRip", "WEB-DL", "BluRay", "HD", "Full HD", "4K"]
SeriesStatus = Literal["Returning Series", "Ended", "Canceled", "In Production", "Planned"]
ContentType = Literal["Movie", "Series"]
Role = Literal["user", "moderator", "admin"]

AdType = Literal["Banner", "Skyscraper", "Video", "Pop-under", "Direct Link", "Native", "Interstitial"]
AdPlacement = Literal[
    "Header", "Footer", "Sidebar", "Before Player", "After Player", "In Content",
    "Pop-under", "Mobile Banner", "Desktop Banner", "Global",
]
AdPage = Literal["homepage", "detail", "search", "category", "all"]
AdDevice = Literal["desktop", "mobile", "tablet", "all"]

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


def new_id() -> str:
    return uuid.uuid4().hex


def latest_release_year() -> int:
    return date.today().year + 5


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Nested documents ─────────────────────────────────────────────

class CastMember(CamelModel):
    name: str = Field(min_length=1)
    character: str = ""
    profile_path: str = ""


class Creator(CamelModel):
    name: str = Field(min_length=1)
    profile_path: str = ""


class Network(CamelModel):
    name: str = Field(min_length=1)
    logo_path: str = ""


class StreamServer(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    quality: StreamQuality = "720p"
    active: bool = True
    server_type: ServerType = "embed"


class DownloadLink(CamelModel):
    id: str = Field(default_factory=new_id)
    label: str = Field(min_length=1)
    url: str = Field(min_length=1)
    quality: StreamQuality = "720p"
    size: str = ""
    active: bool = True


class DownloadGroup(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str = Field(min_length=1)
    icon: Literal["quality", "server"] = "quality"
    links: list[DownloadLink] = Field(default_factory=list)


class EpisodeIn(CamelModel):
    episode_number: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=200)
    overview: str = Field("", max_length=1000)
    runtime: int = Field(0, ge=0)
    air_date: Optional[date] = None
    still_path: str = ""
    servers: list[StreamServer] = Field(default_factory=list)
    download_links: list[DownloadLink] = Field(default_factory=list)
    rating: float = Field(0, ge=0, le=10)
    active: bool = True
    tmdb_id: Optional[int] = None


class Episode(EpisodeIn):
    id: str = Field(default_factory=new_id)
    views: int = Field(0, ge=0)


class EpisodeUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    overview: Optional[str] = Field(None, max_length=1000)
    runtime: Optional[int] = Field(None, ge=0)
    air_date: Optional[date] = None
    still_path: Optional[str] = None
    servers: Optional[list[StreamServer]] = None
    download_links: Optional[list[DownloadLink]] = None
    rating: Optional[float] = Field(None, ge=0, le=10)
    active: Optional[bool] = None
    tmdb_id: Optional[int] = None


class SeasonIn(CamelModel):
    season_number: int = Field(ge=0)
    name: Optional[str] = None
    overview: str = Field("", max_length=1000)
    poster_path: str = ""
    air_date: Optional[date] = None
    tmdb_id: Optional[int] = None

    @model_validator(mode="after")
    def _default_name(self):
        if not self.name:
            self.name = "Specials" if self.season_number == 0 else f"Season {self.season_number}"
        return self


class Season(SeasonIn):
    id: str = Field(default_factory=new_id)
    episodes: list[Episode] = Field(default_factory=list)

    @field_validator("episodes")
    @classmethod
    def _unique_episode_numbers(cls, episodes: list[Episode]) -> list[Episode]:
        numbers = [e.episode_number for e in episodes]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Episode numbers must be unique within a season")
        return episodes


# ── Catalog bodies ───────────────────────────────────────────────

class CatalogItemIn(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    overview: str = Field(min_length=1, max_length=2000)
    poster_path: str = Field(min_length=1)
    release_year: int = Field(ge=1900)
    backdrop_path: str = ""
    trailer_url: str = ""
    rating: float = Field(0, ge=0, le=10)
    imdb_rating: float = Field(0, ge=0, le=10)
    genres: list[str] = Field(min_length=1)
    language: list[str] = Field(min_length=1)
    status: ContentStatus = "New"
    admin_status: AdminStatus = "Draft"
    country: str = ""
    cast: list[CastMember] = Field(default_factory=list)
    tmdb_id: Optional[int] = None
    imdb_id: Optional[str] = None
    screenshots: list[str] = Field(default_factory=list)
    seo_title: Optional[str] = Field(None, max_length=100)
    seo_description: Optional[str] = Field(None, max_length=160)
    keywords: list[str] = Field(default_factory=list)

    @field_validator("release_year")
    @classmethod
    def _not_too_far_ahead(cls, year: int) -> int:
        if year > latest_release_year():
            raise ValueError("Release year cannot be too far in the future")
        return year

    @field_validator("genres", "language", "keywords", mode="before")
    @classmethod
    def _strip_items(cls, values: Any) -> Any:
        # Blank entries are dropped before the non-empty length check runs
        if not isinstance(values, list):
            return values
        return [v.strip() if isinstance(v, str) else v for v in values if not isinstance(v, str) or v.strip()]

    @field_validator("imdb_id")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value.strip() if value and value.strip() else None


class MovieIn(CatalogItemIn):
    type: MovieType = "Movie"
    quality: MovieQuality = "HD"
    release_date: Optional[date] = None
    runtime: int = Field(0, ge=0)
    director: str = ""
    servers: list[StreamServer] = Field(default_factory=list)
    download_groups: list[DownloadGroup] = Field(default_factory=list)


class SeriesIn(CatalogItemIn):
    type: SeriesType = "Series"
    quality: SeriesQuality = "HD"
    series_status: SeriesStatus = "Returning Series"
    first_air_date: Optional[date] = None
    last_air_date: Optional[date] = None
    episode_run_time: list[int] = Field(default_factory=list)
    original_country: list[str] = Field(default_factory=list)
    original_language: str = "en"
    networks: list[Network] = Field(default_factory=list)
    creators: list[Creator] = Field(default_factory=list)
    tvdb_id: Optional[int] = None
    seasons: list[Season] = Field(default_factory=list)

    @field_validator("seasons")
    @classmethod
    def _unique_season_numbers(cls, seasons: list[Season]) -> list[Season]:
        numbers = [s.season_number for s in seasons]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Season numbers must be unique")
        return seasons


class ServerIn(CamelModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1, pattern=r"^https?://")
    quality: StreamQuality = "720p"
    server_type: ServerType = "embed"


class StatusUpdate(CamelModel):
    admin_status: AdminStatus


# ── Users ────────────────────────────────────────────────────────

class Preferences(CamelModel):
    language: str = "en"
    theme: Literal["light", "dark"] = "dark"
    email_notifications: bool = True


class WatchlistEntry(CamelModel):
    """Tagged reference to a catalog item."""
    content_type: ContentType
    content_id: int
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WatchlistAdd(CamelModel):
    content_type: ContentType
    content_id: int


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    email: str = Field(max_length=300, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)


class LoginRequest(CamelModel):
    email: str
    password: str


class AdminLoginRequest(LoginRequest):
    admin_key: str


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=3, max_length=30, pattern=USERNAME_PATTERN)
    avatar: Optional[str] = None
    preferences: Optional[Preferences] = None


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(min_length=6)


# ── Ads ──────────────────────────────────────────────────────────

class AdIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    type: AdType
    placement: AdPlacement
    code: str = Field(min_length=1)
    redirect_url: str = ""
    is_active: bool = True
    priority: int = Field(1, ge=1, le=10)
    target_pages: list[AdPage] = Field(default_factory=list)
    target_devices: list[AdDevice] = Field(default_factory=list)
    target_countries: list[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    network: str = ""
    network_id: str = ""
    budget: float = Field(0, ge=0)
    revenue: float = Field(0, ge=0)


class AdBulkRequest(CamelModel):
    ad_ids: list[int] = Field(min_length=1)
    action: Literal["activate", "deactivate", "delete", "update"]
    data: Optional[dict[str, Any]] = None


class AdPatch(CamelModel):
    """Partial ad update used by bulk edits; unknown keys are ignored."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[AdType] = None
    placement: Optional[AdPlacement] = None
    code: Optional[str] = Field(None, min_length=1)
    redirect_url: Optional[str] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=1, le=10)
    target_pages: Optional[list[AdPage]] = None
    target_devices: Optional[list[AdDevice]] = None
    target_countries: Optional[list[str]] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    network: Optional[str] = None
    network_id: Optional[str] = None
    budget: Optional[float] = Field(None, ge=0)
    revenue: Optional[float] = Field(None, ge=0)


# ── TMDB import ──────────────────────────────────────────────────

class TmdbImportOptions(CamelModel):
    force_update: bool = False
    import_seasons: bool = True
    update_seasons: bool = False


class TmdbPopularRequest(CamelModel):
    pages: int = Field(1, ge=1, le=10)
    import_seasons: bool = False
