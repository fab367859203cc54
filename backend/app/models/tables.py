"""SQLAlchemy ORM models — all database tables."""

from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, JSON,
    event, inspect,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.config import settings
from app.database import Base
from app.services.slug import slugify

# Nested documents (seasons, cast, servers, …) live in JSON columns; JSONB on Postgres
JsonDoc = JSON().with_variant(JSONB(), "postgresql")

DEFAULT_PREFERENCES = {"language": "en", "theme": "dark", "email_notifications": True}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def media_url(path: Optional[str], folder: str) -> str:
    """Absolute URLs and rooted paths pass through; bare file names live under /uploads."""
    if not path:
        return ""
    if path.startswith(("http://", "https://", "/")):
        return path
    return f"/uploads/{folder}/{path}"


class DocumentMixin:
    """Column-wise dict view of a row, used by filters, scoring and responses."""

    _hidden = ()

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {}
        for column in self.__table__.columns:
            if column.key in self._hidden:
                continue
            value = getattr(self, column.key)
            if value is None and isinstance(column.type, JSON):
                value = []
            elif isinstance(value, datetime):
                value = as_utc(value)
            doc[column.key] = value
        return doc


# ── Users ────────────────────────────────────────────────────────

class User(DocumentMixin, Base):
    __tablename__ = "users"

    _hidden = ("password_hash", "refresh_token")

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(300), unique=True, nullable=False)  # stored lower-cased
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="user")  # user | moderator | admin
    avatar: Mapped[str] = mapped_column(String(500), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    watchlist: Mapped[list] = mapped_column(JsonDoc, default=list)  # [{content_type, content_id, added_at}]
    preferences: Mapped[dict] = mapped_column(JsonDoc, default=lambda: dict(DEFAULT_PREFERENCES))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        doc["preferences"] = {**DEFAULT_PREFERENCES, **(self.preferences or {})}
        return doc


# ── Catalog ──────────────────────────────────────────────────────

class CatalogItemMixin(DocumentMixin):
    """Columns shared by movies and series."""

    content_type = ""

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(260), unique=True, index=True, nullable=False)
    overview: Mapped[str] = mapped_column(Text, nullable=False)
    poster_path: Mapped[str] = mapped_column(String(500), nullable=False)
    backdrop_path: Mapped[str] = mapped_column(String(500), default="")
    trailer_url: Mapped[str] = mapped_column(String(500), default="")
    release_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    rating: Mapped[float] = mapped_column(Float, default=0)
    imdb_rating: Mapped[float] = mapped_column(Float, default=0)
    genres: Mapped[list] = mapped_column(JsonDoc, default=list)
    language: Mapped[list] = mapped_column(JsonDoc, default=list)
    status: Mapped[str] = mapped_column(String(20), default="New")  # New | Updated | Featured
    admin_status: Mapped[str] = mapped_column(String(20), default="Draft", index=True)
    country: Mapped[str] = mapped_column(String(100), default="")
    cast: Mapped[list] = mapped_column(JsonDoc, default=list)  # [{name, character, profile_path}]
    tmdb_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True)
    imdb_id: Mapped[Optional[str]] = mapped_column(String(20), unique=True)
    screenshots: Mapped[list] = mapped_column(JsonDoc, default=list)
    seo_title: Mapped[Optional[str]] = mapped_column(String(100))
    seo_description: Mapped[Optional[str]] = mapped_column(String(160))
    keywords: Mapped[list] = mapped_column(JsonDoc, default=list)
    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)
    downloads: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @declared_attr
    def added_by_id(cls) -> Mapped[Optional[int]]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    @declared_attr
    def last_modified_by_id(cls) -> Mapped[Optional[int]]:
        return mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        doc["content_type"] = self.content_type
        doc["full_poster_url"] = media_url(self.poster_path, "posters")
        doc["full_backdrop_url"] = media_url(self.backdrop_path, "backdrops")
        return doc


class Movie(CatalogItemMixin, Base):
    __tablename__ = "movies"

    content_type = "Movie"

    type: Mapped[str] = mapped_column(String(20), default="Movie")  # Movie | Anime
    quality: Mapped[str] = mapped_column(String(20), default="HD")
    release_date: Mapped[Optional[date]] = mapped_column(Date)
    runtime: Mapped[int] = mapped_column(Integer, default=0)
    director: Mapped[str] = mapped_column(String(200), default="")
    servers: Mapped[list] = mapped_column(JsonDoc, default=list)
    download_groups: Mapped[list] = mapped_column(JsonDoc, default=list)


class Series(CatalogItemMixin, Base):
    __tablename__ = "series"

    content_type = "Series"

    type: Mapped[str] = mapped_column(String(20), default="Series")  # Series | Anime | Kdrama
    quality: Mapped[str] = mapped_column(String(20), default="HD")
    series_status: Mapped[str] = mapped_column(String(30), default="Returning Series")
    first_air_date: Mapped[Optional[date]] = mapped_column(Date)
    last_air_date: Mapped[Optional[date]] = mapped_column(Date)
    episode_run_time: Mapped[list] = mapped_column(JsonDoc, default=list)
    original_country: Mapped[list] = mapped_column(JsonDoc, default=list)
    original_language: Mapped[str] = mapped_column(String(10), default="en")
    networks: Mapped[list] = mapped_column(JsonDoc, default=list)
    creators: Mapped[list] = mapped_column(JsonDoc, default=list)
    tvdb_id: Mapped[Optional[int]] = mapped_column(Integer)
    seasons: Mapped[list] = mapped_column(JsonDoc, default=list)
    number_of_seasons: Mapped[int] = mapped_column(Integer, default=0)
    number_of_episodes: Mapped[int] = mapped_column(Integer, default=0)

    def refresh_counts(self) -> None:
        seasons = self.seasons or []
        self.number_of_seasons = len(seasons)
        self.number_of_episodes = sum(len(s.get("episodes") or []) for s in seasons)


# ── Ads ──────────────────────────────────────────────────────────

class Ad(DocumentMixin, Base):
    __tablename__ = "ads"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    placement: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    redirect_url: Mapped[str] = mapped_column(String(1000), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=1)
    target_pages: Mapped[list] = mapped_column(JsonDoc, default=list)
    target_devices: Mapped[list] = mapped_column(JsonDoc, default=list)
    target_countries: Mapped[list] = mapped_column(JsonDoc, default=list)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), default=utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    impressions: Mapped[int] = mapped_column(Integer, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    network: Mapped[str] = mapped_column(String(100), default="")
    network_id: Mapped[str] = mapped_column(String(100), default="")
    budget: Mapped[float] = mapped_column(Float, default=0)
    revenue: Mapped[float] = mapped_column(Float, default=0)
    added_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    last_modified_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def ctr(self) -> float:
        if not self.impressions:
            return 0
        return round((self.clicks or 0) / self.impressions * 100, 2)

    def is_currently_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        start, end = as_utc(self.start_date), as_utc(self.end_date)
        return bool(self.is_active) and (start is None or start <= now) and (end is None or end >= now)

    def to_document(self) -> dict[str, Any]:
        doc = super().to_document()
        doc["ctr"] = self.ctr
        doc["is_currently_active"] = self.is_currently_active()
        return doc


# ── Save-time hooks ──────────────────────────────────────────────

def _assign_slug(mapper, connection, target):
    target.slug = slugify(target.title, target.release_year)


def _refresh_slug(mapper, connection, target):
    state = inspect(target)
    changed = state.attrs.title.history.has_changes()
    if settings.slug_tracks_release_year:
        changed = changed or state.attrs.release_year.history.has_changes()
    if changed:
        target.slug = slugify(target.title, target.release_year)


def _refresh_counts(mapper, connection, target):
    target.refresh_counts()


for _model in (Movie, Series):
    event.listen(_model, "before_insert", _assign_slug)
    event.listen(_model, "before_update", _refresh_slug)

event.listen(Series, "before_insert", _refresh_counts)
event.listen(Series, "before_update", _refresh_counts)
