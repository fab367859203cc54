"""Shared fixtures: SQLite database, ASGI client, users and catalog factories."""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="moviehub-tests-")

# Settings are read at import time; configure before anything from app is imported
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP}/test.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["JWT_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_SECRET_KEY"] = "test-admin-key"
os.environ["ADMIN_EMAIL"] = "master@moviehub.test"
os.environ["ADMIN_PASSWORD"] = "master-password"
os.environ.pop("TMDB_API_KEY", None)
os.environ.pop("CLOUDINARY_CLOUD_NAME", None)

import httpx
import pytest

from app.database import async_session, drop_db, engine, init_db
from app.models.tables import Movie, Series, User
from app.services.auth import create_access_token, hash_password


@pytest.fixture(autouse=True)
async def fresh_tables():
    await init_db()
    await drop_db()
    await init_db()
    yield
    # pooled aiosqlite connections belong to this test's event loop
    await engine.dispose()


@pytest.fixture
async def db():
    async with async_session() as session:
        yield session


@pytest.fixture
async def client():
    from app.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── Users ────────────────────────────────────────────────────────

@pytest.fixture
def make_user():
    counter = {"n": 0}

    async def _make(role: str = "user", password: str = "secret123", **fields) -> User:
        counter["n"] += 1
        n = counter["n"]
        async with async_session() as session:
            user = User(
                username=fields.pop("username", f"{role}{n}"),
                email=fields.pop("email", f"{role}{n}@moviehub.test"),
                password_hash=hash_password(password),
                role=role,
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
async def admin(make_user):
    return await make_user("admin")


@pytest.fixture
async def moderator(make_user):
    return await make_user("moderator")


@pytest.fixture
async def member(make_user):
    return await make_user("user")


# ── Catalog ──────────────────────────────────────────────────────

def movie_payload(**overrides) -> dict:
    """A valid movie request body (camelCase, as the frontend sends it)."""
    body = {
        "title": "The Matrix",
        "overview": "A hacker learns the truth about reality.",
        "posterPath": "matrix.jpg",
        "releaseYear": 1999,
        "genres": ["Action", "Sci-Fi"],
        "language": ["English"],
        "rating": 8.7,
    }
    body.update(overrides)
    return body


def series_payload(**overrides) -> dict:
    body = {
        "title": "Dark",
        "overview": "A missing child sets four families on a hunt for answers.",
        "posterPath": "dark.jpg",
        "releaseYear": 2017,
        "genres": ["Drama", "Mystery"],
        "language": ["German"],
        "rating": 8.8,
    }
    body.update(overrides)
    return body


@pytest.fixture
def add_movie():
    async def _add(**fields) -> Movie:
        values = {
            "title": "Movie",
            "overview": "Overview",
            "poster_path": "poster.jpg",
            "release_year": 2020,
            "genres": ["Drama"],
            "language": ["English"],
            "admin_status": "Published",
        }
        values.update(fields)
        async with async_session() as session:
            movie = Movie(**values)
            session.add(movie)
            await session.commit()
            return movie

    return _add


@pytest.fixture
def add_series():
    async def _add(**fields) -> Series:
        values = {
            "title": "Series",
            "overview": "Overview",
            "poster_path": "poster.jpg",
            "release_year": 2020,
            "genres": ["Drama"],
            "language": ["English"],
            "admin_status": "Published",
            "seasons": [],
        }
        values.update(fields)
        async with async_session() as session:
            series = Series(**values)
            session.add(series)
            await session.commit()
            return series

    return _add
