from datetime import timedelta

from conftest import bearer

from app.config import settings
from app.models.tables import utcnow
from app.services.integration_probe import probe_all


async def test_combined_feed(client, add_movie, add_series):
    now = utcnow()
    await add_movie(title="Heat", genres=["Action"], created_at=now - timedelta(hours=3))
    await add_series(title="Narcos", genres=["Action", "Crime"], created_at=now - timedelta(hours=1))
    await add_series(title="Naruto", type="Anime", genres=["Action"], created_at=now)
    await add_movie(title="Draft", genres=["Action"], admin_status="Draft")

    r = await client.get("/api/content", params={"genres": "Action"})
    data = r.json()["data"]
    assert [c["title"] for c in data["content"]] == ["Naruto", "Narcos", "Heat"]
    assert [c["contentType"] for c in data["content"]] == ["Series", "Series", "Movie"]
    assert data["stats"] == {"totalResults": 3, "movieCount": 1, "seriesCount": 2}
    assert data["filters"]["genres"] == "Action"
    assert data["pagination"]["totalItems"] == 3

    r = await client.get("/api/content", params={"type": "anime"})
    assert [c["title"] for c in r.json()["data"]["content"]] == ["Naruto"]


async def test_feed_pagination(client, add_movie):
    for n in range(5):
        await add_movie(title=f"Movie {n}")
    r = await client.get("/api/content", params={"limit": 2, "page": 3, "sortBy": "alphabetical"})
    data = r.json()["data"]
    assert [c["title"] for c in data["content"]] == ["Movie 4"]
    assert data["pagination"]["hasNextPage"] is False
    assert data["pagination"]["hasPrevPage"] is True


async def test_featured_trending_latest_genre(client, add_movie, add_series):
    await add_movie(title="Star", status="Featured", rating=9, views=100)
    await add_series(title="Hit", status="Featured", rating=8, views=5, genres=["Comedy"])
    await add_movie(title="Plain", views=0, genres=["Comedy"])

    r = await client.get("/api/content/featured")
    assert [c["title"] for c in r.json()["data"]["featured"]] == ["Star", "Hit"]

    r = await client.get("/api/content/trending", params={"timeframe": "month"})
    data = r.json()["data"]
    assert data["timeframe"] == "month"
    assert [c["title"] for c in data["trending"]] == ["Star", "Hit"]

    r = await client.get("/api/content/latest", params={"type": "series"})
    assert r.json()["data"]["type"] == "series"
    assert [c["title"] for c in r.json()["data"]["latest"]] == ["Hit"]

    r = await client.get("/api/content/genre/Comedy")
    data = r.json()["data"]
    assert [c["title"] for c in data["content"]] == ["Plain", "Hit"]
    assert data["genre"] == "Comedy"


async def test_recommendations(client, add_movie, add_series):
    source = await add_movie(title="Alien", genres=["Horror"])
    await add_series(title="The Terror", genres=["Horror"], rating=8)

    r = await client.get("/api/content/recommendations")
    assert r.status_code == 400
    assert r.json()["message"] == "Content ID and type are required"

    r = await client.get("/api/content/recommendations", params={"contentId": source.id, "contentType": "Movie"})
    data = r.json()["data"]
    assert data["basedOn"] == {"id": source.id, "type": "Movie"}
    assert [c["title"] for c in data["recommendations"]] == ["The Terror"]


async def test_search(client, add_movie, add_series):
    await add_movie(title="The Dark Knight", release_year=2008, rating=9, genres=["Action"])
    await add_series(title="Dark", release_year=2017, rating=8.8, genres=["Mystery"])
    await add_movie(title="Dark Waters", admin_status="Draft")

    r = await client.get("/api/search", params={"q": " dark "})
    data = r.json()["data"]
    assert data["query"] == "dark"
    assert data["total"] == 2
    assert data["results"][0]["title"] == "Dark"
    assert data["pagination"]["pagingCounter"] == 1

    r = await client.get("/api/search", params={"q": "dark", "type": "movie"})
    assert [c["title"] for c in r.json()["data"]["results"]] == ["The Dark Knight"]

    r = await client.get("/api/search", params={"q": "dark", "genres": "Mystery"})
    assert [c["title"] for c in r.json()["data"]["results"]] == ["Dark"]

    r = await client.get("/api/search", params={"q": "d"})
    assert r.status_code == 400
    assert r.json()["message"] == "Search query must be at least 2 characters long"


async def test_suggestions_and_popular_terms(client, add_movie, add_series):
    await add_movie(title="Gladiator", views=40)
    await add_series(title="Glee", views=70)

    r = await client.get("/api/search/suggestions", params={"q": "gl"})
    suggestions = r.json()["data"]["suggestions"]
    assert [s["title"] for s in suggestions] == ["Gladiator", "Glee"]
    assert set(suggestions[0]) == {"id", "title", "slug", "posterPath", "releaseYear", "type", "contentType"}

    r = await client.get("/api/search/suggestions", params={"q": "g"})
    assert r.json()["data"]["suggestions"] == []

    r = await client.get("/api/search/popular")
    assert r.json()["data"]["popularTerms"] == ["Glee", "Gladiator"]


async def test_admin_dashboard(client, admin, member, add_movie, add_series):
    await add_movie(title="One", views=3)
    await add_movie(title="Two", admin_status="Draft")
    await add_series(title="Three", views=4)

    r = await client.get("/api/admin/dashboard", headers=bearer(member))
    assert r.status_code == 403

    r = await client.get("/api/admin/dashboard", headers=bearer(admin))
    stats = r.json()["data"]["stats"]
    assert stats["totalMovies"] == 2
    assert stats["publishedMovies"] == 1
    assert stats["totalSeries"] == 1
    assert stats["totalUsers"] == 2
    assert stats["totalViews"] == 7
    assert stats["totalAds"] == 0


async def test_health_and_unknown_routes(client):
    r = await client.get("/api/health")
    body = r.json()
    assert body["success"] is True
    assert body["version"] == settings.app_version

    r = await client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.json()["success"] is False


async def test_probe_reports_unconfigured_integrations():
    status = await probe_all(settings)
    assert status["database"] == {"status": "ok"}
    assert status["tmdb"] == {"status": "not_configured"}
    assert status["cloudinary"] == {"status": "not_configured"}
