from conftest import bearer, movie_payload

from app.config import settings


async def test_create_movie_derives_slug(client, moderator):
    r = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Movie created successfully"
    movie = body["data"]["movie"]
    assert movie["slug"] == "the-matrix-1999"
    assert movie["adminStatus"] == "Draft"
    assert movie["addedById"] == moderator.id
    assert movie["fullPosterUrl"] == "/uploads/posters/matrix.jpg"


async def test_duplicate_title_and_year_conflicts(client, moderator):
    await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    r = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    assert r.status_code == 409
    assert r.json() == {"success": False, "message": "Movie with this title and year already exists"}


async def test_create_requires_moderator(client, member):
    r = await client.post("/api/movies", json=movie_payload())
    assert r.status_code == 401
    assert r.json()["message"] == "Access token is required"

    r = await client.post("/api/movies", json=movie_payload(), headers=bearer(member))
    assert r.status_code == 403
    assert r.json()["message"] == "Insufficient permissions"


async def test_validation_errors_are_listed(client, moderator):
    r = await client.post(
        "/api/movies",
        json=movie_payload(title="", genres=[], releaseYear=1800),
        headers=bearer(moderator),
    )
    assert r.status_code == 400
    body = r.json()
    assert body["message"] == "Validation failed"
    fields = {e["field"] for e in body["errors"]}
    assert {"title", "genres", "releaseYear"} <= fields


async def test_blank_genres_and_languages_are_rejected(client, moderator):
    r = await client.post(
        "/api/movies", json=movie_payload(genres=[" "], language=["", "  "]), headers=bearer(moderator)
    )
    assert r.status_code == 400
    assert {"genres", "language"} <= {e["field"] for e in r.json()["errors"]}

    r = await client.post(
        "/api/movies", json=movie_payload(genres=[" Action ", ""]), headers=bearer(moderator)
    )
    assert r.json()["data"]["movie"]["genres"] == ["Action"]


async def test_public_listing_shows_published_only(client, add_movie):
    await add_movie(title="Visible")
    await add_movie(title="Hidden", admin_status="Draft")

    r = await client.get("/api/movies")
    data = r.json()["data"]
    assert [m["title"] for m in data["movies"]] == ["Visible"]
    assert data["pagination"]["totalItems"] == 1


async def test_admin_can_list_drafts(client, admin, add_movie):
    await add_movie(title="Visible")
    await add_movie(title="Hidden", admin_status="Draft")

    r = await client.get("/api/movies", params={"adminStatus": "Draft"}, headers=bearer(admin))
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Hidden"]

    # the same filter from an anonymous caller falls back to published items
    r = await client.get("/api/movies", params={"adminStatus": "Draft"})
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Visible"]


async def test_listing_filters_search_and_pagination(client, add_movie):
    await add_movie(title="Die Hard", genres=["Action"], release_year=1988, rating=8.2)
    await add_movie(title="Heat", genres=["Crime", "Action"], release_year=1995, rating=8.3)
    await add_movie(title="Amelie", genres=["Romance"], language=["French"], release_year=2001)

    r = await client.get("/api/movies", params={"genres": "Action, Comedy", "sortBy": "rating"})
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Heat", "Die Hard"]

    r = await client.get("/api/movies", params={"search": "amel"})
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Amelie"]

    r = await client.get("/api/movies", params={"limit": 2, "page": 2, "sortBy": "title", "sortOrder": "asc"})
    data = r.json()["data"]
    assert [m["title"] for m in data["movies"]] == ["Heat"]
    assert data["pagination"] == {
        "currentPage": 2, "totalPages": 2, "totalItems": 3,
        "hasNextPage": False, "hasPrevPage": True, "limit": 2,
    }


async def test_empty_listing_has_zero_pages(client):
    r = await client.get("/api/movies")
    pagination = r.json()["data"]["pagination"]
    assert pagination["totalPages"] == 0
    assert pagination["hasNextPage"] is False
    assert pagination["hasPrevPage"] is False


async def test_detail_by_slug_counts_views(client, add_movie):
    movie = await add_movie(title="The Matrix", release_year=1999)

    r = await client.get("/api/movies/the-matrix-1999")
    assert r.json()["data"]["movie"]["views"] == 1
    r = await client.get(f"/api/movies/{movie.id}")
    assert r.json()["data"]["movie"]["views"] == 2


async def test_detail_of_draft_is_not_found_for_the_public(client, admin, add_movie):
    movie = await add_movie(title="Secret", admin_status="Draft")
    r = await client.get(f"/api/movies/{movie.id}")
    assert r.status_code == 404
    assert r.json()["message"] == "Movie not found"

    r = await client.get(f"/api/movies/{movie.id}", headers=bearer(admin))
    assert r.status_code == 200


async def test_trending_latest_and_genre(client, add_movie):
    await add_movie(title="Seen", views=5, genres=["Action"])
    await add_movie(title="Unseen", views=0, genres=["Drama"])

    r = await client.get("/api/movies/trending")
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Seen"]

    r = await client.get("/api/movies/latest", params={"limit": 1})
    assert len(r.json()["data"]["movies"]) == 1

    r = await client.get("/api/movies/genre/Drama")
    data = r.json()["data"]
    assert data["genre"] == "Drama"
    assert [m["title"] for m in data["movies"]] == ["Unseen"]


async def test_related_movies(client, add_movie):
    movie = await add_movie(title="Alien", genres=["Horror"], release_year=1979)
    await add_movie(title="Aliens", genres=["Horror", "Action"], release_year=1986)
    await add_movie(title="Notting Hill", genres=["Romance"], language=["Welsh"], release_year=1999)

    r = await client.get(f"/api/movies/{movie.id}/related")
    assert [m["title"] for m in r.json()["data"]["movies"]] == ["Aliens"]


async def test_owner_or_admin_may_edit(client, moderator, make_user, admin):
    created = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    movie_id = created.json()["data"]["movie"]["id"]
    other = await make_user("moderator")

    r = await client.put(f"/api/movies/{movie_id}", json=movie_payload(rating=9), headers=bearer(other))
    assert r.status_code == 403
    assert r.json()["message"] == "Access denied"

    r = await client.put(
        f"/api/movies/{movie_id}", json=movie_payload(title="The Matrix Reloaded", releaseYear=2003),
        headers=bearer(admin),
    )
    movie = r.json()["data"]["movie"]
    assert movie["slug"] == "the-matrix-reloaded-2003"
    assert movie["lastModifiedById"] == admin.id

    r = await client.delete(f"/api/movies/{movie_id}", headers=bearer(moderator))
    assert r.json() == {"success": True, "message": "Movie deleted successfully"}
    r = await client.get(f"/api/movies/{movie_id}", headers=bearer(admin))
    assert r.status_code == 404


async def test_servers(client, moderator):
    created = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    movie_id = created.json()["data"]["movie"]["id"]

    r = await client.post(
        f"/api/movies/{movie_id}/servers",
        json={"name": "Main", "url": "https://stream.example/matrix", "quality": "1080p"},
        headers=bearer(moderator),
    )
    servers = r.json()["data"]["movie"]["servers"]
    assert len(servers) == 1
    assert servers[0]["serverType"] == "embed"
    server_id = servers[0]["id"]

    r = await client.post(
        f"/api/movies/{movie_id}/servers",
        json={"name": "Bad", "url": "ftp://nope"},
        headers=bearer(moderator),
    )
    assert r.status_code == 400

    r = await client.delete(f"/api/movies/{movie_id}/servers/{server_id}", headers=bearer(moderator))
    assert r.json()["data"]["movie"]["servers"] == []
    r = await client.delete(f"/api/movies/{movie_id}/servers/{server_id}", headers=bearer(moderator))
    assert r.status_code == 404
    assert r.json()["message"] == "Server not found"


async def test_like_and_download_counters(client, add_movie):
    movie = await add_movie(title="Counted")
    await client.post(f"/api/movies/{movie.id}/like")
    r = await client.post(f"/api/movies/{movie.id}/like")
    assert r.json()["data"] == {"likes": 2}

    r = await client.post(f"/api/movies/{movie.id}/download")
    assert r.json()["data"] == {"downloads": 1}

    r = await client.post("/api/movies/9999/like")
    assert r.status_code == 404


async def test_status_change_is_admin_only(client, moderator, admin, add_movie):
    movie = await add_movie(title="Pending", admin_status="Draft")
    r = await client.patch(
        f"/api/movies/{movie.id}/status", json={"adminStatus": "Published"}, headers=bearer(moderator)
    )
    assert r.status_code == 403

    r = await client.patch(
        f"/api/movies/{movie.id}/status", json={"adminStatus": "Published"}, headers=bearer(admin)
    )
    assert r.json()["data"]["movie"]["adminStatus"] == "Published"

    r = await client.patch(
        f"/api/movies/{movie.id}/status", json={"adminStatus": "Gone"}, headers=bearer(admin)
    )
    assert r.status_code == 400


async def test_year_only_edit_keeps_slug(client, moderator):
    created = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    movie_id = created.json()["data"]["movie"]["id"]

    r = await client.put(f"/api/movies/{movie_id}", json=movie_payload(releaseYear=2000), headers=bearer(moderator))
    movie = r.json()["data"]["movie"]
    assert movie["releaseYear"] == 2000
    assert movie["slug"] == "the-matrix-1999"


async def test_year_only_edit_moves_slug_when_tracking_year(client, moderator, monkeypatch):
    monkeypatch.setattr(settings, "slug_tracks_release_year", True)
    created = await client.post("/api/movies", json=movie_payload(), headers=bearer(moderator))
    movie_id = created.json()["data"]["movie"]["id"]

    r = await client.put(f"/api/movies/{movie_id}", json=movie_payload(releaseYear=2000), headers=bearer(moderator))
    assert r.json()["data"]["movie"]["slug"] == "the-matrix-2000"
