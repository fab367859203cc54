from conftest import bearer, series_payload


async def _create(client, user, **overrides) -> dict:
    r = await client.post("/api/series", json=series_payload(**overrides), headers=bearer(user))
    assert r.status_code == 201
    return r.json()["data"]["series"]


async def test_create_with_nested_seasons(client, moderator):
    seasons = [
        {"seasonNumber": 1, "episodes": [
            {"episodeNumber": 1, "title": "Secrets"},
            {"episodeNumber": 2, "title": "Lies"},
        ]},
        {"seasonNumber": 2},
    ]
    series = await _create(client, moderator, seasons=seasons)
    assert series["slug"] == "dark-2017"
    assert series["numberOfSeasons"] == 2
    assert series["numberOfEpisodes"] == 2
    assert series["seasons"][1]["name"] == "Season 2"


async def test_duplicate_season_numbers_in_body_are_rejected(client, moderator):
    r = await client.post(
        "/api/series",
        json=series_payload(seasons=[{"seasonNumber": 1}, {"seasonNumber": 1}]),
        headers=bearer(moderator),
    )
    assert r.status_code == 400


async def test_season_and_episode_management(client, moderator):
    series = await _create(client, moderator)
    sid = series["id"]
    headers = bearer(moderator)

    r = await client.post(f"/api/series/{sid}/seasons", json={"seasonNumber": 1}, headers=headers)
    assert r.status_code == 201
    assert r.json()["message"] == "Season added successfully"

    r = await client.post(f"/api/series/{sid}/seasons", json={"seasonNumber": 1}, headers=headers)
    assert r.status_code == 409
    assert r.json()["message"] == "Season already exists"

    r = await client.post(
        f"/api/series/{sid}/season/1/episodes",
        json={"episodeNumber": 1, "title": "Secrets", "runtime": 51},
        headers=headers,
    )
    assert r.status_code == 201
    data = r.json()["data"]["series"]
    assert (data["numberOfSeasons"], data["numberOfEpisodes"]) == (1, 1)

    r = await client.post(
        f"/api/series/{sid}/season/4/episodes", json={"episodeNumber": 1, "title": "X"}, headers=headers
    )
    assert r.status_code == 404
    assert r.json()["message"] == "Season not found"

    r = await client.put(
        f"/api/series/{sid}/season/1/episode/1", json={"title": "Geheimnisse"}, headers=headers
    )
    episode = r.json()["data"]["episode"]
    assert episode["title"] == "Geheimnisse"
    assert episode["runtime"] == 51

    r = await client.post(
        f"/api/series/{sid}/season/1/episode/1/servers",
        json={"name": "Main", "url": "https://stream.example/dark/1/1"},
        headers=headers,
    )
    assert len(r.json()["data"]["episode"]["servers"]) == 1


async def test_episode_detail_counts_views(client, moderator, admin):
    series = await _create(client, moderator, adminStatus="Published")
    sid = series["id"]
    await client.post(f"/api/series/{sid}/seasons", json={"seasonNumber": 1}, headers=bearer(moderator))
    await client.post(
        f"/api/series/{sid}/season/1/episodes",
        json={"episodeNumber": 1, "title": "Secrets"},
        headers=bearer(moderator),
    )

    await client.get(f"/api/series/{sid}/season/1/episode/1")
    r = await client.get(f"/api/series/{sid}/season/1/episode/1")
    data = r.json()["data"]
    assert data["episode"]["views"] == 2
    assert data["series"] == {"id": sid, "title": "Dark", "slug": "dark-2017", "posterPath": "dark.jpg"}

    r = await client.get(f"/api/series/{sid}/season/1/episode/7")
    assert r.status_code == 404
    assert r.json()["message"] == "Episode not found"


async def test_update_replaces_seasons_only_when_sent(client, moderator):
    series = await _create(client, moderator, seasons=[{"seasonNumber": 1}, {"seasonNumber": 2}])
    sid = series["id"]

    r = await client.put(f"/api/series/{sid}", json=series_payload(rating=9.1), headers=bearer(moderator))
    data = r.json()["data"]["series"]
    assert data["rating"] == 9.1
    assert data["numberOfSeasons"] == 2

    r = await client.put(
        f"/api/series/{sid}", json=series_payload(seasons=[{"seasonNumber": 3}]), headers=bearer(moderator)
    )
    data = r.json()["data"]["series"]
    assert [s["seasonNumber"] for s in data["seasons"]] == [3]
    assert data["numberOfSeasons"] == 1


async def test_listing_series_status_filter(client, add_series):
    await add_series(title="Lost", series_status="Ended")
    await add_series(title="Severance", series_status="Returning Series")

    r = await client.get("/api/series", params={"seriesStatus": "Ended"})
    assert [s["title"] for s in r.json()["data"]["series"]] == ["Lost"]


async def test_detail_by_slug_and_views(client, add_series):
    await add_series(title="Dark", release_year=2017)
    r = await client.get("/api/series/dark-2017")
    assert r.json()["data"]["series"]["views"] == 1


async def test_trending_and_latest(client, add_series):
    await add_series(title="Watched", views=3)
    await add_series(title="Fresh", views=0)
    r = await client.get("/api/series/trending")
    assert [s["title"] for s in r.json()["data"]["series"]] == ["Watched"]
    r = await client.get("/api/series/latest")
    assert len(r.json()["data"]["series"]) == 2


async def test_other_moderators_cannot_edit_or_delete(client, moderator, make_user):
    series = await _create(client, moderator)
    other = await make_user("moderator")
    r = await client.post(f"/api/series/{series['id']}/seasons", json={"seasonNumber": 1}, headers=bearer(other))
    assert r.status_code == 403
    r = await client.delete(f"/api/series/{series['id']}", headers=bearer(other))
    assert r.status_code == 403
    r = await client.delete(f"/api/series/{series['id']}", headers=bearer(moderator))
    assert r.json()["message"] == "Series deleted successfully"


async def test_status_update(client, admin, add_series):
    series = await add_series(title="Drafted", admin_status="Draft")
    r = await client.patch(f"/api/series/{series.id}/status", json={"adminStatus": "Archived"}, headers=bearer(admin))
    assert r.json()["data"]["series"]["adminStatus"] == "Archived"
