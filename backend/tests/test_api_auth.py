import threading

from conftest import bearer

from app.services import auth as auth_service

REGISTRATION = {"username": "neo", "email": "Neo@Zion.io", "password": "followtherabbit"}


async def test_register_login_and_profile(client):
    r = await client.post("/api/auth/register", json=REGISTRATION)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["user"]["email"] == "neo@zion.io"
    assert data["user"]["role"] == "user"
    assert data["user"]["preferences"] == {"language": "en", "theme": "dark", "emailNotifications": True}
    assert data["accessToken"] and data["refreshToken"]

    r = await client.post("/api/auth/login", json={"email": "NEO@zion.io", "password": "followtherabbit"})
    assert r.json()["message"] == "Login successful"
    token = r.json()["data"]["accessToken"]

    r = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    user = r.json()["data"]["user"]
    assert user["username"] == "neo"
    assert "passwordHash" not in user
    assert "refreshToken" not in user


async def test_register_conflicts_and_validation(client):
    await client.post("/api/auth/register", json=REGISTRATION)
    r = await client.post("/api/auth/register", json={**REGISTRATION, "username": "trinity"})
    assert r.status_code == 409
    assert r.json()["message"] == "User with this email or username already exists"

    r = await client.post("/api/auth/register", json={"username": "a!", "email": "nope", "password": "123"})
    assert r.status_code == 400
    assert {e["field"] for e in r.json()["errors"]} == {"username", "email", "password"}


async def test_bad_credentials(client, make_user):
    await make_user(email="smith@matrix.io")
    r = await client.post("/api/auth/login", json={"email": "smith@matrix.io", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid credentials"


async def test_deactivated_accounts(client, make_user):
    user = await make_user(email="cypher@matrix.io", is_active=False)
    r = await client.post("/api/auth/login", json={"email": "cypher@matrix.io", "password": "secret123"})
    assert r.status_code == 401
    assert r.json()["message"] == "Account is deactivated. Please contact support."

    r = await client.get("/api/auth/profile", headers=bearer(user))
    assert r.status_code == 401
    assert r.json()["message"] == "Account is deactivated"


async def test_invalid_bearer_token(client):
    r = await client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"


async def test_refresh_rotates_tokens(client):
    r = await client.post("/api/auth/register", json=REGISTRATION)
    first = r.json()["data"]["refreshToken"]

    r = await client.post("/api/auth/refresh", json={"refreshToken": first})
    assert r.json()["message"] == "Token refreshed successfully"
    second = r.json()["data"]["refreshToken"]
    assert second != first

    r = await client.post("/api/auth/refresh", json={"refreshToken": first})
    assert r.status_code == 401

    r = await client.post("/api/auth/refresh", json={})
    assert r.json()["message"] == "Refresh token is required"


async def test_logout_revokes_refresh_token(client):
    r = await client.post("/api/auth/register", json=REGISTRATION)
    data = r.json()["data"]
    headers = {"Authorization": f"Bearer {data['accessToken']}"}

    r = await client.post("/api/auth/logout", headers=headers)
    assert r.json()["message"] == "Logged out successfully"
    r = await client.post("/api/auth/refresh", json={"refreshToken": data["refreshToken"]})
    assert r.status_code == 401


async def test_admin_login_provisions_master_account(client):
    creds = {"email": "master@moviehub.test", "password": "master-password", "adminKey": "test-admin-key"}
    r = await client.post("/api/auth/admin-login", json=creds)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["role"] == "admin"

    # second login reuses the same account
    r2 = await client.post("/api/auth/admin-login", json=creds)
    assert r2.json()["data"]["user"]["id"] == r.json()["data"]["user"]["id"]

    r = await client.post("/api/auth/admin-login", json={**creds, "adminKey": "wrong"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid admin credentials"


async def test_admin_login_rejects_non_admins(client, make_user, admin):
    await make_user("moderator", email="mod@moviehub.test")
    r = await client.post(
        "/api/auth/admin-login",
        json={"email": "mod@moviehub.test", "password": "secret123", "adminKey": "test-admin-key"},
    )
    assert r.status_code == 401

    r = await client.post(
        "/api/auth/admin-login",
        json={"email": admin.email, "password": "secret123", "adminKey": "test-admin-key"},
    )
    assert r.status_code == 200


async def test_profile_update(client, member, make_user):
    await make_user(username="taken")
    r = await client.put("/api/auth/profile", json={"username": "taken"}, headers=bearer(member))
    assert r.status_code == 409

    r = await client.put(
        "/api/auth/profile",
        json={"avatar": "/uploads/profiles/me.jpg", "preferences": {"theme": "light"}},
        headers=bearer(member),
    )
    user = r.json()["data"]["user"]
    assert user["avatar"] == "/uploads/profiles/me.jpg"
    assert user["preferences"]["theme"] == "light"


async def test_password_change(client, member):
    r = await client.put(
        "/api/auth/password",
        json={"currentPassword": "nope", "newPassword": "brand-new"},
        headers=bearer(member),
    )
    assert r.status_code == 400
    assert r.json()["message"] == "Current password is incorrect"

    r = await client.put(
        "/api/auth/password",
        json={"currentPassword": "secret123", "newPassword": "brand-new"},
        headers=bearer(member),
    )
    assert r.json()["message"] == "Password changed successfully. Please login again."

    r = await client.post("/api/auth/login", json={"email": member.email, "password": "brand-new"})
    assert r.status_code == 200


async def test_watchlist(client, member, add_movie, add_series):
    movie = await add_movie(title="Inception")
    series = await add_series(title="Lost")
    headers = bearer(member)

    r = await client.post("/api/auth/watchlist", json={"contentType": "Movie", "contentId": movie.id}, headers=headers)
    assert r.status_code == 201
    await client.post("/api/auth/watchlist", json={"contentType": "Series", "contentId": series.id}, headers=headers)

    r = await client.post("/api/auth/watchlist", json={"contentType": "Movie", "contentId": movie.id}, headers=headers)
    assert r.status_code == 409

    r = await client.post("/api/auth/watchlist", json={"contentType": "Movie", "contentId": 4242}, headers=headers)
    assert r.status_code == 404

    r = await client.get("/api/auth/watchlist", headers=headers)
    entries = r.json()["data"]["watchlist"]
    assert {(e["contentType"], e["item"]["title"]) for e in entries} == {("Movie", "Inception"), ("Series", "Lost")}

    r = await client.delete(f"/api/auth/watchlist/Movie/{movie.id}", headers=headers)
    assert [e["contentType"] for e in r.json()["data"]["watchlist"]] == ["Series"]
    r = await client.delete(f"/api/auth/watchlist/Movie/{movie.id}", headers=headers)
    assert r.status_code == 404


async def test_password_hashing_runs_in_worker_threads(client, monkeypatch):
    threads = []
    real_hash, real_verify = auth_service.hash_password, auth_service.verify_password

    def hash_password(plain):
        threads.append(threading.get_ident())
        return real_hash(plain)

    def verify_password(plain, hashed):
        threads.append(threading.get_ident())
        return real_verify(plain, hashed)

    monkeypatch.setattr(auth_service, "hash_password", hash_password)
    monkeypatch.setattr(auth_service, "verify_password", verify_password)

    await client.post("/api/auth/register", json=REGISTRATION)
    r = await client.post("/api/auth/login", json={"email": REGISTRATION["email"], "password": REGISTRATION["password"]})
    assert r.status_code == 200
    assert len(threads) == 2
    assert threading.get_ident() not in threads
