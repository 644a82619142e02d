from atelier.config import settings


async def test_root_and_health(client):
    root = (await client.get("/")).json()
    assert root["status"] == "healthy"
    assert root["version"] == settings.API_VERSION
    assert (await client.get("/health")).json() == {"status": "healthy"}


async def test_health_db(client):
    body = (await client.get("/health/db")).json()
    assert body["database"] == "connected"
    assert body["result"] == 1


async def test_health_gemini(client, monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    assert (await client.get("/health/gemini")).json()["gemini"] == "not_configured"

    monkeypatch.setattr(settings, "GEMINI_API_KEY", "key")
    assert (await client.get("/health/gemini")).json()["gemini"] == "configured"


async def test_validation_errors_are_400(client, make_user, auth_headers):
    admin = await make_user("admin")
    response = await client.post("/api/banners", json={"title": ""}, headers=auth_headers(admin))
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"


async def test_invalid_token_is_401(client):
    response = await client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_cookie_token_is_accepted(client, make_user):
    from atelier.utils.jwt_auth import create_access_token

    user = await make_user("user")
    client.cookies.set("access_token", create_access_token(user.id))
    response = await client.get("/api/users/me")
    client.cookies.clear()
    assert response.json()["id"] == user.id
