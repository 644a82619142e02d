import pytest

from atelier.config import settings
from atelier.main import app
from atelier.models import GalleryItem, GalleryScrap
from atelier.routes import gallery
from atelier.services.image_analysis import FetchedImage, ImageAnalysis, ImageAnalysisError


class FakeAnalyzer:
    def __init__(self, fail_for=(), raw=None):
        self.fail_for = set(fail_for)
        self.raw = raw
        self.calls = []

    async def analyze(self, image_url, tolerate_parse_errors=False):
        self.calls.append((image_url, tolerate_parse_errors))
        if image_url in self.fail_for:
            raise ImageAnalysisError("Failed to parse AI JSON response", raw=self.raw)
        return ImageAnalysis(
            category="landscape",
            summary="바다 풍경",
            visual_detail="Location: sea",
            tags=["풍경", "바다"],
            embedding=[0.5, 0.5],
            embedding_source="multimodal",
        )


@pytest.fixture
def analyzer():
    fake = FakeAnalyzer()
    app.dependency_overrides[gallery.get_analyzer] = lambda: fake
    yield fake
    app.dependency_overrides.pop(gallery.get_analyzer, None)


def _item(title, **kwargs):
    kwargs.setdefault("image_url", f"https://res.cloudinary.com/demo/image/upload/v1/gallery/{title}.webp")
    return GalleryItem(title=title, **kwargs)


async def test_list_filters_by_tags_and_search(client, add_rows):
    await add_rows(
        _item("sunset", tags=["풍경"], gemini_description="노을 지는 바다"),
        _item("noodles", gemini_tags=["음식"]),
        _item("harbour", gemini_tags=["풍경", "항구"]),
    )

    response = await client.get("/api/gallery", params={"tags": "풍경"})
    body = response.json()
    assert response.status_code == 200
    assert {item["title"] for item in body["data"]} == {"sunset", "harbour"}
    assert body["pagination"]["total"] == 2
    assert body["filters"]["tags"] == ["풍경"]

    response = await client.get("/api/gallery", params={"search": "노을"})
    assert [item["title"] for item in response.json()["data"]] == ["sunset"]

    response = await client.get("/api/gallery", params={"tags": "풍경,항구"})
    assert [item["title"] for item in response.json()["data"]] == ["harbour"]


async def test_list_pagination(client, add_rows):
    await add_rows(*[_item(f"item{i}") for i in range(5)])
    response = await client.get("/api/gallery", params={"page": 2, "limit": 2})
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "totalPages": 3}


async def test_create_requires_editor(client, make_user, auth_headers):
    editor = await make_user("editor")
    user = await make_user("user")
    payload = {"title": "cat", "image_url": "https://img.test/cat.webp", "tags": ["고양이"], "embedding": [0.1, 0.2]}

    response = await client.post("/api/gallery", json=payload, headers=auth_headers(user))
    assert response.status_code == 403

    response = await client.post("/api/gallery", json=payload)
    assert response.status_code == 401

    response = await client.post("/api/gallery", json=payload, headers=auth_headers(editor))
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["author"] == editor.id
    assert data["has_embedding"] is True
    assert "embedding" not in data


async def test_create_requires_title_and_image(client, make_user, auth_headers):
    editor = await make_user("editor")
    response = await client.post("/api/gallery", json={"title": "cat"}, headers=auth_headers(editor))
    assert response.status_code == 400


async def test_analyze_returns_analysis(client, make_user, auth_headers, analyzer):
    editor = await make_user("editor")
    response = await client.post(
        "/api/gallery/analyze",
        json={"imageUrl": "https://img.test/sea.png"},
        headers=auth_headers(editor),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "landscape"
    assert body["tags"] == ["풍경", "바다"]
    assert body["embedding_source"] == "multimodal"
    assert analyzer.calls == [("https://img.test/sea.png", False)]


async def test_analyze_failure_includes_raw_text(client, make_user, auth_headers):
    editor = await make_user("editor")
    fake = FakeAnalyzer(fail_for={"https://img.test/bad.png"}, raw="not json")
    app.dependency_overrides[gallery.get_analyzer] = lambda: fake

    response = await client.post(
        "/api/gallery/analyze",
        json={"imageUrl": "https://img.test/bad.png"},
        headers=auth_headers(editor),
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to parse AI JSON response", "raw": "not json"}


async def test_analyze_without_api_key(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    editor = await make_user("editor")
    response = await client.post(
        "/api/gallery/analyze",
        json={"imageUrl": "https://img.test/sea.png"},
        headers=auth_headers(editor),
    )
    assert response.status_code == 500
    assert response.json()["error"] == "API Key not found"


async def test_migrate_processes_batch_and_reports_failures(client, make_user, auth_headers, add_rows, analyzer):
    editor = await make_user("editor")
    ok, bad, done = await add_rows(
        _item("ok", image_url="https://img.test/ok.png"),
        _item("bad", image_url="https://img.test/bad.png"),
        _item("done", image_url="https://img.test/done.png", embedding=[1.0, 0.0]),
    )
    analyzer.fail_for.add("https://img.test/bad.png")

    status_response = await client.get("/api/gallery/migrate")
    assert status_response.json()["status"] == {"total": 3, "processed": 1, "remaining": 2, "percentage": 33}

    response = await client.post("/api/gallery/migrate", json={"limit": 5}, headers=auth_headers(editor))
    body = response.json()
    assert response.status_code == 200
    assert body["processed"] == 1
    assert body["failed"] == 1
    assert body["totalRemaining"] == 1
    assert body["failedItems"][0]["id"] == bad.id
    assert [url for url, _ in analyzer.calls] == ["https://img.test/ok.png", "https://img.test/bad.png"]
    assert all(tolerant for _, tolerant in analyzer.calls)

    detail = (await client.get(f"/api/gallery/{ok.id}")).json()["data"]
    assert detail["gemini_category"] == "landscape"
    assert detail["gemini_tags"] == ["풍경", "바다"]
    assert detail["has_embedding"] is True


async def test_migrate_with_nothing_left(client, make_user, auth_headers, analyzer):
    editor = await make_user("editor")
    response = await client.post("/api/gallery/migrate", headers=auth_headers(editor))
    assert response.status_code == 200
    assert response.json()["processed"] == 0
    assert response.json()["totalRemaining"] == 0


async def test_migrate_access(client, make_user, auth_headers, add_rows, analyzer, monkeypatch):
    await add_rows(_item("ok", image_url="https://img.test/ok.png"))
    user = await make_user("user")

    assert (await client.post("/api/gallery/migrate")).status_code == 401
    assert (await client.post("/api/gallery/migrate", headers=auth_headers(user))).status_code == 403

    monkeypatch.setattr(settings, "MIGRATION_TOKEN", "batch-secret")
    response = await client.post("/api/gallery/migrate", headers={"X-Migration-Token": "batch-secret"})
    assert response.status_code == 200
    assert response.json()["processed"] == 1

    response = await client.post("/api/gallery/migrate", headers={"X-Migration-Token": "wrong"})
    assert response.status_code == 401


async def test_similar_items(client, add_rows):
    source, twin, cousin, stranger, blank = await add_rows(
        _item("source", embedding=[1.0, 0.0]),
        _item("twin", embedding=[2.0, 0.0]),
        _item("cousin", embedding=[1.0, 0.3]),
        _item("stranger", embedding=[0.0, 1.0]),
        _item("blank"),
    )

    response = await client.post(f"/api/gallery/{source.id}/similar", json={"limit": 10})
    data = response.json()["data"]
    assert [item["title"] for item in data] == ["twin", "cousin"]
    assert data[0]["similarity"] == 1.0

    response = await client.post(f"/api/gallery/{blank.id}/similar")
    assert response.status_code == 400

    response = await client.post("/api/gallery/9999/similar")
    assert response.status_code == 404


async def test_detail_not_found(client):
    response = await client.get("/api/gallery/9999")
    assert response.status_code == 404
    assert response.json()["error"] == "Gallery not found"


async def test_update_checks_ownership(client, make_user, auth_headers, add_rows):
    owner = await make_user("editor")
    other = await make_user("editor")
    manager = await make_user("sub-admin")
    item = await add_rows(_item("mine", author=owner.id))

    response = await client.patch(f"/api/gallery/{item.id}", json={"title": "x"}, headers=auth_headers(other))
    assert response.status_code == 403

    response = await client.patch(f"/api/gallery/{item.id}", json={"title": "renamed"}, headers=auth_headers(owner))
    assert response.json()["data"]["title"] == "renamed"

    response = await client.patch(f"/api/gallery/{item.id}", json={"tags": ["a"]}, headers=auth_headers(manager))
    assert response.json()["data"]["tags"] == ["a"]
    assert response.json()["data"]["title"] == "renamed"


async def test_update_rejects_null_required_fields(client, make_user, auth_headers, add_rows):
    owner = await make_user("editor")
    item = await add_rows(_item("mine", author=owner.id, tags=["keep"]))
    headers = auth_headers(owner)

    for body in ({"tags": None}, {"range": None}, {"title": None}, {"image_url": None}, {"title": "  "}):
        response = await client.patch(f"/api/gallery/{item.id}", json=body, headers=headers)
        assert response.status_code == 400, body

    response = await client.patch(f"/api/gallery/{item.id}", json={"description": None}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["tags"] == ["keep"]


async def test_delete_survives_storage_failure(client, make_user, auth_headers, add_rows, monkeypatch):
    owner = await make_user("editor")
    item = await add_rows(_item("doomed", author=owner.id))
    await add_rows(GalleryScrap(gallery_id=item.id, user_id=owner.id))

    async def broken_delete(url):
        raise RuntimeError("cloudinary down")

    monkeypatch.setattr(gallery, "delete_image_by_url", broken_delete)

    response = await client.delete(f"/api/gallery/{item.id}", headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["deleted_id"] == item.id
    assert (await client.get(f"/api/gallery/{item.id}")).status_code == 404


async def test_scrap_toggle(client, make_user, auth_headers, add_rows):
    user = await make_user("user")
    item = await add_rows(_item("fav"))

    first = await client.post(f"/api/gallery/{item.id}/scrap", headers=auth_headers(user))
    assert first.json() == {"success": True, "scraped": True, "scrapCount": 1}
    assert (await client.get(f"/api/gallery/{item.id}")).json()["scrapCount"] == 1

    second = await client.post(f"/api/gallery/{item.id}/scrap", headers=auth_headers(user))
    assert second.json() == {"success": True, "scraped": False, "scrapCount": 0}


async def test_top_tags(client, add_rows):
    await add_rows(
        _item("a", tags=["풍경"], gemini_tags=["바다"]),
        _item("b", tags=["풍경"]),
        _item("c", gemini_tags=["풍경", "산"]),
    )
    tags = (await client.get("/api/gallery/tags/top")).json()["tags"]
    assert tags[0] == {"tag": "풍경", "count": 3}
    assert {entry["tag"] for entry in tags} == {"풍경", "바다", "산"}


async def test_random(client, add_rows):
    await add_rows(*[_item(f"r{i}") for i in range(4)])
    data = (await client.get("/api/gallery/random", params={"limit": 3})).json()["data"]
    assert len(data) == 3


async def test_dimensions_backfill(client, add_rows, make_user, auth_headers, monkeypatch):
    measured, unmeasured = await add_rows(
        _item("measured", image_width=10, image_height=10),
        _item("unmeasured"),
    )

    async def fake_fetch(url, http_client=None):
        return FetchedImage(data=b"png", mime_type="image/png")

    monkeypatch.setattr(gallery, "fetch_image", fake_fetch)
    monkeypatch.setattr(gallery, "get_image_dimensions", lambda data: (640, 480))
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "admin-key")

    editor = await make_user("editor")
    assert (await client.post("/api/gallery/dimensions")).status_code == 401
    assert (await client.post("/api/gallery/dimensions", headers=auth_headers(editor))).status_code == 403

    response = await client.post("/api/gallery/dimensions", headers={"Authorization": "Bearer admin-key"})
    body = response.json()
    assert body["processed"] == 1
    assert body["results"] == [{"id": unmeasured.id, "status": "success", "width": 640, "height": 480}]

    admin = await make_user("admin")
    response = await client.post(
        "/api/gallery/dimensions", params={"force": "true"}, headers=auth_headers(admin)
    )
    assert response.json()["successful"] == 2
