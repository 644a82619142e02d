import datetime

import pytest

from atelier.models import Post, PostCategory, PostScrap
from atelier.services import post_images

DOC = {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "hello"}]}]}


def _payload(**overrides):
    payload = {"title": "First post", "slug": "first-post", "content": DOC}
    payload.update(overrides)
    return payload


async def _create(client, headers, **overrides):
    response = await client.post("/api/posts", json=_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


async def test_create_saves_draft(client, make_user, auth_headers):
    editor = await make_user("editor")
    response = await client.post("/api/posts", json=_payload(tags=["news"]), headers=auth_headers(editor))

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Post saved"
    assert body["data"]["is_published"] is False
    assert body["data"]["published_at"] is None
    assert body["data"]["author_id"] == editor.id
    assert body["data"]["content"] == DOC


async def test_create_reports_missing_fields(client, make_user, auth_headers):
    editor = await make_user("editor")
    response = await client.post("/api/posts", json={"title": "only a title"}, headers=auth_headers(editor))

    assert response.status_code == 400
    body = response.json()
    assert body["required"] == ["title", "slug", "content"]
    assert body["missing"] == ["slug", "content"]


async def test_create_rejects_bad_slug_and_document(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)

    response = await client.post("/api/posts", json=_payload(slug="Bad Slug"), headers=headers)
    assert response.status_code == 400

    bad_doc = {"type": "doc", "content": [{"type": "imageGallery", "attrs": {"images": ["a"], "layout": "carousel"}}]}
    response = await client.post("/api/posts", json=_payload(content=bad_doc), headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid document"


async def test_duplicate_slug_is_rejected(client, make_user, auth_headers):
    editor = await make_user("editor")
    await _create(client, auth_headers(editor))

    response = await client.post("/api/posts", json=_payload(title="Other"), headers=auth_headers(editor))
    assert response.status_code == 400
    assert response.json()["error"] == "Slug already exists"


async def test_plain_user_cannot_create(client, make_user, auth_headers):
    user = await make_user("user")
    response = await client.post("/api/posts", json=_payload(), headers=auth_headers(user))
    assert response.status_code == 403


async def test_publish_lifecycle(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)
    post = await _create(client, headers)

    assert (await client.get("/api/posts")).json()["data"] == []
    assert (await client.get(f"/api/posts/{post['id']}")).status_code == 404
    assert (await client.get(f"/api/posts/{post['id']}", headers=headers)).status_code == 200

    published = await client.patch(f"/api/posts/{post['id']}/publish", json={"is_published": True}, headers=headers)
    first_stamp = published.json()["data"]["published_at"]
    assert published.json()["data"]["is_published"] is True
    assert first_stamp is not None

    again = await client.patch(f"/api/posts/{post['id']}/publish", json={"is_published": True}, headers=headers)
    assert again.json()["data"]["published_at"] == first_stamp

    listing = (await client.get("/api/posts")).json()
    assert [p["slug"] for p in listing["data"]] == ["first-post"]
    assert "content" not in listing["data"][0]
    assert listing["pagination"]["hasMore"] is False

    unpublished = await client.patch(f"/api/posts/{post['id']}/publish", json={"is_published": False}, headers=headers)
    assert unpublished.json()["data"]["published_at"] is None
    assert (await client.get("/api/posts")).json()["data"] == []


async def test_editor_cannot_touch_other_editors_post(client, make_user, auth_headers):
    author = await make_user("editor")
    other = await make_user("editor")
    post = await _create(client, auth_headers(author))

    response = await client.put(f"/api/posts/{post['id']}", json={"title": "hijack"}, headers=auth_headers(other))
    assert response.status_code == 403

    response = await client.delete(f"/api/posts/{post['id']}", headers=auth_headers(other))
    assert response.status_code == 403


async def test_sub_admin_cannot_edit_admin_post(client, make_user, auth_headers):
    admin = await make_user("admin")
    sub_admin = await make_user("sub-admin")
    editor = await make_user("editor")
    admin_post = await _create(client, auth_headers(admin), slug="admin-post")
    editor_post = await _create(client, auth_headers(editor), slug="editor-post")

    response = await client.put(f"/api/posts/{admin_post['id']}", json={"title": "x"}, headers=auth_headers(sub_admin))
    assert response.status_code == 403

    response = await client.put(f"/api/posts/{editor_post['id']}", json={"title": "fixed"}, headers=auth_headers(sub_admin))
    assert response.status_code == 200

    response = await client.put(f"/api/posts/{editor_post['id']}", json={"title": "by admin"}, headers=auth_headers(admin))
    assert response.status_code == 200


async def test_dashboard_list_scopes(client, make_user, auth_headers):
    admin = await make_user("admin")
    sub_admin = await make_user("sub-admin")
    editor = await make_user("editor")
    await _create(client, auth_headers(admin), slug="admin-post")
    await _create(client, auth_headers(sub_admin), slug="sub-admin-post")
    await _create(client, auth_headers(editor), slug="editor-post")

    async def slugs(user):
        response = await client.get("/api/posts/admin", headers=auth_headers(user))
        return {p["slug"] for p in response.json()["data"]}

    assert await slugs(admin) == {"admin-post", "sub-admin-post", "editor-post"}
    assert await slugs(sub_admin) == {"sub-admin-post", "editor-post"}
    assert await slugs(editor) == {"editor-post"}

    user = await make_user("user")
    assert (await client.get("/api/posts/admin", headers=auth_headers(user))).status_code == 403


async def test_slug_change_is_recorded_and_old_slug_resolves(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)
    post = await _create(client, headers)
    await client.patch(f"/api/posts/{post['id']}/publish", json={"is_published": True}, headers=headers)

    response = await client.put(f"/api/posts/{post['id']}", json={"slug": "renamed-post"}, headers=headers)
    body = response.json()
    assert body["slugChanged"] is True
    assert body["message"] == "Post updated"

    detail = (await client.get("/api/posts/by-slug/first-post")).json()
    assert detail["id"] == post["id"]
    assert detail["currentSlug"] == "renamed-post"
    assert detail["author"]["id"] == editor.id

    same = await client.put(f"/api/posts/{post['id']}", json={"title": "Retitled"}, headers=headers)
    assert same.json()["slugChanged"] is False


async def test_slug_change_collision(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)
    await _create(client, headers, slug="taken")
    post = await _create(client, headers, slug="mine")

    response = await client.put(f"/api/posts/{post['id']}", json={"slug": "taken"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Slug already exists"


async def test_update_cannot_clear_required_field(client, make_user, auth_headers):
    editor = await make_user("editor")
    post = await _create(client, auth_headers(editor))
    response = await client.put(f"/api/posts/{post['id']}", json={"title": ""}, headers=auth_headers(editor))
    assert response.status_code == 400
    assert response.json()["missing"] == ["title"]


async def test_by_slug_hides_drafts(client, make_user, auth_headers):
    editor = await make_user("editor")
    await _create(client, auth_headers(editor))
    assert (await client.get("/api/posts/by-slug/first-post")).status_code == 404
    response = await client.get("/api/posts/slug/first-post", headers=auth_headers(editor))
    assert response.json()["data"]["slug"] == "first-post"


async def test_view_counted_once_per_visitor(client, make_user, auth_headers):
    editor = await make_user("editor")
    post = await _create(client, auth_headers(editor))
    visitor = {"user-agent": "pytest-browser", "x-forwarded-for": "203.0.113.9"}

    first = await client.post(f"/api/posts/{post['id']}/view", headers=visitor)
    assert first.json() == {"message": "View counted", "viewCount": 1, "incremented": True}

    second = await client.post(f"/api/posts/{post['id']}/view", headers=visitor)
    assert second.json()["incremented"] is False
    assert second.json()["viewCount"] == 1

    other = await client.post(f"/api/posts/{post['id']}/view", headers={**visitor, "x-forwarded-for": "198.51.100.1"})
    assert other.json()["viewCount"] == 2


async def test_scrap_toggle_updates_count(client, make_user, auth_headers):
    editor = await make_user("editor")
    reader = await make_user("user")
    post = await _create(client, auth_headers(editor))
    await client.patch(f"/api/posts/{post['id']}/publish", json={"is_published": True}, headers=auth_headers(editor))

    on = await client.post(f"/api/posts/{post['id']}/scrap", headers=auth_headers(reader))
    assert on.json() == {"scraped": True, "scrapCount": 1}

    view = (await client.get(f"/api/posts/{post['id']}/view", headers=auth_headers(reader))).json()
    assert view["userScraped"] is True

    off = await client.post(f"/api/posts/{post['id']}/scrap", headers=auth_headers(reader))
    assert off.json() == {"scraped": False, "scrapCount": 0}


async def test_scrap_count_never_negative(client, make_user, auth_headers, add_rows):
    editor = await make_user("editor")
    reader = await make_user("user")
    post = await add_rows(Post(title="t", slug="t", content=DOC, author_id=editor.id, scrap_count=0))
    await add_rows(PostScrap(post_id=post.id, user_id=reader.id))

    off = await client.post(f"/api/posts/{post.id}/scrap", headers=auth_headers(reader))
    assert off.json() == {"scraped": False, "scrapCount": 0}


async def test_delete_post(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)
    post = await _create(client, headers)
    await client.post(f"/api/posts/{post['id']}/view", headers={"user-agent": "x"})

    response = await client.delete(f"/api/posts/{post['id']}", headers=headers)
    assert response.status_code == 200
    assert (await client.get(f"/api/posts/{post['id']}", headers=headers)).status_code == 404


async def test_categories(client, make_user, auth_headers):
    editor = await make_user("editor")
    headers = auth_headers(editor)

    first = (await client.post("/api/posts/categories", json={"name": "뉴스"}, headers=headers)).json()["category"]
    second = (await client.post("/api/posts/categories", json={"name": "Guides"}, headers=headers)).json()["category"]
    assert first["order_index"] == 1
    assert second["order_index"] == 2
    assert first["slug"].startswith("nyuseu-")

    listed = (await client.get("/api/posts/categories")).json()["categories"]
    assert [c["name"] for c in listed] == ["뉴스", "Guides"]

    await _create(client, headers, category_id=first["id"])
    response = await client.delete("/api/posts/categories", params={"id": first["id"]}, headers=headers)
    assert response.status_code == 400

    response = await client.delete("/api/posts/categories", params={"id": second["id"]}, headers=headers)
    assert response.status_code == 200


async def test_list_filters_by_category(client, add_rows):
    category = await add_rows(PostCategory(name="News", slug="news"))
    await add_rows(
        Post(title="a", slug="a", content=DOC, is_published=True, published_at=None),
        Post(title="b", slug="b", content=DOC, category_id=category.id, is_published=True,
             published_at=datetime.datetime(2026, 1, 1)),
        Post(title="c", slug="c", content=DOC, is_published=True,
             published_at=datetime.datetime(2026, 2, 1)),
    )

    everything = (await client.get("/api/posts", params={"category_id": "all"})).json()["data"]
    assert [p["slug"] for p in everything] == ["c", "b"]

    news = (await client.get("/api/posts", params={"category_id": str(category.id)})).json()["data"]
    assert [p["slug"] for p in news] == ["b"]

    assert (await client.get("/api/posts", params={"category_id": "abc"})).status_code == 400


@pytest.fixture
def fake_rename(monkeypatch):
    moves = []

    async def rename(from_public_id, to_public_id):
        moves.append((from_public_id, to_public_id))
        return {"url": f"https://res.cloudinary.com/demo/image/upload/{to_public_id}.webp", "public_id": to_public_id}

    monkeypatch.setattr(post_images, "rename_image", rename)
    return moves


async def test_temp_images_move_into_post_folder(client, make_user, auth_headers, fake_rename):
    editor = await make_user("editor")
    temp_url = f"https://res.cloudinary.com/demo/image/upload/v1/posts/temp/{editor.id}/photo.webp"
    other_url = "https://example.com/elsewhere.png"
    content = {"type": "doc", "content": [
        {"type": "image", "attrs": {"src": temp_url}},
        {"type": "imageGallery", "attrs": {"images": [other_url, temp_url], "layout": "grid"}},
    ]}

    post = await _create(client, auth_headers(editor), content=content, title_image_url=temp_url)

    new_url = f"https://res.cloudinary.com/demo/image/upload/posts/blog/{post['id']}/photo.webp"
    assert fake_rename == [(f"posts/temp/{editor.id}/photo", f"posts/blog/{post['id']}/photo")]
    assert post["content"]["content"][0]["attrs"]["src"] == new_url
    assert post["content"]["content"][1]["attrs"]["images"] == [other_url, new_url]
    assert post["title_image_url"] == new_url
