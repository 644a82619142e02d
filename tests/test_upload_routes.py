import io

import pytest
from PIL import Image

from atelier.routes import uploads


def _png(width=32, height=16):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def uploaded(monkeypatch):
    calls = []

    async def fake_upload(file, folder="gallery", public_id=None, max_retries=3):
        calls.append({"folder": folder, "size": len(file)})
        return {
            "url": f"https://res.cloudinary.com/demo/image/upload/v1/{folder}/abc.webp",
            "public_id": f"{folder}/abc",
            "width": None,
            "height": None,
        }

    monkeypatch.setattr(uploads, "upload_image", fake_upload)
    return calls


async def test_upload_to_temp_folder(client, make_user, auth_headers, uploaded):
    editor = await make_user("editor")
    response = await client.post(
        "/api/upload",
        files={"file": ("photo.png", _png(), "image/png")},
        data={"isTemp": "true"},
        headers=auth_headers(editor),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["url"].endswith(f"posts/temp/{editor.id}/abc.webp")
    assert (body["width"], body["height"]) == (32, 16)
    assert uploaded[0]["folder"] == f"posts/temp/{editor.id}"


async def test_upload_targets(client, make_user, auth_headers, uploaded):
    headers = auth_headers(await make_user("editor"))

    await client.post("/api/upload", files={"file": ("a.png", _png(), "image/png")}, headers=headers)
    await client.post(
        "/api/upload", files={"file": ("b.png", _png(), "image/png")}, data={"target": "gallery"}, headers=headers
    )
    assert [call["folder"] for call in uploaded] == ["posts/uploads", "gallery"]

    response = await client.post(
        "/api/upload", files={"file": ("c.png", _png(), "image/png")}, data={"target": "elsewhere"}, headers=headers
    )
    assert response.status_code == 400


async def test_upload_rejects_non_images(client, make_user, auth_headers, uploaded):
    headers = auth_headers(await make_user("editor"))
    response = await client.post(
        "/api/upload", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=headers
    )
    assert response.status_code == 400
    assert uploaded == []


async def test_upload_requires_editor(client, make_user, auth_headers, uploaded):
    user = await make_user("user")
    response = await client.post(
        "/api/upload", files={"file": ("a.png", _png(), "image/png")}, headers=auth_headers(user)
    )
    assert response.status_code == 403


async def test_delete_image(client, make_user, auth_headers, monkeypatch):
    deleted = []

    async def fake_delete(public_id, max_retries=3):
        deleted.append(public_id)
        return {"result": "ok"}

    monkeypatch.setattr(uploads, "delete_image", fake_delete)
    headers = auth_headers(await make_user("editor"))

    response = await client.post(
        "/api/images/delete",
        json={"imageUrl": "https://res.cloudinary.com/demo/image/upload/v17/posts/blog/3/photo.webp"},
        headers=headers,
    )
    assert response.json() == {"success": True, "result": "ok"}
    assert deleted == ["posts/blog/3/photo"]

    response = await client.post("/api/images/delete", json={"imageUrl": "https://example.com/x.png"}, headers=headers)
    assert response.status_code == 400
