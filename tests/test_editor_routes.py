DOC = {
    "type": "doc",
    "content": [
        {"type": "image", "attrs": {"src": "a.jpg"}},
        {"type": "image", "attrs": {"src": "b.jpg"}},
        {"type": "imageGallery", "attrs": {"images": ["c.jpg", "d.jpg", "e.jpg"], "layout": "grid"}},
    ],
}


async def _editor_headers(make_user, auth_headers):
    return auth_headers(await make_user("editor"))


async def test_merge(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)
    response = await client.post("/api/editor/merge", json={"document": DOC, "selected": [0], "clicked": [1]}, headers=headers)

    assert response.status_code == 200
    content = response.json()["document"]["content"]
    assert content[0] == {"type": "imageGallery", "attrs": {"images": ["a.jpg", "b.jpg"], "layout": "grid"}}
    assert len(content) == 2


async def test_merge_invalid_position_is_400(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)
    response = await client.post("/api/editor/merge", json={"document": DOC, "selected": [0], "clicked": [7]}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid document operation"


async def test_gallery_operations(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)

    response = await client.post("/api/editor/gallery/remove", json={"document": DOC, "path": [2], "index": 0}, headers=headers)
    assert response.json()["document"]["content"][2]["attrs"]["images"] == ["d.jpg", "e.jpg"]

    response = await client.post("/api/editor/gallery/extract", json={"document": DOC, "path": [2], "index": 2}, headers=headers)
    content = response.json()["document"]["content"]
    assert content[2]["attrs"]["images"] == ["c.jpg", "d.jpg"]
    assert content[3] == {"type": "image", "attrs": {"src": "e.jpg"}}

    response = await client.post(
        "/api/editor/gallery/move",
        json={"document": DOC, "path": [2], "old_index": 2, "new_index": 0},
        headers=headers,
    )
    assert response.json()["document"]["content"][2]["attrs"]["images"] == ["e.jpg", "c.jpg", "d.jpg"]

    response = await client.post("/api/editor/gallery/layout", json={"document": DOC, "path": [2]}, headers=headers)
    assert response.json()["document"]["content"][2]["attrs"]["layout"] == "swiper"

    response = await client.post("/api/editor/gallery/add", json={"document": DOC, "gallery": [2], "image": [0]}, headers=headers)
    content = response.json()["document"]["content"]
    assert content[1]["attrs"]["images"] == ["c.jpg", "d.jpg", "e.jpg", "a.jpg"]


async def test_columns_and_validate(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)

    response = await client.post("/api/editor/columns", json={"columns": 3}, headers=headers)
    assert response.json()["node"]["attrs"] == {"columns": 3}
    assert len(response.json()["node"]["content"]) == 3

    assert (await client.post("/api/editor/columns", json={"columns": 1}, headers=headers)).status_code == 400

    response = await client.post("/api/editor/validate", json={"document": DOC}, headers=headers)
    assert response.json() == {"valid": True, "images": ["a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"]}

    response = await client.post("/api/editor/validate", json={"document": {"type": "nope"}}, headers=headers)
    assert response.json()["valid"] is False


async def test_requires_editor(client, make_user, auth_headers):
    user = await make_user("user")
    response = await client.post("/api/editor/merge", json={"document": DOC, "selected": [0], "clicked": [1]}, headers=auth_headers(user))
    assert response.status_code == 403


async def test_merge_follows_click_order(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)
    response = await client.post("/api/editor/merge", json={"document": DOC, "selected": [1], "clicked": [0]}, headers=headers)
    assert response.json()["document"]["content"][0]["attrs"]["images"] == ["b.jpg", "a.jpg"]


async def test_set_columns(client, make_user, auth_headers):
    headers = await _editor_headers(make_user, auth_headers)
    document = {"type": "doc", "content": [{"type": "columns", "attrs": {"columns": 2}, "content": [{"type": "paragraph"}]}]}

    response = await client.post("/api/editor/columns/set", json={"document": document, "path": [0], "columns": 3}, headers=headers)
    assert response.json()["document"]["content"][0]["attrs"] == {"columns": 3}

    response = await client.post("/api/editor/columns/set", json={"document": document, "path": [0], "columns": 4}, headers=headers)
    assert response.status_code == 400

    response = await client.post("/api/editor/columns/set", json={"document": DOC, "path": [0], "columns": 3}, headers=headers)
    assert response.json()["error"] == "Invalid document operation"
