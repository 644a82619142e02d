from types import SimpleNamespace

import pytest

from atelier.config import settings
from atelier.editor.document import extract_text
from atelier.main import app
from atelier.routes import posts
from atelier.services.image_analysis import ImageAnalysisError
from atelier.services.post_assist import NotEnoughContent, PostAssistant, parse_tags


def _doc(*texts):
    return {
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": t}]} for t in texts
        ],
    }


LONG_DOC = _doc("서울의 오래된 골목을 걸으며 찍은 사진들을 모았습니다.", "필름 카메라로 담은 겨울 풍경입니다.")


class FakeModels:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append((model, contents, config))
        return SimpleNamespace(text=self.reply)


def _assistant(reply):
    models = FakeModels(reply)
    return PostAssistant(client=SimpleNamespace(aio=SimpleNamespace(models=models)), model="text-model"), models


def test_extract_text_walks_nested_nodes():
    doc = {
        "type": "doc",
        "content": [
            {"type": "heading", "content": [{"type": "text", "text": "제목"}]},
            {"type": "columns", "content": [
                {"type": "column", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "왼쪽"}]}]},
                {"type": "column", "content": [{"type": "image", "attrs": {"src": "a.jpg"}}]},
            ]},
        ],
    }
    assert extract_text(doc) == "제목 왼쪽"
    assert extract_text("plain") == "plain"
    assert extract_text(None) == ""


def test_parse_tags_from_json_and_fallback():
    assert parse_tags('{"tags": ["#서울", "사진", ""]}') == ["서울", "사진"]
    assert parse_tags('tags: "서울", "필름"') == ["서울", "필름"]
    assert parse_tags('{"tags": ["여행", "겨울"') == ["여행", "겨울"]
    assert parse_tags("") == []


def test_parse_tags_caps_the_list():
    reply = '{"tags": [' + ", ".join(f'"t{i}"' for i in range(12)) + "]}"
    assert len(parse_tags(reply)) == 8


async def test_summarize_prompts_with_truncated_text():
    assistant, models = _assistant("  겨울 골목 사진 모음입니다.  ")

    summary = await assistant.summarize("겨울 산책", "필름 사진", _doc("가" * 5000))

    assert summary == "겨울 골목 사진 모음입니다."
    model, prompt, config = models.calls[0]
    assert model == "text-model"
    assert '- Title: "겨울 산책"' in prompt
    assert "가" * 3000 in prompt and "가" * 3001 not in prompt
    assert config.temperature == 0.3
    assert config.max_output_tokens == 800


async def test_summarize_skips_short_bodies():
    assistant, models = _assistant("unused")

    assert await assistant.summarize("제목", None, _doc("짧은 글")) == ""
    assert models.calls == []

    with pytest.raises(NotEnoughContent):
        await assistant.summarize(None, "부제", None)


async def test_suggest_tags_requires_title_or_enough_text():
    assistant, models = _assistant('{"tags": ["서울", "필름"]}')

    with pytest.raises(NotEnoughContent):
        await assistant.suggest_tags(None, None, None)
    with pytest.raises(NotEnoughContent):
        await assistant.suggest_tags(None, None, _doc("짧다"))

    assert await assistant.suggest_tags("겨울 산책", None, None) == ["서울", "필름"]
    assert models.calls[0][2].response_mime_type == "application/json"


def test_missing_api_key_raises(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    with pytest.raises(ImageAnalysisError, match="API Key not found"):
        PostAssistant()


@pytest.fixture
def assistant():
    fake, models = _assistant('{"tags": ["서울", "필름", "겨울"]}')
    app.dependency_overrides[posts.get_assistant] = lambda: fake
    yield models
    app.dependency_overrides.pop(posts.get_assistant, None)


async def test_generate_tags_route(client, make_user, auth_headers, assistant):
    editor = await make_user("editor")
    member = await make_user("user")
    body = {"title": "겨울 산책", "content": LONG_DOC}

    assert (await client.post("/api/posts/generate-tags", json=body)).status_code == 401
    assert (await client.post("/api/posts/generate-tags", json=body, headers=auth_headers(member))).status_code == 403

    response = await client.post("/api/posts/generate-tags", json=body, headers=auth_headers(editor))
    assert response.status_code == 200
    assert response.json() == {"success": True, "tags": ["서울", "필름", "겨울"]}

    response = await client.post("/api/posts/generate-tags", json={"content": _doc("짧다")}, headers=auth_headers(editor))
    assert response.status_code == 400
    assert response.json()["error"] == "내용이 너무 짧아 분석할 수 없습니다."


async def test_generate_summary_route(client, make_user, auth_headers, assistant):
    editor = await make_user("editor")
    headers = auth_headers(editor)

    response = await client.post("/api/posts/generate-summary", json={"title": "겨울 산책", "content": LONG_DOC}, headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert len(assistant.calls) == 1

    response = await client.post("/api/posts/generate-summary", json={"title": "제목", "content": _doc("짧음")}, headers=headers)
    assert response.json() == {"success": True, "summary": ""}

    response = await client.post("/api/posts/generate-summary", json={}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "No content to summarize"


async def test_generate_summary_without_api_key(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    editor = await make_user("editor")

    response = await client.post(
        "/api/posts/generate-summary",
        json={"title": "겨울 산책", "content": LONG_DOC},
        headers=auth_headers(editor),
    )
    assert response.status_code == 500
    assert response.json()["error"] == "API Key not found"
