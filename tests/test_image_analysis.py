import json
from types import SimpleNamespace

import httpx
import pytest

from atelier.services.image_analysis import (
    CATEGORIES,
    EMBEDDING_MULTIMODAL,
    EMBEDDING_TEXT,
    FetchedImage,
    ImageAnalysisError,
    ImageAnalyzer,
    clean_tags,
    embedding_text,
    fetch_image,
    normalize_category,
    parse_json_response,
    payload_size_kb,
)

MULTIMODAL_MODEL = "mm-embed"
TEXT_MODEL = "text-embed"


class FakeModels:
    """Stands in for client.aio.models; replies are consumed in order."""

    def __init__(self, replies, multimodal_fails=False):
        self.replies = list(replies)
        self.multimodal_fails = multimodal_fails
        self.prompts = []
        self.embed_calls = []

    async def generate_content(self, model, contents, config=None):
        self.prompts.append(contents[0])
        return SimpleNamespace(text=self.replies.pop(0))

    async def embed_content(self, model, contents):
        self.embed_calls.append((model, contents))
        if model == MULTIMODAL_MODEL and self.multimodal_fails:
            raise RuntimeError("multimodal input not supported")
        vector = [0.1, 0.2, 0.3] if model == MULTIMODAL_MODEL else [0.9, 0.8]
        return SimpleNamespace(embeddings=[SimpleNamespace(values=vector)])


def _client(models):
    return SimpleNamespace(aio=SimpleNamespace(models=models))


def _http_client(body: bytes, status_code=200, content_type="image/png"):
    def handler(request):
        return httpx.Response(status_code, content=body, headers={"content-type": content_type})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _analyzer(models, body=b"\x89PNG" + b"0" * 100, **kwargs):
    return ImageAnalyzer(
        client=_client(models),
        http_client=_http_client(body),
        vision_model="vision",
        multimodal_model=MULTIMODAL_MODEL,
        text_model=TEXT_MODEL,
        multimodal_max_kb=30,
        **kwargs,
    )


DETAILS = {
    "summary": "붉은 노을이 지는 해변 풍경",
    "visual_detail": "Location: sea | Colors: orange, purple",
    "tags": ["#풍경", "노을", "", 3, "바다"],
}


def test_ten_fixed_categories():
    assert len(CATEGORIES) == 10
    assert normalize_category(" Landscape ") == "landscape"
    assert normalize_category("spaceship") == "other"
    assert normalize_category(None) == "other"


def test_clean_tags():
    assert clean_tags(["#a", " b ", "", None, "c"], 15) == ["a", "b", "c"]
    assert clean_tags([f"t{i}" for i in range(20)], 15) == [f"t{i}" for i in range(15)]
    assert clean_tags("not a list", 15) == []


def test_parse_json_response():
    assert parse_json_response('{"a": 1}') == {"a": 1}
    assert parse_json_response('```json\n{"a": 2}\n```') == {"a": 2}
    with pytest.raises(ValueError):
        parse_json_response("not json")
    with pytest.raises(ValueError):
        parse_json_response("")
    with pytest.raises(ValueError):
        parse_json_response("[1, 2]")


def test_payload_size_and_embedding_text():
    image = FetchedImage(data=b"x" * 3072, mime_type="image/png")
    assert payload_size_kb(image.base64) == pytest.approx(3.0)
    assert embedding_text("food", {"visual_detail": "Food: noodles"}) == "[food] Food: noodles"
    assert embedding_text("food", {"summary": "국수"}) == "[food] 국수"


async def test_fetch_image_reads_mime_type():
    image = await fetch_image("https://img.test/a.png", _http_client(b"data", content_type="image/webp; q=1"))
    assert image.data == b"data"
    assert image.mime_type == "image/webp"


async def test_fetch_image_http_error():
    with pytest.raises(ImageAnalysisError):
        await fetch_image("https://img.test/missing.png", _http_client(b"", status_code=404))


async def test_small_image_uses_multimodal_embedding():
    models = FakeModels([json.dumps({"category": "landscape"}), json.dumps(DETAILS)])
    analysis = await _analyzer(models).analyze("https://img.test/a.png")

    assert analysis.category == "landscape"
    assert analysis.summary == DETAILS["summary"]
    assert analysis.tags == ["풍경", "노을", "바다"]
    assert analysis.embedding_source == EMBEDDING_MULTIMODAL
    assert analysis.embedding == [0.1, 0.2, 0.3]
    assert [model for model, _ in models.embed_calls] == [MULTIMODAL_MODEL]
    assert "landscape" in models.prompts[1]


async def test_large_image_uses_text_embedding():
    models = FakeModels([json.dumps({"category": "landscape"}), json.dumps(DETAILS)])
    analysis = await _analyzer(models, body=b"x" * 40 * 1024).analyze("https://img.test/big.png")

    assert analysis.embedding_source == EMBEDDING_TEXT
    assert analysis.embedding == [0.9, 0.8]
    assert models.embed_calls == [(TEXT_MODEL, "[landscape] Location: sea | Colors: orange, purple")]


async def test_multimodal_failure_falls_back_to_text():
    models = FakeModels(
        [json.dumps({"category": "landscape"}), json.dumps(DETAILS)],
        multimodal_fails=True,
    )
    analysis = await _analyzer(models).analyze("https://img.test/a.png")

    assert analysis.embedding_source == EMBEDDING_TEXT
    assert [model for model, _ in models.embed_calls] == [MULTIMODAL_MODEL, TEXT_MODEL]


async def test_unparseable_category_defaults_to_other():
    models = FakeModels(["I think it's a cat", json.dumps(DETAILS)])
    analysis = await _analyzer(models).analyze("https://img.test/a.png")
    assert analysis.category == "other"


async def test_tags_are_capped():
    details = dict(DETAILS, tags=[f"tag{i}" for i in range(30)])
    models = FakeModels([json.dumps({"category": "art"}), json.dumps(details)])
    analysis = await _analyzer(models, max_tags=15).analyze("https://img.test/a.png")
    assert len(analysis.tags) == 15


async def test_unparseable_details_raise_with_raw_text():
    models = FakeModels([json.dumps({"category": "food"}), "sorry, no JSON today"])
    with pytest.raises(ImageAnalysisError) as excinfo:
        await _analyzer(models).analyze("https://img.test/a.png")
    assert excinfo.value.raw == "sorry, no JSON today"


async def test_unparseable_details_can_be_tolerated():
    models = FakeModels([json.dumps({"category": "food"}), "sorry, no JSON today"], multimodal_fails=True)
    analysis = await _analyzer(models).analyze("https://img.test/a.png", tolerate_parse_errors=True)

    assert analysis.summary == "이미지 분석 실패"
    assert analysis.tags == []
    assert analysis.embedding == [0.9, 0.8]
    assert models.embed_calls[-1] == (TEXT_MODEL, "[food] 이미지 분석 실패")


async def test_missing_summary_gets_placeholder():
    models = FakeModels([json.dumps({"category": "food"}), json.dumps({"tags": ["면"]})])
    analysis = await _analyzer(models).analyze("https://img.test/a.png")
    assert analysis.summary
    assert analysis.visual_detail == ""


def test_missing_api_key(monkeypatch):
    from atelier.config import settings

    monkeypatch.setattr(settings, "GEMINI_API_KEY", "")
    with pytest.raises(ImageAnalysisError, match="API Key not found"):
        ImageAnalyzer()
