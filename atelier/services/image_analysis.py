"""
Gemini image analysis pipeline.

Given an image URL:
    1. fetch the bytes
    2. classify the image into one of ten fixed categories
    3. run the category-specific prompt for summary, visual_detail and tags
    4. embed: multimodal when the base64 payload is small enough, otherwise a
       text embedding of "[category] visual_detail". A multimodal failure
       falls back to the text embedding.
"""
import base64
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx
from google import genai
from google.genai import types

from atelier.config import settings

logger = logging.getLogger(__name__)


CATEGORIES = (
    "portrait",
    "product",
    "landscape",
    "food",
    "architecture",
    "art",
    "fashion",
    "interior",
    "animal",
    "other",
)
DEFAULT_CATEGORY = "other"

CLASSIFY_PROMPT = f"""Classify this image into ONE category. Return ONLY valid JSON.

{{
  "category": "{'|'.join(CATEGORIES)}"
}}

Choose the most appropriate category. Return ONLY the JSON object."""

_RULES = """Rules:
- summary: Natural Korean description for UI display
- visual_detail: Objective factual description WITHOUT emotions, focusing on {focus}
- tags: 6-10 Korean keywords (WITHOUT #)"""

CATEGORY_PROMPTS = {
    "portrait": """Analyze this portrait/person image. Return ONLY valid JSON.

{
  "summary": "Natural description in Korean (2-3 sentences)",
  "visual_detail": "Subject: Gender/Age | Clothing: Specific color, Style | Hair: Color, Style | Background: Color, Objects | Pose: Description | Expression: Description",
  "tags": ["인물사진", "표정", "의상스타일", "조명", "분위기"]
}

""" + _RULES.format(focus="colors, shapes, objects"),

    "product": """Analyze this product image. Return ONLY valid JSON.

{
  "summary": "Natural description in Korean (2-3 sentences)",
  "visual_detail": "Product: Type | Color: Main color (specific name), Accent colors | Material: Texture description | Shape: Geometric form | Background: Color, Setting",
  "tags": ["제품사진", "제품타입", "색상", "디자인스타일", "배경"]
}

""" + _RULES.format(focus="colors, materials, shapes"),

    "landscape": """Analyze this landscape/nature image. Return ONLY valid JSON.

{
  "summary": "Natural description in Korean (2-3 sentences)",
  "visual_detail": "Location: Type (mountain/sea/city/forest) | Colors: Dominant colors (specific names) | Time: Time of day indicators | Weather: Sky condition | Composition: Main elements positions",
  "tags": ["풍경사진", "장소타입", "시간대", "날씨", "색감"]
}

""" + _RULES.format(focus="location, colors, weather"),

    "food": """Analyze this food image. Return ONLY valid JSON.

{
  "summary": "Natural description in Korean (2-3 sentences)",
  "visual_detail": "Food: Type, Cuisine | Colors: Main colors of food | Plating: Dish type, Arrangement | Background: Surface color, Props | Lighting: Direction, Quality",
  "tags": ["음식사진", "요리타입", "플레이팅", "색감", "조명"]
}

""" + _RULES.format(focus="food type, colors, plating"),

    "other": """Analyze this image. Return ONLY valid JSON.

{
  "summary": "Natural description in Korean (2-3 sentences)",
  "visual_detail": "Main Object: Type | Colors: Dominant colors (specific names) | Lighting: Direction, Quality | Composition: Element positions | Background: Description",
  "tags": ["keyword1", "keyword2", "keyword3"]
}

""" + _RULES.format(focus="objects, colors, composition"),
}

ANALYSIS_FAILED_SUMMARY = "이미지 분석 실패"

EMBEDDING_MULTIMODAL = "multimodal"
EMBEDDING_TEXT = "text"


class ImageAnalysisError(Exception):
    """Raised when an image cannot be fetched or the model output is unusable."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


@dataclass
class FetchedImage:
    data: bytes
    mime_type: str

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass
class ImageAnalysis:
    category: str
    summary: str
    visual_detail: str
    tags: List[str] = field(default_factory=list)
    embedding: List[float] = field(default_factory=list)
    embedding_source: str = EMBEDDING_TEXT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "summary": self.summary,
            "visual_detail": self.visual_detail,
            "tags": self.tags,
            "embedding": self.embedding,
            "embedding_source": self.embedding_source,
        }


def normalize_category(value: Any) -> str:
    """Map a model-provided category onto the fixed enum."""
    if isinstance(value, str):
        candidate = value.strip().lower()
        if candidate in CATEGORIES:
            return candidate
    return DEFAULT_CATEGORY


def clean_tags(tags: Any, limit: int) -> List[str]:
    """Keep non-empty string tags, strip leading '#', cap the list."""
    if not isinstance(tags, list):
        return []
    cleaned = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip().lstrip("#").strip()
        if tag:
            cleaned.append(tag)
    return cleaned[:limit]


def parse_json_response(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model response.
    Tolerates a surrounding ```json fence.

    Raises:
        ValueError: If no JSON object can be decoded
    """
    if not text:
        raise ValueError("Empty model response")
    s = text.strip()
    fence = re.search(r"```(?:json)?\s*([\s\S]*?)```", s)
    if fence:
        s = fence.group(1).strip()
    parsed = json.loads(s)
    if not isinstance(parsed, dict):
        raise ValueError("Model response is not a JSON object")
    return parsed


def payload_size_kb(encoded: str) -> float:
    """Decoded size in KB of a base64 payload."""
    return (len(encoded) * 3) / 4 / 1024


def embedding_text(category: str, details: Dict[str, Any]) -> str:
    return f"[{category}] {details.get('visual_detail') or details.get('summary') or ''}".strip()


async def fetch_image(url: str, http_client: Optional[httpx.AsyncClient] = None) -> FetchedImage:
    """
    Download an image.

    Raises:
        ImageAnalysisError: On network errors or non-2xx responses
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise ImageAnalysisError(f"Failed to fetch image: {str(e)}")
    finally:
        if owns_client:
            await client.aclose()

    mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip() or "image/jpeg"
    return FetchedImage(data=response.content, mime_type=mime_type)


class ImageAnalyzer:
    """
    Orchestrates the Gemini calls for one analysis.
    The genai client and HTTP client are injectable for tests.
    """

    def __init__(
        self,
        client: Any = None,
        http_client: Optional[httpx.AsyncClient] = None,
        vision_model: str = settings.GEMINI_VISION_MODEL,
        multimodal_model: str = settings.GEMINI_MULTIMODAL_EMBEDDING_MODEL,
        text_model: str = settings.GEMINI_TEXT_EMBEDDING_MODEL,
        multimodal_max_kb: float = settings.MULTIMODAL_EMBEDDING_MAX_KB,
        max_tags: int = settings.ANALYSIS_MAX_TAGS,
    ):
        if client is None:
            if not settings.GEMINI_API_KEY:
                raise ImageAnalysisError("API Key not found")
            client = genai.Client(api_key=settings.GEMINI_API_KEY)
        self.client = client
        self.http_client = http_client
        self.vision_model = vision_model
        self.multimodal_model = multimodal_model
        self.text_model = text_model
        self.multimodal_max_kb = multimodal_max_kb
        self.max_tags = max_tags

    async def _generate(self, prompt: str, image: FetchedImage) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.vision_model,
            contents=[
                prompt,
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=0.2,
            ),
        )
        return response.text or ""

    async def classify(self, image: FetchedImage) -> str:
        """Category from the fixed enum; unparseable output falls back to "other"."""
        text = await self._generate(CLASSIFY_PROMPT, image)
        try:
            return normalize_category(parse_json_response(text).get("category"))
        except ValueError:
            logger.warning(f"Category classification unparseable, using '{DEFAULT_CATEGORY}': {text[:200]}")
            return DEFAULT_CATEGORY

    async def describe(self, image: FetchedImage, category: str) -> Dict[str, Any]:
        """
        Run the category prompt.

        Raises:
            ImageAnalysisError: If the response is not a JSON object
        """
        prompt = CATEGORY_PROMPTS.get(category, CATEGORY_PROMPTS[DEFAULT_CATEGORY])
        text = await self._generate(prompt, image)
        try:
            return parse_json_response(text)
        except ValueError as e:
            logger.error(f"Failed to parse AI JSON response: {str(e)}")
            raise ImageAnalysisError("Failed to parse AI JSON response", raw=text)

    async def _embed(self, model: str, contents: Any) -> List[float]:
        response = await self.client.aio.models.embed_content(model=model, contents=contents)
        return list(response.embeddings[0].values)

    async def embed_text(self, text: str) -> List[float]:
        return await self._embed(self.text_model, text)

    async def embed(self, image: FetchedImage, category: str, details: Dict[str, Any]) -> Tuple[List[float], str]:
        """
        Hybrid embedding selection.

        Returns:
            Tuple of (vector, source) where source is "multimodal" or "text"
        """
        size_kb = payload_size_kb(image.base64)
        text = embedding_text(category, details)

        if size_kb < self.multimodal_max_kb:
            try:
                vector = await self._embed(
                    self.multimodal_model,
                    types.Content(
                        role="user",
                        parts=[types.Part.from_bytes(data=image.data, mime_type=image.mime_type)],
                    ),
                )
                return vector, EMBEDDING_MULTIMODAL
            except Exception as e:
                logger.warning(f"Multimodal embedding failed, falling back to text embedding: {str(e)}")

        else:
            logger.debug(f"Image payload {size_kb:.1f}KB exceeds multimodal limit, using text embedding")

        return await self.embed_text(text), EMBEDDING_TEXT

    async def analyze(self, image_url: str, tolerate_parse_errors: bool = False) -> ImageAnalysis:
        """
        Full pipeline for one image.
        With tolerate_parse_errors, unparseable details become a placeholder
        summary that is still embedded instead of raising.
        """
        image = await fetch_image(image_url, self.http_client)
        category = await self.classify(image)
        try:
            details = await self.describe(image, category)
        except ImageAnalysisError:
            if not tolerate_parse_errors:
                raise
            logger.warning(f"Keeping placeholder analysis for {image_url}")
            details = {"summary": ANALYSIS_FAILED_SUMMARY, "visual_detail": "", "tags": []}
        vector, source = await self.embed(image, category, details)

        summary = details.get("summary")
        visual_detail = details.get("visual_detail")
        analysis = ImageAnalysis(
            category=category,
            summary=summary if isinstance(summary, str) and summary else "이미지 분석 완료",
            visual_detail=visual_detail if isinstance(visual_detail, str) else "",
            tags=clean_tags(details.get("tags"), self.max_tags),
            embedding=vector,
            embedding_source=source,
        )
        logger.info(
            f"Analyzed image {image_url}: category={category}, tags={len(analysis.tags)}, "
            f"embedding={source}/{len(vector)}"
        )
        return analysis


def get_image_analyzer() -> ImageAnalyzer:
    """
    FastAPI dependency providing an analyzer bound to the configured API key.

    Raises:
        ImageAnalysisError: If GEMINI_API_KEY is not configured
    """
    return ImageAnalyzer()


def validate_gemini_config() -> bool:
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY not configured")
        return False
    return True


async def analyze_image(image_url: str, analyzer: Optional[ImageAnalyzer] = None) -> ImageAnalysis:
    """
    Run the full pipeline for one image URL.

    Raises:
        ImageAnalysisError: On fetch failure, missing API key or unparseable analysis
    """
    analyzer = analyzer or ImageAnalyzer()
    return await analyzer.analyze(image_url)
