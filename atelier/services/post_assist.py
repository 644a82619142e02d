"""
Gemini writing assistance for the post editor: a card preview summary and
suggested tags, both in Korean, generated from the title, subtitle and body.
"""
import json
import logging
import re
from typing import Any, List, Optional

from google import genai
from google.genai import types

from atelier.config import settings
from atelier.editor.document import extract_text
from atelier.services.image_analysis import ImageAnalysisError, clean_tags

logger = logging.getLogger(__name__)

CONTENT_EXCERPT_CHARS = 3000
MIN_SUMMARY_TEXT = 20
MIN_TAG_TEXT = 10

SUMMARY_PROMPT = """You are a professional editor. Summarize the following blog post in Korean.

Input:
- Title: "{title}"
- Subtitle: "{subtitle}"
- Content: "{content}"

Requirements:
1. Create a concise summary (4-6 sentences).
2. It should be engaging, like a preview text for a blog card.
3. Language: Korean (Hangul).
4. Plain text only (no markdown).

Output:"""

TAGS_PROMPT = """You are a professional blog editor. Analyze the following blog post and generate relevant tags in Korean.

Input Data:
- Title: "{title}"
- Subtitle: "{subtitle}"
- Content (Excerpt): "{content}"

Requirements:
1. Extract 5 to 8 most relevant keywords.
2. Tags must be in Korean (Hangul).
3. Do not include the '#' symbol.
4. Include specific proper nouns (e.g., "React", "Seoul") if they are key topics.
5. Include broad categories (e.g., "Development", "Travel") if applicable.

Output Format (JSON):
{{
  "tags": ["tag1", "tag2", "tag3"]
}}"""

MAX_TAGS = 8


class NotEnoughContent(ValueError):
    """The post has too little text to work from."""


def parse_tags(text: Optional[str]) -> List[str]:
    """
    Tags from a model response. When the response is not valid JSON, every
    quoted string except the "tags" key is taken as a tag.
    """
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.warning(f"Tag response is not JSON, extracting quoted strings: {text[:200]}")
        tags = [t for t in re.findall(r'"([^"]+)"', text) if t != "tags"]
    else:
        tags = parsed.get("tags") if isinstance(parsed, dict) else parsed
    return clean_tags(tags, MAX_TAGS)


class PostAssistant:
    """Text-only Gemini calls for the post editor; the genai client is injectable for tests."""

    def __init__(self, client: Any = None, model: str = settings.GEMINI_TEXT_MODEL):
        if client is None:
            if not settings.GEMINI_API_KEY:
                raise ImageAnalysisError("API Key not found")
            client = genai.Client(api_key=settings.GEMINI_API_KEY)
        self.client = client
        self.model = model

    async def _generate(self, prompt: str, config: types.GenerateContentConfig) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=config,
        )
        return response.text or ""

    async def summarize(self, title: Optional[str], subtitle: Optional[str], content: Any) -> str:
        """
        4-6 sentence preview text. A body shorter than 20 characters yields
        an empty summary without calling the model.

        Raises:
            NotEnoughContent: If there is neither a title nor a body
        """
        if not title and not content:
            raise NotEnoughContent("No content to summarize")

        text = extract_text(content)
        if len(text) < MIN_SUMMARY_TEXT:
            return ""

        prompt = SUMMARY_PROMPT.format(
            title=title or "",
            subtitle=subtitle or "",
            content=text[:CONTENT_EXCERPT_CHARS],
        )
        summary = await self._generate(
            prompt,
            types.GenerateContentConfig(temperature=0.3, max_output_tokens=800),
        )
        return summary.strip()

    async def suggest_tags(self, title: Optional[str], subtitle: Optional[str], content: Any) -> List[str]:
        """
        Raises:
            NotEnoughContent: Without a title and with less than 10 characters of body
        """
        if not title and not content:
            raise NotEnoughContent("분석할 제목이나 본문 내용이 필요합니다.")

        text = extract_text(content)
        if not title and len(text) < MIN_TAG_TEXT:
            raise NotEnoughContent("내용이 너무 짧아 분석할 수 없습니다.")

        prompt = TAGS_PROMPT.format(
            title=title or "",
            subtitle=subtitle or "",
            content=text[:CONTENT_EXCERPT_CHARS],
        )
        response = await self._generate(
            prompt,
            types.GenerateContentConfig(response_mime_type="application/json", temperature=0.3),
        )
        tags = parse_tags(response)
        logger.info(f"Suggested {len(tags)} tag(s) for post '{title or ''}'")
        return tags


def get_post_assistant() -> PostAssistant:
    """
    Raises:
        ImageAnalysisError: If GEMINI_API_KEY is not configured
    """
    return PostAssistant()
