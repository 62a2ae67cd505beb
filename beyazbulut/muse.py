"""
Poem drafts from Gemini.

The model is asked for strict JSON ``{"title": ..., "content": ...}``;
anything else is treated as a failed generation.
"""

import json
import os
import re

import httpx
from flask import current_app
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

DEFAULT_MODEL = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash")
AI_AUTHOR = "Yapay Zeka (Gemini)"
_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.S)

PROMPT_TEMPLATE = """\
Sen ödüllü bir Türk şairisin.
{instruction} derinlikli, duygusal ve edebi değeri yüksek kısa bir şiir yaz.

Çıktıyı sadece geçerli bir JSON formatında ver. Başka hiçbir açıklama yazma.
JSON formatı şöyle olmalı:
{{
  "title": "Şiirin Başlığı",
  "content": "Şiirin içeriği buraya gelecek (satır sonları \\n ile)"
}}
"""


def build_prompt(text: str, *, from_category: bool) -> str:
    text = (text or "").strip()
    if from_category:
        instruction = f'"{text}" teması üzerine,'
    else:
        instruction = f'Şu isteğe uygun: "{text}".'
    return PROMPT_TEMPLATE.format(instruction=instruction)


def parse_poem(text: str | None) -> dict | None:
    """JSON answer -> ``{title, content}``; ``None`` if it is unusable."""
    if not text:
        return None
    raw = text.strip()
    if m := _FENCE_RE.match(raw):
        raw = m.group(1)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    title, content = data.get("title"), data.get("content")
    if not isinstance(title, str) or not isinstance(content, str):
        return None
    if not title.strip() or not content.strip():
        return None
    return {"title": title.strip(), "content": content.strip()}


def resolve_api_key(settings: dict | None = None) -> str:
    """Key saved in the site settings wins over the environment."""
    stored = ((settings or {}).get("gemini_api_key") or "").strip()
    return stored or current_app.config.get("GEMINI_API_KEY", "") or ""


def generate_poem(
    text: str,
    *,
    from_category: bool = False,
    api_key: str,
    model: str = DEFAULT_MODEL,
) -> dict | None:
    if not api_key:
        current_app.logger.error("Gemini API key not configured")
        return None

    client = genai.Client(api_key=api_key)
    try:
        resp = client.models.generate_content(
            model=model,
            contents=build_prompt(text, from_category=from_category),
            config=types.GenerateContentConfig(response_mime_type="application/json"),
        )
        answer = resp.text
    except (genai_errors.APIError, httpx.HTTPError, ValueError):
        # ValueError also covers pydantic validation of odd responses
        current_app.logger.exception("Gemini request failed")
        return None

    poem = parse_poem(answer)
    if poem is None:
        current_app.logger.warning("Gemini answer was not a usable poem")
    return poem
