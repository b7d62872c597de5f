"""AI title and content generation on top of an Engine.

Content generation is a producer of typed events consumed by one subscriber:

    TextDelta* / ImageReady*  then exactly one of  Done | Failed

The generator is lazy and single-use. Closing it (``aclose()``) closes the
engine stream and stops further events. Failures never raise past this module.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import secrets
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from xnote.engines.base import Engine, GenerationRequest, ImageData, TextDelta

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Generate a concise, descriptive title (2-5 words) for this note. "
    "Return ONLY the title, nothing else:\n\n{content}"
)
TITLE_INPUT_CHARS = 500

EngineFactory = Callable[[str, str], Engine]  # (model, api_key) -> Engine


@dataclass
class AISettings:
    """User AI settings as stored under `aiSettings`."""

    api_key: str = ""
    system_prompt: str = ""
    enable_search: bool = False

    @classmethod
    def from_dict(cls, data: dict | None) -> AISettings:
        data = data or {}
        return cls(
            api_key=data.get("apiKey") or "",
            system_prompt=data.get("systemPrompt") or "",
            enable_search=bool(data.get("enableSearch", False)),
        )

    def to_dict(self) -> dict:
        return {
            "apiKey": self.api_key,
            "systemPrompt": self.system_prompt,
            "enableSearch": self.enable_search,
        }


@dataclass
class ImageReady:
    """An image was written to disk."""

    path: str
    mime_type: str


@dataclass
class Done:
    """Terminal event: aggregated result."""

    text: str
    images: list[str] = field(default_factory=list)


@dataclass
class Failed:
    """Terminal event: human-readable failure."""

    message: str


GenerationEvent = TextDelta | ImageReady | Done | Failed


# ── Titles ───────────────────────────────────────────────────


def fallback_title(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"Note {now.date().isoformat()}"


def _clean_title(text: str) -> str:
    title = text.strip()
    if title[:1] in ("'", '"'):
        title = title[1:]
    if title[-1:] in ("'", '"'):
        title = title[:-1]
    return title.strip()


async def generate_note_name(
    content: str,
    settings: AISettings,
    engine_factory: EngineFactory,
    model: str,
) -> str:
    """Ask the engine for a short title. Falls back to `Note <date>` on any failure."""
    if not settings.api_key:
        return fallback_title()

    request = GenerationRequest(
        prompt=TITLE_PROMPT.format(content=content[:TITLE_INPUT_CHARS]),
        model=model,
        max_tokens=64,
    )
    try:
        engine = engine_factory(model, settings.api_key)
        title = _clean_title(await engine.complete(request))
    except Exception as e:
        logger.warning("Title generation failed, using fallback: %s", e)
        return fallback_title()

    return title or fallback_title()


# ── Images ───────────────────────────────────────────────────


def save_image(image: ImageData, directory: Path) -> Path:
    """Write image bytes to `<timestamp>-<random>.<ext>` under directory."""
    directory.mkdir(parents=True, exist_ok=True)
    ext = mimetypes.guess_extension(image.mime_type) or ".png"
    ts = datetime.now().strftime("%Y%m%dT%H%M%S%f")
    path = directory / f"{ts}-{secrets.token_hex(4)}{ext}"
    path.write_bytes(image.data)
    logger.info("Saved generated image %s (%d bytes)", path, len(image.data))
    return path


# ── Content ──────────────────────────────────────────────────


def parse_inline(text: str) -> str:
    """Extract the single `content` field of an inline-mode answer."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        cleaned = cleaned.removeprefix("json").strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict) or not isinstance(data.get("content"), str):
        raise ValueError("response has no 'content' field")
    return data["content"]


async def stream_content(
    request: GenerationRequest,
    engine: Engine,
    images_dir: Path,
) -> AsyncIterator[GenerationEvent]:
    """Run one generation and yield events. Always ends with Done or Failed."""
    text_parts: list[str] = []
    images: list[str] = []

    try:
        if request.inline:
            answer = await engine.complete(request)
            try:
                content = parse_inline(answer)
            except ValueError as e:
                logger.error("Malformed inline response: %s", e)
                yield Failed(f"Malformed response from {engine.name}: {e}")
                return
            text_parts.append(content)
            yield TextDelta(content)
        else:
            chunks = engine.stream(request)
            try:
                async for chunk in chunks:
                    if isinstance(chunk, TextDelta):
                        text_parts.append(chunk.text)
                        yield chunk
                    elif isinstance(chunk, ImageData):
                        path = save_image(chunk, images_dir)
                        images.append(str(path))
                        yield ImageReady(path=str(path), mime_type=chunk.mime_type)
            finally:
                await chunks.aclose()
    except Exception as e:
        logger.error("%s generation error: %s", engine.name, e)
        yield Failed(f"{engine.name} error: {e}")
        return

    yield Done(text="".join(text_parts), images=images)


async def generate_content(
    request: GenerationRequest,
    settings: AISettings,
    engine_factory: EngineFactory,
    images_dir: Path,
) -> AsyncIterator[GenerationEvent]:
    """stream_content with settings applied and misconfiguration reported as Failed."""
    if not settings.api_key:
        yield Failed("AI is not configured: add an API key in settings.")
        return

    if settings.system_prompt and not request.system_prompt:
        request.system_prompt = settings.system_prompt
    request.enable_search = request.enable_search or settings.enable_search

    try:
        engine = engine_factory(request.model, settings.api_key)
    except Exception as e:
        logger.error("Could not create engine for %s: %s", request.model, e)
        yield Failed(f"Could not start AI engine: {e}")
        return

    events = stream_content(request, engine, images_dir)
    try:
        async for event in events:
            yield event
    finally:
        await events.aclose()
