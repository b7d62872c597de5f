"""Google Gemini engine via the `google-genai` SDK. Supports image output."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from google import genai

from xnote.engines.base import (
    EngineChunk,
    GenerationRequest,
    ImageData,
    TextDelta,
    decode_image_payload,
    history_role,
)

logger = logging.getLogger(__name__)

INLINE_SCHEMA = {
    "type": "OBJECT",
    "properties": {"content": {"type": "STRING"}},
    "required": ["content"],
}


@dataclass
class GeminiEngine:
    """Gemini API engine. Streams text deltas and inline image parts."""

    api_key: str
    timeout: int = 120
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = genai.Client(
                api_key=self.api_key,
                http_options={"timeout": self.timeout * 1000},
            )

    @property
    def name(self) -> str:
        return "gemini"

    # ── Request building ─────────────────────────────────────

    def _contents(self, request: GenerationRequest) -> list[dict]:
        contents: list[dict] = []
        for turn in request.history:
            role = "user" if history_role(turn.get("role", "")) == "user" else "model"
            contents.append({"role": role, "parts": [{"text": turn.get("content", "")}]})

        parts: list[dict] = [
            {"inline_data": {"mime_type": img.mime_type, "data": img.data}}
            for img in request.images
        ]
        parts.append({"text": request.prompt})
        contents.append({"role": "user", "parts": parts})
        return contents

    def _config(self, request: GenerationRequest) -> dict:
        config: dict = {"max_output_tokens": request.max_tokens}
        if request.system_prompt:
            config["system_instruction"] = request.system_prompt
        if request.inline:
            config["response_mime_type"] = "application/json"
            config["response_schema"] = INLINE_SCHEMA
        elif request.enable_search:
            config["tools"] = [{"google_search": {}}]
        if "image" in request.model and not request.inline:
            config["response_modalities"] = ["TEXT", "IMAGE"]
        return config

    # ── Engine protocol ──────────────────────────────────────

    async def complete(self, request: GenerationRequest) -> str:
        response = await self.client.aio.models.generate_content(
            model=request.model,
            contents=self._contents(request),
            config=self._config(request),
        )
        return response.text or ""

    async def stream(self, request: GenerationRequest) -> AsyncIterator[EngineChunk]:
        stream = await self.client.aio.models.generate_content_stream(
            model=request.model,
            contents=self._contents(request),
            config=self._config(request),
        )
        try:
            async for chunk in stream:
                for candidate in chunk.candidates or []:
                    content = candidate.content
                    if content is None or not content.parts:
                        continue
                    for part in content.parts:
                        if getattr(part, "thought", False):
                            continue
                        if part.text:
                            yield TextDelta(part.text)
                        elif part.inline_data is not None and part.inline_data.data:
                            yield ImageData(
                                data=decode_image_payload(part.inline_data.data),
                                mime_type=part.inline_data.mime_type or "image/png",
                            )
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
