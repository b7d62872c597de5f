"""Anthropic API engine — text only, no image output."""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from xnote.engines.base import EngineChunk, GenerationRequest, TextDelta, history_role

logger = logging.getLogger(__name__)

INLINE_INSTRUCTION = (
    'Respond with a single JSON object of the form {"content": "<text>"} and nothing else.'
)


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API via the `anthropic` SDK."""

    api_key: str
    timeout: int = 120

    def __post_init__(self) -> None:
        try:
            import anthropic

            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install 'xnote[anthropic]'"
            )

    @property
    def name(self) -> str:
        return "anthropic_api"

    def _kwargs(self, request: GenerationRequest) -> dict:
        messages = [
            {"role": history_role(turn.get("role", "")), "content": turn.get("content", "")}
            for turn in request.history
        ]
        content: list[dict] = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": img.mime_type,
                    "data": base64.b64encode(img.data).decode("ascii"),
                },
            }
            for img in request.images
        ]
        content.append({"type": "text", "text": request.prompt})
        messages.append({"role": "user", "content": content})

        kwargs: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": messages,
        }
        system = [request.system_prompt] if request.system_prompt else []
        if request.inline:
            system.append(INLINE_INSTRUCTION)
        if system:
            kwargs["system"] = "\n\n".join(system)
        return kwargs

    async def complete(self, request: GenerationRequest) -> str:
        response = await self._client.messages.create(**self._kwargs(request))
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )

    async def stream(self, request: GenerationRequest) -> AsyncIterator[EngineChunk]:
        async with self._client.messages.stream(**self._kwargs(request)) as stream:
            async for text in stream.text_stream:
                if text:
                    yield TextDelta(text)
