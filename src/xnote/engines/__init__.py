"""AI engine backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

from xnote.engines.base import Engine, GenerationRequest, ImageData, InputImage, TextDelta

if TYPE_CHECKING:
    from xnote.config import EngineConfig

__all__ = [
    "Engine",
    "GenerationRequest",
    "ImageData",
    "InputImage",
    "TextDelta",
    "create_engine",
]


def create_engine(model: str, api_key: str, config: EngineConfig) -> Engine:
    """Pick the backend for a model id: `claude-*` goes to Anthropic, the rest to Gemini."""
    if model.startswith("claude") or (config.name == "anthropic" and not model.startswith("gemini")):
        from xnote.engines.anthropic_api import AnthropicAPIEngine

        return AnthropicAPIEngine(api_key=api_key, timeout=config.timeout)

    from xnote.engines.gemini import GeminiEngine

    return GeminiEngine(api_key=api_key, timeout=config.timeout)
