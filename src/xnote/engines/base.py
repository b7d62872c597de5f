"""Engine protocol and shared types."""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class InputImage:
    """An image attached to a request."""

    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def parse(cls, value: str | dict) -> InputImage:
        """Accept a data URL, or {"data": <base64>, "mimeType": ...} as sent by the UI."""
        if isinstance(value, dict):
            raw = value.get("data", "")
            mime = value.get("mimeType") or value.get("mime_type") or "image/png"
        else:
            match = _DATA_URL_RE.match(value)
            if not match:
                raise ValueError("Image must be a base64 data URL")
            raw, mime = match.group("data"), match.group("mime")
        try:
            return cls(data=base64.b64decode(raw, validate=True), mime_type=mime)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 image data: {e}") from e


@dataclass
class GenerationRequest:
    """Everything an engine needs for one call."""

    prompt: str
    model: str
    system_prompt: str | None = None
    history: list[dict] = field(default_factory=list)
    images: list[InputImage] = field(default_factory=list)
    inline: bool = False
    enable_search: bool = False
    max_tokens: int = 4096


@dataclass
class TextDelta:
    """Streaming text chunk."""

    text: str


@dataclass
class ImageData:
    """Image produced by the model, already decoded to bytes."""

    data: bytes
    mime_type: str = "image/png"


EngineChunk = TextDelta | ImageData


def decode_image_payload(data: bytes | str) -> bytes:
    """SDKs hand back either raw bytes or the base64 text from the wire."""
    if isinstance(data, str):
        return base64.b64decode(data)
    return data


def history_role(role: str) -> str:
    """Normalize UI roles to 'user' / 'assistant'."""
    return "user" if role == "user" else "assistant"


@runtime_checkable
class Engine(Protocol):
    """Protocol that all engine backends must implement."""

    @property
    def name(self) -> str: ...

    async def complete(self, request: GenerationRequest) -> str:
        """Return a single best-effort text answer."""
        ...

    def stream(self, request: GenerationRequest) -> AsyncIterator[EngineChunk]:
        """Yield text and image chunks as they arrive."""
        ...
