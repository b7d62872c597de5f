"""Tests for title and content generation (fake engines, no network)."""

from __future__ import annotations

import base64
import re
from pathlib import Path

import pytest

from xnote.engines.base import GenerationRequest, ImageData, InputImage, TextDelta
from xnote.generation import (
    AISettings,
    Done,
    Failed,
    ImageReady,
    fallback_title,
    generate_content,
    generate_note_name,
    parse_inline,
    save_image,
    stream_content,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


class FakeEngine:
    def __init__(self, *, chunks=(), answer: str = "", error: Exception | None = None):
        self._chunks = list(chunks)
        self._answer = answer
        self._error = error
        self.requests: list[GenerationRequest] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    async def complete(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        if self._error:
            raise self._error
        return self._answer

    async def stream(self, request: GenerationRequest):
        self.requests.append(request)
        try:
            for chunk in self._chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.closed = True


async def collect(events) -> list:
    return [event async for event in events]


def factory_for(engine: FakeEngine):
    calls: list[tuple[str, str]] = []

    def factory(model: str, api_key: str):
        calls.append((model, api_key))
        return engine

    factory.calls = calls
    return factory


class TestTitle:
    @pytest.mark.asyncio
    async def test_no_api_key_uses_fallback(self):
        engine = FakeEngine(answer="Never used")
        name = await generate_note_name("text", AISettings(), factory_for(engine), "gemini-2.5-flash")
        assert re.fullmatch(r"Note \d{4}-\d{2}-\d{2}", name)
        assert engine.requests == []

    @pytest.mark.asyncio
    async def test_title_generated_and_quotes_stripped(self):
        engine = FakeEngine(answer='  "Weekly Grocery Plan"\n')
        factory = factory_for(engine)
        name = await generate_note_name(
            "eggs, milk", AISettings(api_key="k"), factory, "gemini-2.5-flash"
        )
        assert name == "Weekly Grocery Plan"
        assert factory.calls == [("gemini-2.5-flash", "k")]

    @pytest.mark.asyncio
    async def test_prompt_uses_first_500_chars(self):
        engine = FakeEngine(answer="T")
        await generate_note_name("x" * 600 + "TAIL", AISettings(api_key="k"), factory_for(engine), "m")
        prompt = engine.requests[0].prompt
        assert "x" * 500 in prompt
        assert "x" * 501 not in prompt
        assert "TAIL" not in prompt

    @pytest.mark.asyncio
    async def test_engine_error_uses_fallback(self):
        engine = FakeEngine(error=RuntimeError("network down"))
        name = await generate_note_name("text", AISettings(api_key="k"), factory_for(engine), "m")
        assert name.startswith("Note ")

    @pytest.mark.asyncio
    async def test_empty_answer_uses_fallback(self):
        engine = FakeEngine(answer="  ")
        name = await generate_note_name("text", AISettings(api_key="k"), factory_for(engine), "m")
        assert name.startswith("Note ")

    @pytest.mark.asyncio
    async def test_factory_error_uses_fallback(self):
        def factory(model, api_key):
            raise ImportError("sdk missing")

        name = await generate_note_name("text", AISettings(api_key="k"), factory, "m")
        assert name.startswith("Note ")

    def test_fallback_title_format(self):
        from datetime import datetime, timezone

        assert fallback_title(datetime(2024, 3, 9, 23, 0, tzinfo=timezone.utc)) == "Note 2024-03-09"


class TestStreamContent:
    @pytest.mark.asyncio
    async def test_text_deltas_then_done(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("Hel"), TextDelta("lo")])
        request = GenerationRequest(prompt="hi", model="m")
        events = await collect(stream_content(request, engine, tmp_path))

        assert events == [TextDelta("Hel"), TextDelta("lo"), Done(text="Hello", images=[])]
        assert engine.closed

    @pytest.mark.asyncio
    async def test_images_saved_to_disk(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("Here"), ImageData(PNG_BYTES, "image/png")])
        request = GenerationRequest(prompt="draw", model="gemini-2.5-flash-image")
        events = await collect(stream_content(request, engine, tmp_path / "images"))

        image_event = events[1]
        assert isinstance(image_event, ImageReady)
        path = Path(image_event.path)
        assert path.parent == tmp_path / "images"
        assert path.suffix == ".png"
        assert path.read_bytes() == PNG_BYTES
        assert events[-1] == Done(text="Here", images=[str(path)])

    @pytest.mark.asyncio
    async def test_stream_error_becomes_failed(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("partial"), ConnectionError("reset")])
        events = await collect(stream_content(GenerationRequest("p", "m"), engine, tmp_path))

        assert events[0] == TextDelta("partial")
        assert isinstance(events[-1], Failed)
        assert "reset" in events[-1].message
        assert not any(isinstance(e, Done) for e in events)

    @pytest.mark.asyncio
    async def test_inline_mode_single_structured_answer(self, tmp_path: Path):
        engine = FakeEngine(answer='{"content": "Rewritten text"}')
        request = GenerationRequest(prompt="fix", model="m", inline=True)
        events = await collect(stream_content(request, engine, tmp_path))

        assert events == [TextDelta("Rewritten text"), Done(text="Rewritten text", images=[])]
        assert engine.closed is False  # no stream opened

    @pytest.mark.asyncio
    async def test_inline_malformed_answer(self, tmp_path: Path):
        engine = FakeEngine(answer="Sure! Here you go")
        request = GenerationRequest(prompt="fix", model="m", inline=True)
        events = await collect(stream_content(request, engine, tmp_path))

        assert len(events) == 1
        assert isinstance(events[0], Failed)
        assert "Malformed" in events[0].message

    @pytest.mark.asyncio
    async def test_closing_stops_engine_stream(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("a"), TextDelta("b"), TextDelta("c")])
        events = stream_content(GenerationRequest("p", "m"), engine, tmp_path)

        first = await events.__anext__()
        assert first == TextDelta("a")
        await events.aclose()

        assert engine.closed
        with pytest.raises(StopAsyncIteration):
            await events.__anext__()


class TestGenerateContent:
    @pytest.mark.asyncio
    async def test_no_api_key_is_structured_failure(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("x")])
        events = await collect(
            generate_content(GenerationRequest("p", "m"), AISettings(), factory_for(engine), tmp_path)
        )
        assert len(events) == 1
        assert isinstance(events[0], Failed)
        assert engine.requests == []

    @pytest.mark.asyncio
    async def test_settings_applied(self, tmp_path: Path):
        engine = FakeEngine(chunks=[TextDelta("ok")])
        settings = AISettings(api_key="k", system_prompt="Be brief.", enable_search=True)
        events = await collect(
            generate_content(GenerationRequest("p", "m"), settings, factory_for(engine), tmp_path)
        )
        assert events[-1] == Done(text="ok", images=[])
        sent = engine.requests[0]
        assert sent.system_prompt == "Be brief."
        assert sent.enable_search is True

    @pytest.mark.asyncio
    async def test_engine_creation_failure(self, tmp_path: Path):
        def factory(model, api_key):
            raise ImportError("anthropic package required")

        events = await collect(
            generate_content(GenerationRequest("p", "claude-x"), AISettings(api_key="k"), factory, tmp_path)
        )
        assert isinstance(events[0], Failed)
        assert "anthropic" in events[0].message


class TestHelpers:
    def test_parse_inline_fenced(self):
        assert parse_inline('```json\n{"content": "x"}\n```') == "x"

    def test_parse_inline_missing_field(self):
        with pytest.raises(ValueError):
            parse_inline('{"text": "x"}')

    def test_save_image_unique_names(self, tmp_path: Path):
        a = save_image(ImageData(b"1", "image/jpeg"), tmp_path)
        b = save_image(ImageData(b"2", "image/jpeg"), tmp_path)
        assert a != b
        assert a.read_bytes() == b"1"

    def test_ai_settings_defaults(self):
        settings = AISettings.from_dict({"apiKey": "k"})
        assert settings.to_dict() == {"apiKey": "k", "systemPrompt": "", "enableSearch": False}

    def test_input_image_from_data_url(self):
        url = "data:image/jpeg;base64," + base64.b64encode(b"abc").decode()
        image = InputImage.parse(url)
        assert image.data == b"abc"
        assert image.mime_type == "image/jpeg"

    def test_input_image_from_dict(self):
        image = InputImage.parse({"data": base64.b64encode(b"abc").decode(), "mimeType": "image/webp"})
        assert image == InputImage(b"abc", "image/webp")

    def test_input_image_invalid(self):
        with pytest.raises(ValueError):
            InputImage.parse("not a data url")
