"""Shared fixtures for xnote tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from xnote.config import XnoteConfig, load_config
from xnote.store import NoteRepository, Store

_ENV_KEYS = [
    "XNOTE_ENGINE",
    "XNOTE_MODEL",
    "XNOTE_TITLE_MODEL",
    "XNOTE_TIMEOUT",
    "XNOTE_GH",
    "XNOTE_SHARE_TIMEOUT",
    "XNOTE_LOG_LEVEL",
]


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Isolated xnote home; cwd moved so no stray xnote.toml is picked up."""
    home = tmp_path / "xnote-home"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("XNOTE_HOME", str(home))
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def config(home: Path) -> XnoteConfig:
    return load_config()


@pytest.fixture
def store(config: XnoteConfig) -> Store:
    return Store(config.data_file)


@pytest.fixture
def repo(store: Store) -> NoteRepository:
    return NoteRepository(store)
