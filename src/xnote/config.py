"""Configuration loading from environment variables and xnote.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_HOME = Path.home() / ".xnote"
_CONFIG_FILENAME = "xnote.toml"


def _default_app_command() -> list[str]:
    return [sys.executable, "-m", "xnote.app"]


@dataclass
class EngineConfig:
    """Configuration for the AI engines."""

    name: str = "gemini"
    model: str = "gemini-2.5-flash"
    title_model: str = "gemini-2.5-flash"
    max_tokens: int = 4096
    timeout: int = 120


@dataclass
class ShareConfig:
    """Gist sharing via the `gh` CLI."""

    gh_path: str = "gh"
    timeout: int = 30
    public: bool = False


@dataclass
class AppConfig:
    """App host process settings."""

    command: list[str] = field(default_factory=_default_app_command)


@dataclass
class XnoteConfig:
    """Top-level xnote configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    share: ShareConfig = field(default_factory=ShareConfig)
    app: AppConfig = field(default_factory=AppConfig)
    home: Path = _DEFAULT_HOME
    log_level: str = "WARNING"

    @property
    def data_file(self) -> Path:
        return self.home / "data.json"

    @property
    def images_dir(self) -> Path:
        return self.home / "images"

    @property
    def pid_file(self) -> Path:
        return self.home / "xnote.pid"


def load_config(config_path: Path | None = None) -> XnoteConfig:
    """Load configuration from environment variables and optional xnote.toml.

    Priority: environment variables > xnote.toml > defaults.
    """
    home = Path(os.getenv("XNOTE_HOME", str(_DEFAULT_HOME)))

    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and the xnote home
        for candidate in [Path.cwd() / _CONFIG_FILENAME, home / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    share_data = file_data.get("share", {})
    app_data = file_data.get("app", {})

    return XnoteConfig(
        engine=EngineConfig(
            name=os.getenv("XNOTE_ENGINE", engine_data.get("name", "gemini")),
            model=os.getenv("XNOTE_MODEL", engine_data.get("model", "gemini-2.5-flash")),
            title_model=os.getenv(
                "XNOTE_TITLE_MODEL", engine_data.get("title_model", "gemini-2.5-flash")
            ),
            max_tokens=int(engine_data.get("max_tokens", 4096)),
            timeout=int(os.getenv("XNOTE_TIMEOUT", engine_data.get("timeout", 120))),
        ),
        share=ShareConfig(
            gh_path=os.getenv("XNOTE_GH", share_data.get("gh_path", "gh")),
            timeout=int(os.getenv("XNOTE_SHARE_TIMEOUT", share_data.get("timeout", 30))),
            public=bool(share_data.get("public", False)),
        ),
        app=AppConfig(command=list(app_data.get("command", _default_app_command()))),
        home=home,
        log_level=os.getenv("XNOTE_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
