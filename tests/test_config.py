"""Tests for configuration loading."""

import sys
from pathlib import Path

from xnote.config import load_config


class TestConfig:
    def test_defaults(self, home: Path):
        config = load_config()
        assert config.engine.name == "gemini"
        assert config.engine.model == "gemini-2.5-flash"
        assert config.share.timeout == 30
        assert config.share.gh_path == "gh"
        assert config.home == home
        assert config.data_file == home / "data.json"
        assert config.images_dir == home / "images"
        assert config.app.command[0] == sys.executable

    def test_env_override(self, home: Path, monkeypatch):
        monkeypatch.setenv("XNOTE_ENGINE", "anthropic")
        monkeypatch.setenv("XNOTE_SHARE_TIMEOUT", "5")
        monkeypatch.setenv("XNOTE_MODEL", "claude-sonnet-4-5")

        config = load_config()
        assert config.engine.name == "anthropic"
        assert config.engine.model == "claude-sonnet-4-5"
        assert config.share.timeout == 5

    def test_toml_file(self, home: Path, tmp_path: Path):
        toml_path = tmp_path / "xnote.toml"
        toml_path.write_text("""
log_level = "DEBUG"

[engine]
model = "gemini-2.5-flash-image"
timeout = 60

[share]
gh_path = "/opt/gh"
public = true

[app]
command = ["xnote-gui"]
""")
        config = load_config(toml_path)
        assert config.engine.model == "gemini-2.5-flash-image"
        assert config.engine.timeout == 60
        assert config.share.gh_path == "/opt/gh"
        assert config.share.public is True
        assert config.app.command == ["xnote-gui"]
        assert config.log_level == "DEBUG"

    def test_toml_in_home_is_found(self, home: Path):
        home.mkdir(parents=True)
        (home / "xnote.toml").write_text('[engine]\nname = "anthropic"\n')
        config = load_config()
        assert config.engine.name == "anthropic"

    def test_env_overrides_toml(self, home: Path, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("XNOTE_GH", "/usr/local/bin/gh")

        toml_path = tmp_path / "xnote.toml"
        toml_path.write_text('[share]\ngh_path = "/opt/gh"\n')
        config = load_config(toml_path)
        assert config.share.gh_path == "/usr/local/bin/gh"  # env wins
