"""User-level settings file and environment overrides."""

from pathlib import Path

import pytest

from packsmith.exceptions import ConfigurationError
from packsmith.settings import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (
        "PACKSMITH_CURSEFORGE_API_KEY",
        "PACKSMITH_CACHE_DIR",
        "PACKSMITH_MAX_CONCURRENT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))


def test_defaults(tmp_path):
    settings = Settings.load(tmp_path / "missing.toml")

    assert settings.curseforge_api_key is None
    assert settings.cache_dir == tmp_path / "xdg-cache" / "packsmith"
    assert settings.max_concurrent == 8


def test_file_with_legacy_key(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('curse_forge_api_key = "abc"\nmax_concurrent = 2\ncache_dir = "/tmp/c"\n')

    settings = Settings.load(path)

    assert settings.curseforge_api_key == "abc"
    assert settings.max_concurrent == 2
    assert settings.cache_dir == Path("/tmp/c")


def test_environment_wins(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text('curse_forge_api_key = "abc"\n')
    monkeypatch.setenv("PACKSMITH_CURSEFORGE_API_KEY", "env")
    monkeypatch.setenv("PACKSMITH_MAX_CONCURRENT", "3")

    settings = Settings.load(path)

    assert settings.curseforge_api_key == "env"
    assert settings.max_concurrent == 3
    assert settings.override(max_concurrent=None, cache_dir=tmp_path).cache_dir == tmp_path


@pytest.mark.parametrize(
    "text", ["max_concurrent = 0\n", "max_retries = -1\n", "not toml ["]
)
def test_invalid_settings(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text)

    with pytest.raises(ConfigurationError):
        Settings.load(path)


def test_settings_with_invalid_encoding(tmp_path):
    path = tmp_path / "config.toml"
    path.write_bytes(b'curse_forge_api_key = "\xff\xfe"\n')

    with pytest.raises(ConfigurationError):
        Settings.load(path)
