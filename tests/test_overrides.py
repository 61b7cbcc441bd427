"""Loading and merging override trees."""

from pathlib import Path

from packsmith.models import Side
from packsmith.packager import load_overrides


def write(root: Path, rel: str, data: str):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data)
    return path


def test_missing_directories_are_empty(tmp_path):
    overrides = load_overrides(tmp_path)

    assert not overrides.common
    assert not overrides.merged(Side.CLIENT)


def test_target_tree_wins(tmp_path):
    write(tmp_path, "overrides/config/a.toml", "common")
    write(tmp_path, "overrides/config/b.toml", "common")
    write(tmp_path, "server-overrides/config/a.toml", "server")
    write(tmp_path, "client-overrides/options.txt", "client")

    overrides = load_overrides(tmp_path)
    server = overrides.merged(Side.SERVER)
    client = overrides.merged(Side.CLIENT)

    assert server.files["config/a.toml"].read_text() == "server"
    assert server.files["config/b.toml"].read_text() == "common"
    assert "options.txt" not in server.files
    assert client.files["config/a.toml"].read_text() == "common"
    assert client.files["options.txt"].read_text() == "client"


def test_raw_mods_are_listed_separately(tmp_path):
    write(tmp_path, "overrides/mods/custom.jar", "jar")
    write(tmp_path, "overrides/config/modsettings.toml", "x")

    tree = load_overrides(tmp_path).merged(Side.CLIENT)

    assert list(tree.mod_files) == ["mods/custom.jar"]
    assert len(tree) == 2
