import pytest

from packsmith.config_editor import ConfigEditor, mod_key
from packsmith.exceptions import ConfigurationError
from packsmith.models import Platform, SideHint, SideRequirement

CONFIG = """\
# 示例整合包
name = "Example"
version = "1.0.0"
minecraft_version = "1.20.1"

[mod_loader]
id = "fabric"

[mods.modrinth]
# 地图
journey = { project_id = "lfHFW1mp", version_id = "aaaa1111" }
"""


@pytest.fixture
def source(tmp_path):
    (tmp_path / "config.toml").write_text(CONFIG, encoding="utf-8")
    return tmp_path


@pytest.mark.parametrize(
    "name,key",
    [
        ("Just Enough Items (JEI)", "just_enough_items_jei"),
        ("Xaero's Minimap", "xaeros_minimap"),
        ("  Sodium  ", "sodium"),
        ("!!!", ""),
    ],
)
def test_mod_key(name, key):
    assert mod_key(name) == key


def test_add_keeps_comments_and_writes_backup(source):
    editor = ConfigEditor(source)
    editor.add(
        Platform.MODRINTH,
        "sodium",
        "AANobbMI",
        "bbbb2222",
        SideHint(server=SideRequirement.UNSUPPORTED),
    )

    assert editor.save() is True
    text = (source / "config.toml").read_text(encoding="utf-8")
    assert text.startswith("# 示例整合包\n")
    assert "# 地图\njourney = { project_id = \"lfHFW1mp\", version_id = \"aaaa1111\" }" in text
    assert (source / "config.toml.bak").read_text(encoding="utf-8") == CONFIG

    reloaded = ConfigEditor(source)
    sodium = next(ref for ref in reloaded.config.mods if ref.key == "sodium")
    assert sodium.mod_id.version_id == "bbbb2222"
    assert sodium.side_override == SideHint(server=SideRequirement.UNSUPPORTED)
    assert reloaded.has_key("sodium")


def test_set_version_updates_existing_entry(source):
    editor = ConfigEditor(source)
    editor.set_version(Platform.MODRINTH, "journey", "cccc3333")

    assert editor.save() is True
    text = (source / "config.toml").read_text(encoding="utf-8")
    assert "# 地图" in text
    assert ConfigEditor(source).existing(Platform.MODRINTH)["lfHFW1mp"].mod_id.version_id == "cccc3333"
    assert "aaaa1111" not in text


def test_add_creates_missing_platform_table(source):
    editor = ConfigEditor(source)
    editor.add(Platform.CURSEFORGE, "jei", 238222, 4712868)
    editor.save()

    reloaded = ConfigEditor(source)
    assert reloaded.existing(Platform.CURSEFORGE)[238222].key == "jei"
    assert reloaded.existing(Platform.MODRINTH)["lfHFW1mp"].key == "journey"


def test_unchanged_config_is_not_rewritten(source):
    editor = ConfigEditor(source)

    assert editor.save() is False
    assert not (source / "config.toml.bak").exists()


def test_invalid_toml_is_configuration_error(source):
    (source / "config.toml").write_text("name = [", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConfigEditor(source)


def test_missing_config_is_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigEditor(tmp_path)
