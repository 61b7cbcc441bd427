"""
配置文件编辑

在保留注释与格式的前提下修改源目录中的 config.toml，
供 add-mods 命令添加新模组或更新已有模组的版本。
"""

import re
import shutil
from pathlib import Path
from typing import Dict, Optional, Union

import tomlkit
from tomlkit.exceptions import TOMLKitError
from loguru import logger

from packsmith.exceptions import ConfigurationError, FilesystemError
from packsmith.models import ModReference, PackConfig, Platform, SideHint
from packsmith.packager.base import atomic_file

CONFIG_FILE = "config.toml"
BACKUP_SUFFIX = ".bak"


def mod_key(name: str) -> str:
    """由模组名称生成配置键: "Just Enough Items" -> "just_enough_items" """
    key = name.replace("'", "")
    key = re.sub(r"[^A-Za-z0-9]", "_", key).lower()
    return re.sub(r"_+", "_", key).strip("_")


class ConfigEditor:
    """config.toml 编辑器"""

    def __init__(self, source_dir: Path):
        self.path = Path(source_dir) / CONFIG_FILE
        try:
            self.original = self.path.read_text(encoding="utf-8")
            self.document = tomlkit.parse(self.original)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigurationError(
                f"无法读取配置文件 {self.path}: {e}", context={"path": str(self.path)}
            ) from e
        except TOMLKitError as e:
            raise ConfigurationError(
                f"配置文件格式错误 {self.path}: {e}", context={"path": str(self.path)}
            ) from e
        self.config = PackConfig.from_dict(self.document.unwrap())
        self._keys = {ref.key for ref in self.config.mods}

    def bucket(self, platform: Platform):
        """mods.<platform> 表，不存在时创建"""
        mods = self.document.get("mods")
        if mods is None:
            mods = tomlkit.table(True)
            self.document["mods"] = mods
        section = mods.get(platform.value)
        if section is None:
            section = tomlkit.table()
            mods[platform.value] = section
        if not isinstance(section, dict):
            raise ConfigurationError(f"mods.{platform.value} 必须是表")
        return section

    def existing(self, platform: Platform) -> Dict[Union[int, str], ModReference]:
        """项目 ID -> 已配置的模组"""
        return {ref.mod_id.project_id: ref for ref in self.config.mods_on(platform)}

    def has_key(self, key: str) -> bool:
        return key in self._keys

    def set_version(self, platform: Platform, key: str, version_id: Union[int, str]):
        self.bucket(platform)[key]["version_id"] = version_id

    def add(
        self,
        platform: Platform,
        key: str,
        project_id: Union[int, str],
        version_id: Union[int, str],
        side_hint: Optional[SideHint] = None,
    ):
        entry = tomlkit.inline_table()
        entry["project_id"] = project_id
        entry["version_id"] = version_id
        if side_hint is not None:
            if side_hint.client is not None:
                entry["client"] = side_hint.client.value
            if side_hint.server is not None:
                entry["server"] = side_hint.server.value
        self.bucket(platform)[key] = entry
        self._keys.add(key)

    def save(self) -> bool:
        """
        写回配置文件

        原文件先备份为 config.toml.bak。

        Returns:
            True 如果内容有变化并已写入
        """
        text = tomlkit.dumps(self.document)
        if text == self.original:
            logger.info("[配置] config.toml 没有变化")
            return False
        backup = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        try:
            shutil.copyfile(self.path, backup)
            with atomic_file(self.path) as tmp:
                tmp.write_text(text, encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"写入配置文件失败: {e}", path=str(self.path)) from e
        logger.success(f"[配置] 已更新 {self.path} (备份: {backup.name})")
        self.original = text
        return True
