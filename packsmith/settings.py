"""
全局设置

与具体整合包无关的用户级设置：CurseForge API 密钥、缓存目录、并发与重试参数。
读取顺序：默认值 < 用户配置文件 < 环境变量 < 命令行参数。
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from loguru import logger

from packsmith import __version__
from packsmith.exceptions import ConfigurationError

APP_NAME = "packsmith"


def _xdg_dir(env: str, fallback: str) -> Path:
    base = os.environ.get(env)
    if base:
        return Path(base)
    return Path.home() / fallback


def default_config_file() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_NAME / "config.toml"


def default_cache_dir() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache") / APP_NAME


@dataclass(frozen=True)
class Settings:
    """运行设置"""

    curseforge_api_key: Optional[str] = None
    cache_dir: Path = None  # type: ignore[assignment]
    max_concurrent: int = 8
    max_retries: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 30.0
    user_agent: str = f"{APP_NAME}/{__version__}"

    def __post_init__(self):
        if self.cache_dir is None:
            object.__setattr__(self, "cache_dir", default_cache_dir())
        if not isinstance(self.max_concurrent, int) or self.max_concurrent <= 0:
            raise ConfigurationError("max_concurrent 必须为正整数")
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigurationError("max_retries 必须为非负整数")
        if self.retry_delay < 0 or self.request_timeout <= 0:
            raise ConfigurationError("retry_delay 与 request_timeout 必须为正数")

    def override(self, **changes: Any) -> "Settings":
        """返回覆盖了非 None 字段的新设置"""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Settings":
        """
        加载设置

        Args:
            config_file: 用户配置文件路径，默认为 XDG 配置目录下的 config.toml

        Returns:
            合并后的设置
        """
        path = config_file or default_config_file()
        values: Dict[str, Any] = {}

        if path.exists():
            try:
                data = toml.load(path)
            except (toml.TomlDecodeError, UnicodeDecodeError, OSError) as e:
                raise ConfigurationError(
                    f"无法读取用户配置 {path}: {e}", context={"path": str(path)}
                ) from e
            logger.debug(f"[设置] 读取用户配置: {path}")
            known = {f.name for f in fields(cls)}
            for key, value in data.items():
                # 兼容旧配置中的键名
                if key == "curse_forge_api_key":
                    key = "curseforge_api_key"
                if key not in known:
                    logger.warning(f"[设置] 忽略未知设置项: {key}")
                    continue
                values[key] = value

        env_key = os.environ.get("PACKSMITH_CURSEFORGE_API_KEY")
        if env_key:
            values["curseforge_api_key"] = env_key
        env_cache = os.environ.get("PACKSMITH_CACHE_DIR")
        if env_cache:
            values["cache_dir"] = env_cache
        env_concurrent = os.environ.get("PACKSMITH_MAX_CONCURRENT")
        if env_concurrent:
            try:
                values["max_concurrent"] = int(env_concurrent)
            except ValueError:
                raise ConfigurationError(
                    "PACKSMITH_MAX_CONCURRENT 必须为整数"
                ) from None

        if "cache_dir" in values:
            values["cache_dir"] = Path(values["cache_dir"]).expanduser()

        return cls(**values)
