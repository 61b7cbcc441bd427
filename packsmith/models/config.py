"""
配置数据模型

整合包配置的类型化表示，以及从已解析的配置字典构建模型的校验逻辑。
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from packsmith.exceptions import ConfigurationError
from packsmith.models.api import (
    DependencyId,
    DependencyRef,
    Platform,
    PlatformModId,
    SideHint,
    SideRequirement,
    Sides,
    make_mod_id,
)


class ModLoader(Enum):
    """模组加载器"""

    FORGE = "forge"
    NEOFORGE = "neoforge"
    FABRIC = "fabric"
    QUILT = "quilt"


# 旧式 side 字段到 (client, server) 的映射
_LEGACY_SIDES = {
    "both": (SideRequirement.REQUIRED, SideRequirement.REQUIRED),
    "client": (SideRequirement.REQUIRED, SideRequirement.UNSUPPORTED),
    "server": (SideRequirement.UNSUPPORTED, SideRequirement.REQUIRED),
}

_PACK_KEYS = {
    "name",
    "description",
    "author",
    "version",
    "minecraft_version",
    "mod_loader",
    "mods",
}
_MOD_KEYS = {"project_id", "version_id", "side", "client", "server", "ignored_deps"}


@dataclass(frozen=True)
class ModLoaderConfig:
    """加载器配置，version 为空时由加载器元数据解析"""

    id: ModLoader
    version: Optional[str] = None

    @property
    def qualified_id(self) -> str:
        return f"{self.id.value}-{self.version}"


@dataclass(frozen=True)
class ModReference:
    """
    配置中的一个模组条目。

    key 由用户任意指定；side_override 为显式配置的端需求，缺失的一端
    以平台元数据为准；ignored_deps 只作用于本条目声明的依赖。
    """

    key: str
    mod_id: PlatformModId
    side_override: SideHint = field(default_factory=SideHint)
    ignored_deps: FrozenSet[DependencyId] = frozenset()

    @property
    def platform(self) -> Platform:
        return self.mod_id.platform

    def effective_sides(self, platform_hint: SideHint) -> Sides:
        """显式配置优先，其次平台元数据，都没有则视为必需"""
        return self.side_override.overlay(platform_hint).resolve()

    def ignores(self, dep: DependencyRef) -> bool:
        return any(dep.matches(ignored) for ignored in self.ignored_deps)


@dataclass(frozen=True)
class PackConfig:
    """整合包配置"""

    name: str
    version: str
    minecraft_version: str
    mod_loader: ModLoaderConfig
    description: str = ""
    author: str = ""
    mods: Tuple[ModReference, ...] = ()

    def with_loader_version(self, loader_version: str) -> "PackConfig":
        return replace(
            self, mod_loader=replace(self.mod_loader, version=loader_version)
        )

    def mods_on(self, platform: Platform) -> List[ModReference]:
        return [m for m in self.mods if m.platform is platform]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackConfig":
        """
        从配置字典构建 PackConfig

        Args:
            data: config.toml 解析得到的字典

        Returns:
            校验后的配置

        Raises:
            ConfigurationError: 缺少字段、类型错误或存在未知字段
        """
        if not isinstance(data, dict):
            raise ConfigurationError("配置文件顶层必须是表")

        unknown = sorted(set(data) - _PACK_KEYS)
        if unknown:
            raise ConfigurationError(
                f"未知的配置项: {', '.join(unknown)}", context={"keys": unknown}
            )

        loader_data = _require(data, "mod_loader", dict, "mod_loader")
        unknown = sorted(set(loader_data) - {"id", "version"})
        if unknown:
            raise ConfigurationError(f"mod_loader 中存在未知字段: {', '.join(unknown)}")
        loader_id = _require(loader_data, "id", str, "mod_loader.id")
        try:
            loader = ModLoader(loader_id.lower())
        except ValueError:
            raise ConfigurationError(
                f"mod_loader.id 必须为 forge/neoforge/fabric/quilt，而不是 {loader_id!r}"
            ) from None
        loader_version = loader_data.get("version")
        if loader_version is not None and not isinstance(loader_version, str):
            raise ConfigurationError("mod_loader.version 必须为字符串")

        mods_data = data.get("mods", {})
        if not isinstance(mods_data, dict):
            raise ConfigurationError("mods 必须是表")
        unknown = sorted(set(mods_data) - {p.value for p in Platform})
        if unknown:
            raise ConfigurationError(f"未知的模组平台: {', '.join(unknown)}")

        mods: Dict[str, ModReference] = {}
        for platform in Platform:
            section = mods_data.get(platform.value, {})
            if not isinstance(section, dict):
                raise ConfigurationError(f"mods.{platform.value} 必须是表")
            for key, entry in section.items():
                if key in mods:
                    raise ConfigurationError(
                        f"模组键 {key!r} 在多个平台中重复", context={"mod": key}
                    )
                mods[key] = _parse_mod(platform, key, entry)

        return cls(
            name=_require(data, "name", str, "name"),
            version=_require(data, "version", str, "version"),
            minecraft_version=_require(
                data, "minecraft_version", str, "minecraft_version"
            ),
            mod_loader=ModLoaderConfig(id=loader, version=loader_version or None),
            description=_optional_str(data, "description"),
            author=_optional_str(data, "author"),
            mods=tuple(mods[k] for k in sorted(mods)),
        )


def _require(data: Dict[str, Any], key: str, kind: type, label: str) -> Any:
    if key not in data:
        raise ConfigurationError(f"缺少必需的配置项: {label}", context={"field": label})
    value = data[key]
    if not isinstance(value, kind):
        raise ConfigurationError(
            f"配置项 {label} 类型错误，应为 {kind.__name__}", context={"field": label}
        )
    return value


def _optional_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    if not isinstance(value, str):
        raise ConfigurationError(f"配置项 {key} 必须为字符串", context={"field": key})
    return value


def _parse_side(key: str, field_name: str, value: Any) -> SideRequirement:
    try:
        return SideRequirement(str(value).lower())
    except ValueError:
        raise ConfigurationError(
            f"模组 {key} 的 {field_name} 必须为 required/optional/unsupported",
            context={"mod": key},
        ) from None


def _check_id(platform: Platform, key: str, label: str, value: Any) -> Any:
    if platform is Platform.CURSEFORGE:
        ok = isinstance(value, int) and not isinstance(value, bool)
    else:
        ok = isinstance(value, str) and bool(value)
    if not ok:
        expected = "整数" if platform is Platform.CURSEFORGE else "非空字符串"
        raise ConfigurationError(
            f"模组 {key} 的 {label} 必须为{expected}",
            context={"mod": key, "field": label},
        )
    return value


def _parse_mod(platform: Platform, key: str, entry: Any) -> ModReference:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"模组 {key} 的配置必须是表", context={"mod": key})

    unknown = sorted(set(entry) - _MOD_KEYS)
    if unknown:
        raise ConfigurationError(
            f"模组 {key} 存在未知字段: {', '.join(unknown)}", context={"mod": key}
        )

    for required in ("project_id", "version_id"):
        if required not in entry:
            raise ConfigurationError(
                f"模组 {key} 缺少 {required}", context={"mod": key}
            )

    project_id = _check_id(platform, key, "project_id", entry["project_id"])
    version_id = _check_id(platform, key, "version_id", entry["version_id"])
    try:
        mod_id = make_mod_id(platform, project_id, version_id)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"模组 {key} 的 ID 无效: {e}", context={"mod": key}
        ) from e

    client: Optional[SideRequirement] = None
    server: Optional[SideRequirement] = None
    if "side" in entry:
        legacy = _LEGACY_SIDES.get(str(entry["side"]).lower())
        if legacy is None:
            raise ConfigurationError(
                f"模组 {key} 的 side 必须为 both/client/server", context={"mod": key}
            )
        client, server = legacy
    if "client" in entry:
        client = _parse_side(key, "client", entry["client"])
    if "server" in entry:
        server = _parse_side(key, "server", entry["server"])

    ignored = entry.get("ignored_deps", [])
    if not isinstance(ignored, list):
        raise ConfigurationError(
            f"模组 {key} 的 ignored_deps 必须是列表", context={"mod": key}
        )
    ignored_deps = set()
    for item in ignored:
        if isinstance(item, dict):
            if set(item) == {"project_id"}:
                ignored_deps.add(
                    DependencyId(
                        project_id=_check_id(
                            platform, key, "ignored_deps", item["project_id"]
                        )
                    )
                )
            elif set(item) == {"version_id"}:
                ignored_deps.add(
                    DependencyId(
                        version_id=_check_id(
                            platform, key, "ignored_deps", item["version_id"]
                        )
                    )
                )
            else:
                raise ConfigurationError(
                    f"模组 {key} 的 ignored_deps 项必须只包含 project_id 或 version_id",
                    context={"mod": key},
                )
        else:
            ignored_deps.add(
                DependencyId(project_id=_check_id(platform, key, "ignored_deps", item))
            )

    return ModReference(
        key=key,
        mod_id=mod_id,
        side_override=SideHint(client=client, server=server),
        ignored_deps=frozenset(ignored_deps),
    )
