"""
解析结果模型

ResolvedPack 是依赖闭包解析完成后的只读结果，所有导出器共享。
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Tuple

from packsmith.models.api import (
    Platform,
    PlatformModId,
    ProjectKey,
    Side,
    SideRequirement,
    Sides,
    VersionRecord,
)


@dataclass(frozen=True)
class ResolvedDependency:
    """
    解析后的一个模组。

    direct 为 True 表示用户直接配置，否则为传递依赖；
    required_by 为引入它的模组键（已排序）。
    """

    key: str
    mod_id: PlatformModId
    record: VersionRecord
    sides: Sides
    direct: bool
    required_by: Tuple[str, ...] = ()

    @property
    def platform(self) -> Platform:
        return self.mod_id.platform

    @property
    def filename(self) -> str:
        return self.record.filename

    def wanted_on(self, side: Side, include_optional: bool = True) -> bool:
        requirement = self.sides.get(side)
        if requirement is SideRequirement.REQUIRED:
            return True
        return include_optional and requirement is SideRequirement.OPTIONAL


class ResolvedPack:
    """依赖闭包：键 -> ResolvedDependency，按键排序且不可变"""

    def __init__(self, entries: Dict[str, ResolvedDependency]):
        seen: Dict[ProjectKey, str] = {}
        for key, entry in entries.items():
            project_key = entry.mod_id.project_key
            if project_key in seen:
                raise ValueError(
                    f"{key} 与 {seen[project_key]} 指向同一个项目 {project_key}"
                )
            seen[project_key] = key
        self._entries: Mapping[str, ResolvedDependency] = MappingProxyType(
            {k: entries[k] for k in sorted(entries)}
        )

    @property
    def entries(self) -> Mapping[str, ResolvedDependency]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ResolvedDependency]:
        return iter(self._entries.values())

    def __getitem__(self, key: str) -> ResolvedDependency:
        return self._entries[key]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedPack):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    def snapshot(self) -> List[Tuple]:
        """用于比较的稳定表示"""
        return [
            (e.key, e.mod_id, e.sides, e.direct, e.required_by)
            for e in self._entries.values()
        ]

    def direct(self) -> List[ResolvedDependency]:
        return [e for e in self if e.direct]

    def transitive(self) -> List[ResolvedDependency]:
        return [e for e in self if not e.direct]

    def for_side(
        self, side: Side, include_optional: bool = True
    ) -> List[ResolvedDependency]:
        """某一端需要的模组，UNSUPPORTED 的一律排除"""
        return [e for e in self if e.wanted_on(side, include_optional)]
