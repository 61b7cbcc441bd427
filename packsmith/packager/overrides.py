"""
覆盖文件

源目录下的 overrides/、client-overrides/、server-overrides/ 三棵文件树，
以及按端合并后的结果。mods/ 下的文件是随包分发的原始模组。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping

from packsmith.models import Side

COMMON_DIR = "overrides"
CLIENT_DIR = "client-overrides"
SERVER_DIR = "server-overrides"
MODS_DIR = "mods"


@dataclass(frozen=True)
class OverrideTree:
    """相对路径（posix）-> 磁盘文件"""

    name: str
    files: Mapping[str, Path] = field(default_factory=dict)

    @classmethod
    def load(cls, name: str, root: Path) -> "OverrideTree":
        if not root.is_dir():
            return cls(name)
        files = {
            path.relative_to(root).as_posix(): path
            for path in sorted(root.rglob("*"))
            if path.is_file()
        }
        return cls(name, files)

    def overlay(self, other: "OverrideTree") -> "OverrideTree":
        """other 中的同名路径覆盖自身"""
        merged = dict(self.files)
        merged.update(other.files)
        return OverrideTree(f"{self.name}+{other.name}", merged)

    @property
    def mod_files(self) -> Dict[str, Path]:
        prefix = f"{MODS_DIR}/"
        return {p: f for p, f in self.files.items() if p.startswith(prefix)}

    def __len__(self) -> int:
        return len(self.files)

    def __bool__(self) -> bool:
        return bool(self.files)


@dataclass(frozen=True)
class OverrideSet:
    """一个源目录的三棵覆盖树"""

    common: OverrideTree
    client: OverrideTree
    server: OverrideTree

    def merged(self, side: Side) -> OverrideTree:
        """公共树叠加目标端的树"""
        target = self.client if side is Side.CLIENT else self.server
        return self.common.overlay(target)


def load_overrides(source_dir: Path) -> OverrideSet:
    """读取源目录中的覆盖文件，目录不存在时视为空"""
    source_dir = Path(source_dir)
    return OverrideSet(
        common=OverrideTree.load(COMMON_DIR, source_dir / COMMON_DIR),
        client=OverrideTree.load(CLIENT_DIR, source_dir / CLIENT_DIR),
        server=OverrideTree.load(SERVER_DIR, source_dir / SERVER_DIR),
    )
