"""
导出器基类

三种输出共用的部分：确定性的 ZIP 写入、原子发布、模组文件获取与冲突检查。
"""

import asyncio
import json
import os
import shutil
import tempfile
import zipfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Union

from loguru import logger

from packsmith.download import ArtifactCache, CachedArtifact
from packsmith.exceptions import ExportError, FilesystemError
from packsmith.models import PackConfig, ResolvedDependency, ResolvedPack
from packsmith.packager.overrides import MODS_DIR, OverrideSet
from packsmith.utils import run_blocking, safe_filename

# ZIP 格式能表示的最早时间，保证相同输入得到相同字节
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)

ZipSource = Union[bytes, Path]


def write_zip(dest: Path, entries: Mapping[str, ZipSource]):
    """
    按路径排序写入 ZIP，固定时间戳与权限

    Args:
        dest: 目标文件
        entries: 包内路径 -> 内容（bytes 或磁盘文件）
    """
    with zipfile.ZipFile(dest, "w", zipfile.ZIP_DEFLATED) as zf:
        for arcname in sorted(entries):
            info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            source = entries[arcname]
            if isinstance(source, bytes):
                zf.writestr(info, source)
            else:
                with zf.open(info, "w") as dst, open(source, "rb") as src:
                    shutil.copyfileobj(src, dst)


def dump_json(data: dict) -> bytes:
    return json.dumps(data, indent=4, ensure_ascii=False).encode("utf-8")


@contextmanager
def atomic_file(dest: Path) -> Iterator[Path]:
    """在目标旁边写临时文件，成功后替换，失败时删除"""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".tmp")
        os.close(fd)
    except OSError as e:
        raise FilesystemError(f"无法创建输出文件: {e}", path=str(dest)) from e
    tmp_path = Path(tmp)
    try:
        yield tmp_path
        os.replace(tmp_path, dest)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


@contextmanager
def atomic_dir(dest: Path) -> Iterator[Path]:
    """在目标旁边构建临时目录，成功后整体换入"""
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = Path(tempfile.mkdtemp(dir=dest.parent, prefix=f".{dest.name}."))
        os.chmod(tmp_path, 0o755)
    except OSError as e:
        raise FilesystemError(f"无法创建输出目录: {e}", path=str(dest)) from e
    try:
        yield tmp_path
        if dest.exists():
            old = Path(tempfile.mkdtemp(dir=dest.parent, prefix=f".{dest.name}.old."))
            os.replace(dest, old / dest.name)
            os.replace(tmp_path, dest)
            shutil.rmtree(old, ignore_errors=True)
        else:
            os.replace(tmp_path, dest)
    except BaseException:
        shutil.rmtree(tmp_path, ignore_errors=True)
        raise


class PackExporter(ABC):
    """导出器"""

    label: str = "导出"

    def __init__(
        self,
        config: PackConfig,
        pack: ResolvedPack,
        overrides: OverrideSet,
        cache: ArtifactCache,
        include_optional: bool = True,
    ):
        self.config = config
        self.pack = pack
        self.overrides = overrides
        self.cache = cache
        self.include_optional = include_optional

    @property
    def artifact_stem(self) -> str:
        return f"{self.config.name} ({self.config.version})"

    async def export(self, output: Path) -> Path:
        """
        生成输出

        Args:
            output: 输出目录（归档放在其下，服务端目录即为其本身）

        Returns:
            生成的文件或目录路径
        """
        logger.info(f"[导出] 开始生成{self.label}: {output}")
        try:
            result = await self._export(Path(output))
        except OSError as e:
            raise FilesystemError(
                f"生成{self.label}失败: {e}", path=str(e.filename or output)
            ) from e
        logger.success(f"[导出] {self.label}已生成: {result}")
        return result

    @abstractmethod
    async def _export(self, output: Path) -> Path:
        """生成输出"""

    async def materialize(
        self, entries: Iterable[ResolvedDependency]
    ) -> Dict[str, CachedArtifact]:
        """并发获取模组文件，键为模组键"""
        entries = list(entries)
        artifacts = await asyncio.gather(
            *(self.cache.materialize(e.record) for e in entries)
        )
        return {e.key: a for e, a in zip(entries, artifacts)}

    async def publish_zip(self, dest: Path, entries: Mapping[str, ZipSource]) -> Path:
        """在线程中写入归档，完成后原子替换目标文件"""
        with atomic_file(dest) as tmp:
            await run_blocking(write_zip, tmp, entries)
        return dest

    @staticmethod
    def mod_path(entry: ResolvedDependency) -> str:
        try:
            return f"{MODS_DIR}/{safe_filename(entry.filename)}"
        except ValueError as e:
            raise ExportError(
                f"模组 {entry.key} 的文件名无效: {entry.filename!r}",
                context={"mod": entry.key},
            ) from e

    def mod_paths(self, entries: Iterable[ResolvedDependency]) -> Dict[str, str]:
        """模组键 -> mods/<文件名>，两个模组写到同一路径时报错"""
        paths: Dict[str, str] = {}
        owners: Dict[str, str] = {}
        for entry in entries:
            path = self.mod_path(entry)
            if path in owners:
                raise ExportError(
                    f"模组 {entry.key} 与 {owners[path]} 的文件名相同: {path}",
                    context={"path": path, "mods": [owners[path], entry.key]},
                )
            owners[path] = entry.key
            paths[entry.key] = path
        return paths

    @staticmethod
    def check_collisions(mod_paths: Mapping[str, str], raw_mods: Iterable[str]):
        """覆盖目录里的原始模组不能与解析出的模组占用同一路径"""
        owners = {path: key for key, path in mod_paths.items()}
        clashes: List[str] = sorted(p for p in raw_mods if p in owners)
        if clashes:
            path = clashes[0]
            raise ExportError(
                f"覆盖文件 {path} 与模组 {owners[path]} 的输出路径冲突",
                context={"path": path, "mod": owners[path], "paths": clashes},
            )
