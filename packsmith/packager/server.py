"""
服务端目录生成器

合并公共与服务端覆盖文件，下载服务端需要的模组，
并写入记录加载器信息的 modloader.json。
"""

import shutil
from pathlib import Path
from typing import List, Tuple

from loguru import logger

from packsmith.models import Side
from packsmith.packager.base import PackExporter, atomic_dir, dump_json
from packsmith.packager.overrides import MODS_DIR
from packsmith.services.loader_versions import installer_url
from packsmith.utils import run_blocking

MODLOADER_FILE = "modloader.json"


class ServerDirExporter(PackExporter):
    """服务端目录构建器"""

    label = "服务端目录"

    def create_modloader_info(self) -> dict:
        loader = self.config.mod_loader
        return {
            "minecraft_version": self.config.minecraft_version,
            "loader": loader.id.value,
            "loader_version": loader.version,
            "installer_url": installer_url(loader, self.config.minecraft_version),
        }

    async def _export(self, output: Path) -> Path:
        server_mods = self.pack.for_side(Side.SERVER, self.include_optional)
        tree = self.overrides.merged(Side.SERVER)
        paths = self.mod_paths(server_mods)
        self.check_collisions(paths, tree.mod_files)

        logger.info(f"[导出] 服务端需要 {len(server_mods)} 个模组")
        artifacts = await self.materialize(server_mods)

        copies = sorted(tree.files.items()) + [
            (paths[entry.key], Path(artifacts[entry.key].path)) for entry in server_mods
        ]
        info = dump_json(self.create_modloader_info())
        with atomic_dir(output) as tmp:
            await run_blocking(self._populate, tmp, copies, info)
        return output

    @staticmethod
    def _populate(root: Path, copies: List[Tuple[str, Path]], info: bytes):
        (root / MODS_DIR).mkdir()
        for path, file in copies:
            dest = root / path
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(file, dest)
        (root / MODLOADER_FILE).write_bytes(info)
