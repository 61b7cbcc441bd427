"""
CurseForge 整合包生成器

manifest.json 列出直接配置的 CurseForge 客户端模组；
其余客户端模组下载后放入 overrides/mods/。
"""

from pathlib import Path
from typing import Dict, List

from loguru import logger

from packsmith.models import Platform, ResolvedDependency, Side
from packsmith.packager.base import PackExporter, ZipSource, dump_json
from packsmith.packager.overrides import COMMON_DIR


class CurseForgeZipExporter(PackExporter):
    """CurseForge ZIP 构建器"""

    label = " CurseForge 整合包"

    def listed(self, entry: ResolvedDependency) -> bool:
        return entry.direct and entry.platform is Platform.CURSEFORGE

    def create_manifest(self, files: List[ResolvedDependency]) -> dict:
        """创建 manifest.json"""
        return {
            "minecraft": {
                "version": self.config.minecraft_version,
                "modLoaders": [
                    {"id": self.config.mod_loader.qualified_id, "primary": True}
                ],
            },
            "manifestType": "minecraftModpack",
            "manifestVersion": 1,
            "name": self.config.name,
            "version": self.config.version,
            "author": self.config.author,
            "files": [
                {
                    "projectID": e.mod_id.project_id,
                    "fileID": e.mod_id.version_id,
                    "required": True,
                }
                for e in files
            ],
            "overrides": COMMON_DIR,
        }

    async def _export(self, output: Path) -> Path:
        client_mods = self.pack.for_side(Side.CLIENT, self.include_optional)
        listed = [e for e in client_mods if self.listed(e)]
        bundled = [e for e in client_mods if not self.listed(e)]

        tree = self.overrides.merged(Side.CLIENT)
        paths = self.mod_paths(bundled)
        self.check_collisions(paths, tree.mod_files)

        logger.info(
            f"[导出] manifest 列出 {len(listed)} 个模组，打包 {len(bundled)} 个模组"
        )
        artifacts = await self.materialize(bundled)

        entries: Dict[str, ZipSource] = {
            f"{COMMON_DIR}/{path}": file for path, file in tree.files.items()
        }
        for entry in bundled:
            entries[f"{COMMON_DIR}/{paths[entry.key]}"] = Path(artifacts[entry.key].path)
        entries["manifest.json"] = dump_json(self.create_manifest(listed))

        return await self.publish_zip(output / f"{self.artifact_stem}.zip", entries)
