"""
Mrpack 生成器

实现 Modrinth 标准整合包 (.mrpack) 的生成。
"""

from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from packsmith.models import ModLoader, ResolvedDependency, Side, SideRequirement
from packsmith.packager.base import PackExporter, ZipSource, dump_json

# modrinth.index.json 中 dependencies 的键
LOADER_KEYS = {
    ModLoader.FORGE: "forge",
    ModLoader.NEOFORGE: "neoforge",
    ModLoader.FABRIC: "fabric-loader",
    ModLoader.QUILT: "quilt-loader",
}


class ModrinthPackExporter(PackExporter):
    """Mrpack 构建器"""

    label = " Modrinth 整合包"

    def env(self, entry: ResolvedDependency) -> Optional[Dict[str, str]]:
        """
        文件的 env 字段

        不包含可选模组时，可选的一端视为不支持；两端都不支持返回 None。
        """
        sides = {}
        for side in Side:
            requirement = entry.sides.get(side)
            if not self.include_optional and requirement is SideRequirement.OPTIONAL:
                requirement = SideRequirement.UNSUPPORTED
            sides[side.value] = requirement
        if not any(r.supported for r in sides.values()):
            return None
        return {name: r.value for name, r in sides.items()}

    def create_manifest(self, files: List[dict]) -> dict:
        """创建 modrinth.index.json"""
        loader = self.config.mod_loader
        dependencies = {"minecraft": self.config.minecraft_version}
        if loader.version:
            dependencies[LOADER_KEYS[loader.id]] = loader.version

        return {
            "formatVersion": 1,
            "game": "minecraft",
            "versionId": self.config.version,
            "name": self.config.name,
            "summary": self.config.description,
            "files": files,
            "dependencies": dependencies,
        }

    async def _export(self, output: Path) -> Path:
        selected = [(e, self.env(e)) for e in self.pack]
        dropped = [e.key for e, env in selected if env is None]
        if dropped:
            logger.info(f"[导出] 不包含可选模组，跳过: {', '.join(dropped)}")
        selected = [(e, env) for e, env in selected if env is not None]

        paths = self.mod_paths(e for e, _ in selected)
        for tree in (self.overrides.common, self.overrides.client, self.overrides.server):
            self.check_collisions(paths, tree.mod_files)

        # 平台声明的哈希不全时（CurseForge 没有 sha512）需要下载计算
        need_files = [
            e for e, _ in selected
            if not (e.record.hashes.sha1 and e.record.hashes.sha512)
        ]
        artifacts = await self.materialize(need_files)

        files = []
        for entry, env in selected:
            artifact = artifacts.get(entry.key)
            record = entry.record
            files.append(
                {
                    "path": paths[entry.key],
                    "hashes": {
                        "sha1": artifact.sha1 if artifact else record.hashes.sha1.lower(),
                        "sha512": (
                            artifact.sha512 if artifact else record.hashes.sha512.lower()
                        ),
                    },
                    "env": env,
                    "downloads": [record.url],
                    "fileSize": artifact.size if artifact else record.size,
                }
            )

        entries: Dict[str, ZipSource] = {}
        for tree in (self.overrides.common, self.overrides.client, self.overrides.server):
            for path, file in tree.files.items():
                entries[f"{tree.name}/{path}"] = file
        entries["modrinth.index.json"] = dump_json(self.create_manifest(files))

        return await self.publish_zip(output / f"{self.artifact_stem}.mrpack", entries)
