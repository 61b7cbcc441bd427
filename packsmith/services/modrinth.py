"""
Modrinth 客户端

把 Modrinth v2 API 的项目与版本数据翻译为统一的 VersionRecord。
"""

import json
from typing import Optional, Union

from loguru import logger

from packsmith.models import (
    DependencyKind,
    DependencyRef,
    FileHashes,
    ModLoader,
    ModrinthModId,
    Platform,
    PlatformModId,
    ProjectInfo,
    SideHint,
    SideRequirement,
    VersionRecord,
)
from packsmith.exceptions import ConfigurationError, NotFoundError
from packsmith.services.api_client import PlatformClient


MODRINTH_BASE_URL = "https://api.modrinth.com/v2"

_DEPENDENCY_KINDS = {
    "required": DependencyKind.REQUIRED,
    "optional": DependencyKind.OPTIONAL,
    "incompatible": DependencyKind.INCOMPATIBLE,
}


def _side(value: Optional[str]) -> Optional[SideRequirement]:
    # "unknown" 与缺失同义
    try:
        return SideRequirement(value) if value else None
    except ValueError:
        return None


class ModrinthClient(PlatformClient):
    """Modrinth API 客户端"""

    platform = Platform.MODRINTH
    base_url = MODRINTH_BASE_URL

    async def _load_project(self, project_id: Union[int, str]) -> ProjectInfo:
        data = await self._request(f"/project/{project_id}")
        if data.get("project_type", "mod") != "mod":
            raise ConfigurationError(
                f"Modrinth 项目 {project_id} 存在，但不是模组 ({data.get('project_type')})",
                context={"project_id": project_id},
            )
        return ProjectInfo(
            id=data["id"],
            name=data.get("title") or data.get("slug") or data["id"],
            slug=data.get("slug"),
            side_hint=SideHint(
                client=_side(data.get("client_side")),
                server=_side(data.get("server_side")),
            ),
        )

    async def fetch_mod_version(self, mod_id: PlatformModId) -> VersionRecord:
        project = await self.get_project(mod_id.project_id)
        version = await self._request(f"/version/{mod_id.version_id}")
        if version.get("project_id") != project.id:
            raise NotFoundError(
                f"版本 {mod_id.version_id} 不属于 Modrinth 项目 {mod_id.project_id}",
                context={"project_id": mod_id.project_id, "version_id": mod_id.version_id},
            )
        return self._to_record(version, project)

    async def fetch_version_only(self, version_id: Union[int, str]) -> VersionRecord:
        version = await self._request(f"/version/{version_id}")
        project = await self.get_project(version["project_id"])
        return self._to_record(version, project)

    async def fetch_latest_version(
        self,
        project_id: Union[int, str],
        game_version: str,
        loader: ModLoader,
    ) -> VersionRecord:
        project = await self.get_project(project_id)
        params = {
            "game_versions": json.dumps([game_version]),
            "loaders": json.dumps([loader.value]),
        }
        versions = await self._request(f"/project/{project.id}/version", params)
        if not versions:
            raise NotFoundError(
                f"Modrinth 项目 {project.name} 没有兼容 {game_version}/{loader.value} 的版本",
                context={"project_id": project_id},
            )
        # API 按发布时间倒序返回
        return self._to_record(versions[0], project)

    def _to_record(self, version: dict, project: ProjectInfo) -> VersionRecord:
        """
        将 Modrinth API 返回的版本信息转换为 VersionRecord。
        """
        primary = self._get_primary_file(version)
        if primary is None:
            raise NotFoundError(
                f"Modrinth 版本 {version.get('id')} 没有任何文件",
                context={"version_id": version.get("id")},
            )

        dependencies = []
        for dep in version.get("dependencies", []):
            if not dep.get("project_id") and not dep.get("version_id"):
                logger.debug(
                    f"[解析] 跳过只有文件名的依赖: {dep.get('file_name')} ({project.name})"
                )
                continue
            dependencies.append(
                DependencyRef(
                    platform=Platform.MODRINTH,
                    kind=_DEPENDENCY_KINDS.get(
                        dep.get("dependency_type", "required"), DependencyKind.OTHER
                    ),
                    project_id=dep.get("project_id"),
                    version_id=dep.get("version_id"),
                )
            )

        hashes = primary.get("hashes") or {}
        return VersionRecord(
            mod_id=ModrinthModId(project.id, version["id"]),
            name=project.name,
            slug=project.slug,
            filename=primary["filename"],
            url=primary.get("url"),
            size=primary.get("size", 0),
            hashes=FileHashes(sha1=hashes.get("sha1"), sha512=hashes.get("sha512")),
            dependencies=dependencies,
            game_versions=version.get("game_versions", []),
            side_hint=project.side_hint,
        )

    def _get_primary_file(self, version: dict) -> Optional[dict]:
        """获取主文件信息"""
        files = version.get("files", [])
        if not files:
            return None

        # 优先选择 primary 文件
        for file in files:
            if file.get("primary", False):
                return file

        # 否则返回第一个文件
        return files[0]
