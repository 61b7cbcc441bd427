"""
CurseForge 客户端

把 CurseForge Core API 的模组与文件数据翻译为统一的 VersionRecord。
"""

from typing import Dict, Optional, Union

from packsmith.models import (
    CurseForgeModId,
    DependencyKind,
    DependencyRef,
    FileHashes,
    ModLoader,
    Platform,
    PlatformModId,
    ProjectInfo,
    SideHint,
    SideRequirement,
    VersionRecord,
)
from packsmith.exceptions import ConfigurationError, NotFoundError
from packsmith.services.api_client import PlatformClient


CURSEFORGE_BASE_URL = "https://api.curseforge.com/v1"

# FileRelationType
_RELATION_KINDS = {
    2: DependencyKind.OPTIONAL,
    3: DependencyKind.REQUIRED,
    5: DependencyKind.INCOMPATIBLE,
}

# HashAlgo
_HASH_SHA1 = 1
_HASH_MD5 = 2

# ModLoaderType
LOADER_TYPES = {
    ModLoader.FORGE: 1,
    ModLoader.FABRIC: 4,
    ModLoader.QUILT: 5,
    ModLoader.NEOFORGE: 6,
}

# FileReleaseType: 1=release, 2=beta, 3=alpha
_RELEASE_ORDER = (1, 2, 3)


class CurseForgeClient(PlatformClient):
    """CurseForge API 客户端"""

    platform = Platform.CURSEFORGE
    base_url = CURSEFORGE_BASE_URL

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError(
                "缺少 CurseForge API 密钥，请设置 PACKSMITH_CURSEFORGE_API_KEY"
            )
        headers = super()._headers()
        headers["x-api-key"] = self.api_key
        return headers

    async def _load_project(self, project_id: Union[int, str]) -> ProjectInfo:
        data = (await self._request(f"/mods/{project_id}"))["data"]
        return ProjectInfo(
            id=data["id"],
            name=data.get("name") or str(data["id"]),
            slug=data.get("slug"),
            distribution_allowed=data.get("allowModDistribution") is not False,
        )

    async def fetch_mod_version(self, mod_id: PlatformModId) -> VersionRecord:
        project = await self.get_project(mod_id.project_id)
        file = (
            await self._request(f"/mods/{mod_id.project_id}/files/{mod_id.version_id}")
        )["data"]
        if file.get("modId", mod_id.project_id) != mod_id.project_id:
            raise NotFoundError(
                f"文件 {mod_id.version_id} 不属于 CurseForge 项目 {mod_id.project_id}",
                context={"project_id": mod_id.project_id, "version_id": mod_id.version_id},
            )
        return self._to_record(file, project)

    async def fetch_latest_version(
        self,
        project_id: Union[int, str],
        game_version: str,
        loader: ModLoader,
    ) -> VersionRecord:
        project = await self.get_project(project_id)
        params = {
            "gameVersion": game_version,
            "modLoaderType": LOADER_TYPES[loader],
            "pageSize": 50,
        }
        files = (await self._request(f"/mods/{project_id}/files", params))["data"]
        if not files:
            raise NotFoundError(
                f"CurseForge 项目 {project.name} 没有兼容 {game_version}/{loader.value} 的文件",
                context={"project_id": project_id},
            )
        # 列表按发布时间倒序，优先正式版
        for release_type in _RELEASE_ORDER:
            for file in files:
                if file.get("releaseType") == release_type:
                    return self._to_record(file, project)
        return self._to_record(files[0], project)

    def _to_record(self, file: dict, project: ProjectInfo) -> VersionRecord:
        """
        将 CurseForge 文件信息转换为 VersionRecord。
        """
        hashes = {h.get("algo"): h.get("value") for h in file.get("hashes") or []}

        dependencies = [
            DependencyRef(
                platform=Platform.CURSEFORGE,
                kind=_RELATION_KINDS.get(dep.get("relationType"), DependencyKind.OTHER),
                project_id=dep["modId"],
            )
            for dep in file.get("dependencies") or []
            if dep.get("modId") is not None
        ]

        game_versions = file.get("gameVersions") or []
        return VersionRecord(
            mod_id=CurseForgeModId(project.id, file["id"]),
            name=project.name,
            slug=project.slug,
            filename=file["fileName"],
            url=file.get("downloadUrl"),
            size=file.get("fileLength", 0),
            hashes=FileHashes(sha1=hashes.get(_HASH_SHA1), md5=hashes.get(_HASH_MD5)),
            dependencies=dependencies,
            game_versions=game_versions,
            side_hint=self._side_hint(game_versions),
            distribution_allowed=project.distribution_allowed,
        )

    @staticmethod
    def _side_hint(game_versions: list) -> SideHint:
        """gameVersions 中只出现 Client 或 Server 之一时才有端信息"""
        client = "Client" in game_versions
        server = "Server" in game_versions
        if client and not server:
            return SideHint(server=SideRequirement.UNSUPPORTED)
        if server and not client:
            return SideHint(client=SideRequirement.UNSUPPORTED)
        return SideHint()
