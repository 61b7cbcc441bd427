"""
主协调器

整合所有服务层组件：校验配置、解析依赖、按需生成三种输出。
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import aiohttp
from loguru import logger

from packsmith.config_editor import ConfigEditor, mod_key
from packsmith.download import ArtifactCache, DownloadStats
from packsmith.exceptions import ConfigurationError, NotFoundError
from packsmith.models import PackConfig, Platform, ResolvedPack
from packsmith.packager import (
    CurseForgeZipExporter,
    ModrinthPackExporter,
    OverrideSet,
    PackExporter,
    ServerDirExporter,
    load_overrides,
)
from packsmith.services import (
    CurseForgeClient,
    DependencyResolver,
    LoaderVersionClient,
    ModrinthClient,
    PlatformClient,
)
from packsmith.settings import Settings


@dataclass
class ExportOptions:
    """要生成哪些输出"""

    curseforge_zip: Optional[Path] = None
    cf_zip_include_optional: bool = False
    modrinth_pack: Optional[Path] = None
    mrpack_include_optional: bool = True
    server_dir: Optional[Path] = None
    server_include_optional: bool = True

    @property
    def validate_only(self) -> bool:
        return not (self.curseforge_zip or self.modrinth_pack or self.server_dir)


@dataclass
class BuildResult:
    """一次运行的结果"""

    config: PackConfig
    pack: ResolvedPack
    outputs: List[Path] = field(default_factory=list)
    stats: Optional[DownloadStats] = None


class PacksmithOrchestrator:
    """packsmith 主协调器"""

    def __init__(
        self,
        config: PackConfig,
        source_dir: Path,
        settings: Settings,
    ):
        self.config = config
        self.source_dir = Path(source_dir)
        self.settings = settings

    def _validate_config(self):
        """在任何网络请求之前检查配置"""
        if self.config.mods_on(Platform.CURSEFORGE) and not self.settings.curseforge_api_key:
            raise ConfigurationError(
                "配置了 CurseForge 模组，但缺少 CurseForge API 密钥 "
                "(PACKSMITH_CURSEFORGE_API_KEY 或用户配置中的 curse_forge_api_key)"
            )

    def _create_clients(
        self, session: aiohttp.ClientSession, limiter: asyncio.Semaphore
    ) -> Dict[Platform, PlatformClient]:
        common = dict(
            session=session,
            limiter=limiter,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
            timeout=self.settings.request_timeout,
            user_agent=self.settings.user_agent,
        )
        return {
            Platform.CURSEFORGE: CurseForgeClient(
                api_key=self.settings.curseforge_api_key, **common
            ),
            Platform.MODRINTH: ModrinthClient(**common),
        }

    async def _ensure_loader_version(
        self, session: aiohttp.ClientSession, limiter: asyncio.Semaphore
    ) -> PackConfig:
        loader = self.config.mod_loader
        if loader.version:
            return self.config
        logger.info(f"[加载器] 未配置 {loader.id.value} 版本，查询最新版本...")
        client = LoaderVersionClient(
            session=session,
            limiter=limiter,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
        )
        version = await client.latest_version(loader.id, self.config.minecraft_version)
        if not version:
            raise ConfigurationError(
                f"无法确定 {loader.id.value} 在 Minecraft {self.config.minecraft_version} "
                "上的版本，请在 mod_loader.version 中指定"
            )
        logger.info(f"[加载器] 使用 {loader.id.value} {version}")
        return self.config.with_loader_version(version)

    async def run(self, options: ExportOptions) -> BuildResult:
        """运行完整流程"""
        logger.info(f"开始构建整合包 {self.config.name} ({self.config.version})...")
        self._validate_config()
        overrides = load_overrides(self.source_dir)

        limiter = asyncio.Semaphore(self.settings.max_concurrent)
        async with aiohttp.ClientSession() as session:
            clients = self._create_clients(session, limiter)
            try:
                config = await self._ensure_loader_version(session, limiter)
                resolver = DependencyResolver(
                    clients, config.minecraft_version, config.mod_loader.id
                )
                pack = await resolver.resolve(config.mods)
                self._report(pack)

                if options.validate_only:
                    logger.success("[校验] 配置与依赖检查通过，未指定输出")
                    return BuildResult(config, pack)

                cache = ArtifactCache(
                    str(self.settings.cache_dir),
                    session=session,
                    limiter=limiter,
                    max_retries=self.settings.max_retries,
                    retry_delay=self.settings.retry_delay,
                    user_agent=self.settings.user_agent,
                )
                try:
                    outputs = await self._export(config, pack, overrides, cache, options)
                finally:
                    await cache.close()

                stats = cache.get_stats()
                logger.success(
                    f"完成: 下载 {stats.downloads} 个文件 "
                    f"({stats.bytes_downloaded / (1024 * 1024):.2f} MB), "
                    f"缓存命中 {stats.hits} 个"
                )
                return BuildResult(config, pack, outputs, stats)
            finally:
                for client in clients.values():
                    await client.close()

    async def _export(
        self,
        config: PackConfig,
        pack: ResolvedPack,
        overrides: OverrideSet,
        cache: ArtifactCache,
        options: ExportOptions,
    ) -> List[Path]:
        """并发生成所有输出，任一失败则取消其余"""
        jobs: List[Tuple[PackExporter, Path]] = []
        if options.curseforge_zip:
            jobs.append(
                (
                    CurseForgeZipExporter(
                        config, pack, overrides, cache, options.cf_zip_include_optional
                    ),
                    options.curseforge_zip,
                )
            )
        if options.modrinth_pack:
            jobs.append(
                (
                    ModrinthPackExporter(
                        config, pack, overrides, cache, options.mrpack_include_optional
                    ),
                    options.modrinth_pack,
                )
            )
        if options.server_dir:
            jobs.append(
                (
                    ServerDirExporter(
                        config, pack, overrides, cache, options.server_include_optional
                    ),
                    options.server_dir,
                )
            )

        tasks = [asyncio.ensure_future(exporter.export(dest)) for exporter, dest in jobs]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    def _report(pack: ResolvedPack):
        for entry in pack:
            source = "直接" if entry.direct else f"依赖 <- {', '.join(entry.required_by)}"
            logger.debug(
                f"[解析] {entry.key}: {entry.record.name} {entry.filename} "
                f"(客户端 {entry.sides.client.value}, 服务端 {entry.sides.server.value}; {source})"
            )
        logger.info(f"[解析] 整合包共 {len(pack)} 个模组")

    async def add_mods(
        self, editor: ConfigEditor, platform: Platform, project_ids: Sequence[Union[int, str]]
    ) -> bool:
        """
        把项目的最新兼容版本写入 config.toml

        已存在的项目只更新版本；新项目以模组名称生成键，并带上平台的端信息。

        Returns:
            True 如果配置文件有变化
        """
        if platform is Platform.CURSEFORGE and not self.settings.curseforge_api_key:
            raise ConfigurationError(
                "添加 CurseForge 模组需要 CurseForge API 密钥 "
                "(PACKSMITH_CURSEFORGE_API_KEY 或用户配置中的 curse_forge_api_key)"
            )
        existing = editor.existing(platform)

        limiter = asyncio.Semaphore(self.settings.max_concurrent)
        async with aiohttp.ClientSession() as session:
            clients = self._create_clients(session, limiter)
            try:
                client = clients[platform]
                for project_id in project_ids:
                    logger.info(f"[添加] 查询项目 {platform.value}:{project_id}...")
                    try:
                        latest = await client.fetch_latest_version(
                            project_id,
                            self.config.minecraft_version,
                            self.config.mod_loader.id,
                        )
                    except NotFoundError as e:
                        logger.warning(f"[添加] 项目 {project_id} 没有可用版本: {e.message}")
                        continue

                    version_id = latest.mod_id.version_id
                    ref = existing.get(project_id) or existing.get(latest.mod_id.project_id)
                    if ref is not None:
                        key, current = ref.key, ref.mod_id.version_id
                        if current == version_id:
                            logger.info(f"[添加] 模组 {key} 已是最新版本")
                            continue
                        logger.info(f"[添加] 模组 {key} 已存在，更新版本 {current} -> {version_id}")
                        editor.set_version(platform, key, version_id)
                        continue

                    key = mod_key(latest.name)
                    if not key or editor.has_key(key):
                        logger.warning(f"[添加] 不覆盖已存在的模组键 {key!r}")
                        continue
                    logger.info(f"[添加] 添加模组 {key} ({latest.name} {latest.filename})")
                    editor.add(platform, key, project_id, version_id, latest.side_hint)
            finally:
                for c in clients.values():
                    await c.close()

        return editor.save()
