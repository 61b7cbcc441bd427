"""
模组加载器元数据

未配置加载器版本时查询最新版本，并给出服务端安装器的下载地址。
"""

import asyncio
from typing import Any, Optional

import aiohttp
from loguru import logger

from packsmith.models import ModLoader, ModLoaderConfig
from packsmith.exceptions import TransientNetworkError
from packsmith.utils import RETRYABLE_STATUS, retry_transient

FABRIC_META = "https://meta.fabricmc.net/v2"
QUILT_META = "https://meta.quiltmc.org/v3"
FORGE_PROMOTIONS = (
    "https://files.minecraftforge.net/net/minecraftforge/forge/promotions_slim.json"
)
NEOFORGE_VERSIONS = (
    "https://maven.neoforged.net/api/maven/versions/releases/net/neoforged/neoforge"
)
FABRIC_INSTALLER_VERSION = "1.0.1"


def installer_url(loader: ModLoaderConfig, mc_version: str) -> str:
    """服务端安装器（或启动器）的下载地址"""
    version = loader.version
    if loader.id == ModLoader.FORGE:
        return (
            "https://maven.minecraftforge.net/net/minecraftforge/forge/"
            f"{mc_version}-{version}/forge-{mc_version}-{version}-installer.jar"
        )
    if loader.id == ModLoader.NEOFORGE:
        return (
            "https://maven.neoforged.net/releases/net/neoforged/neoforge/"
            f"{version}/neoforge-{version}-installer.jar"
        )
    if loader.id == ModLoader.FABRIC:
        return (
            f"{FABRIC_META}/versions/loader/{mc_version}/{version}/"
            f"{FABRIC_INSTALLER_VERSION}/server/jar"
        )
    return "https://quiltmc.org/api/v1/download-latest-installer/java-universal"


def neoforge_prefix(mc_version: str) -> str:
    """1.20.4 -> "20.4."，1.21 -> "21.0." """
    parts = mc_version.split(".")
    minor = parts[1] if len(parts) > 1 else "0"
    patch = parts[2] if len(parts) > 2 else "0"
    return f"{minor}.{patch}."


class LoaderVersionClient:
    """加载器版本查询"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        limiter: Optional[asyncio.Semaphore] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self._session = session
        self._owned_session = session is None
        self.limiter = limiter
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _get_json(self, url: str) -> Optional[Any]:
        async def attempt() -> Optional[Any]:
            try:
                async with self.session.get(url) as response:
                    if response.status == 200:
                        return await response.json(content_type=None)
                    if response.status in RETRYABLE_STATUS:
                        raise TransientNetworkError(
                            f"HTTP {response.status}", context={"url": url}
                        )
                    return None
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransientNetworkError(str(e), context={"url": url}) from e

        return await retry_transient(
            attempt,
            f"请求 {url}",
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            limiter=self.limiter,
        )

    async def latest_version(self, loader: ModLoader, mc_version: str) -> Optional[str]:
        """
        获取模组加载器版本

        Args:
            loader: 加载器类型
            mc_version: Minecraft 版本

        Returns:
            加载器版本或 None
        """
        if loader in (ModLoader.FABRIC, ModLoader.QUILT):
            base = FABRIC_META if loader == ModLoader.FABRIC else QUILT_META
            versions = await self._get_json(f"{base}/versions/loader/{mc_version}")
            if versions:
                return versions[0]["loader"]["version"]
        elif loader == ModLoader.FORGE:
            data = await self._get_json(FORGE_PROMOTIONS)
            if data:
                promos = data.get("promos", {})
                return promos.get(f"{mc_version}-recommended") or promos.get(
                    f"{mc_version}-latest"
                )
        elif loader == ModLoader.NEOFORGE:
            data = await self._get_json(NEOFORGE_VERSIONS)
            if data:
                prefix = neoforge_prefix(mc_version)
                matching = [
                    v for v in data.get("versions", []) if v.startswith(prefix)
                ]
                if matching:
                    return matching[-1]
        logger.debug(f"[加载器] 未找到 {loader.value} 在 {mc_version} 上的版本")
        return None

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()
