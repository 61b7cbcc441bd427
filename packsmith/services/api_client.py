"""
API 客户端抽象

两个模组平台共用的客户端基类：会话管理、限流、重试与项目信息缓存。
各平台子类只负责把自己的线上格式翻译成 VersionRecord。
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

import aiohttp
from loguru import logger

from packsmith.models import (
    DependencyRef,
    ModLoader,
    Platform,
    PlatformModId,
    ProjectInfo,
    VersionRecord,
    make_mod_id,
)
from packsmith.exceptions import (
    APIError,
    NotFoundError,
    TransientNetworkError,
)
from packsmith.utils import RETRYABLE_STATUS, retry_transient


class PlatformClient(ABC):
    """模组平台 API 客户端"""

    platform: Platform
    base_url: str

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        limiter: Optional[asyncio.Semaphore] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        user_agent: str = "packsmith",
    ):
        self._session = session
        self._owned_session = session is None
        self.limiter = limiter
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.user_agent = user_agent
        self._projects: Dict[Union[int, str], "asyncio.Future[ProjectInfo]"] = {}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, "Accept": "application/json"}

    async def _request(self, endpoint: str, params: Optional[dict] = None) -> Any:
        """
        发送 GET 请求并返回 JSON

        Raises:
            NotFoundError: 404，不重试
            APIError: 其他不可重试的状态码
            TransientNetworkError: 超时、连接错误、429/5xx 重试耗尽
        """
        url = f"{self.base_url}{endpoint}"

        async def attempt() -> Any:
            try:
                async with self.session.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status == 200:
                        return await response.json()
                    if response.status == 404:
                        raise NotFoundError(
                            f"{self.platform.value} 上不存在: {endpoint}",
                            response=response,
                        )
                    if response.status in RETRYABLE_STATUS:
                        raise TransientNetworkError(
                            f"HTTP {response.status}",
                            context={"url": url, "status": response.status},
                        )
                    raise APIError(
                        f"API 请求失败 (状态码: {response.status})",
                        response=response,
                    )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransientNetworkError(
                    f"{type(e).__name__}: {e}", context={"url": url}
                ) from e

        logger.debug(f"[请求] {url} {params or ''}")
        return await retry_transient(
            attempt,
            f"请求 {url}",
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            limiter=self.limiter,
        )

    async def get_project(self, project_id: Union[int, str]) -> ProjectInfo:
        """获取项目信息，同一项目只请求一次"""
        future = self._projects.get(project_id)
        if future is None:
            future = asyncio.ensure_future(self._load_project(project_id))
            self._projects[project_id] = future
        return await asyncio.shield(future)

    async def fetch_dependency(
        self,
        dep: DependencyRef,
        game_version: str,
        loader: ModLoader,
    ) -> VersionRecord:
        """
        获取依赖边指向的版本

        依赖固定了版本时取该版本，否则取与整合包游戏版本和加载器兼容的最新版本。
        """
        if dep.version_id is not None and dep.project_id is not None:
            return await self.fetch_mod_version(
                make_mod_id(self.platform, dep.project_id, dep.version_id)
            )
        if dep.version_id is not None:
            return await self.fetch_version_only(dep.version_id)
        if dep.project_id is None:
            raise NotFoundError(f"依赖 {dep} 既没有项目 ID 也没有版本 ID")
        return await self.fetch_latest_version(dep.project_id, game_version, loader)

    async def fetch_version_only(self, version_id: Union[int, str]) -> VersionRecord:
        """仅凭版本 ID 获取版本，平台不支持时视为不存在"""
        raise NotFoundError(
            f"{self.platform.value} 不支持仅凭版本 ID 查询: {version_id}"
        )

    @abstractmethod
    async def _load_project(self, project_id: Union[int, str]) -> ProjectInfo:
        """请求项目信息"""

    @abstractmethod
    async def fetch_mod_version(self, mod_id: PlatformModId) -> VersionRecord:
        """
        按平台 ID 获取模组版本信息。
        """

    @abstractmethod
    async def fetch_latest_version(
        self,
        project_id: Union[int, str],
        game_version: str,
        loader: ModLoader,
    ) -> VersionRecord:
        """
        获取项目与指定游戏版本/加载器兼容的最新版本。
        """

    async def close(self):
        """关闭客户端"""
        for future in self._projects.values():
            if not future.done():
                future.cancel()
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
