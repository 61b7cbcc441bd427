"""
内容寻址缓存

模组文件按 SHA1 存放在 <cache>/objects/<sha1[:2]>/<sha1>。
同一文件在一次运行中只下载一次，所有导出器共享结果。
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, cast

import aiofiles
import aiohttp
from loguru import logger

from packsmith.download.verifier import CHUNK_SIZE, FileVerifier, HashSet
from packsmith.exceptions import (
    DistributionDeniedError,
    DownloadError,
    FilesystemError,
    IntegrityError,
    TransientNetworkError,
)
from packsmith.models import VersionRecord
from packsmith.utils import RETRYABLE_STATUS, retry_transient


@dataclass(frozen=True)
class CachedArtifact:
    """缓存中已校验的文件"""

    path: str
    sha1: str
    sha512: str
    size: int


@dataclass
class DownloadStats:
    """下载统计"""

    downloads: int = 0
    hits: int = 0
    failed: int = 0
    bytes_downloaded: int = 0


class ArtifactCache:
    """模组文件缓存"""

    def __init__(
        self,
        cache_dir: str,
        session: Optional[aiohttp.ClientSession] = None,
        limiter: Optional[asyncio.Semaphore] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 300.0,
        user_agent: str = "packsmith",
    ):
        self.cache_dir = cache_dir
        self.objects_dir = os.path.join(cache_dir, "objects")
        self.tmp_dir = os.path.join(cache_dir, "tmp")
        self.limiter = limiter
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.user_agent = user_agent
        self.stats = DownloadStats()
        self._session = session
        self._owned_session = session is None
        self._inflight: Dict[str, "asyncio.Task[CachedArtifact]"] = {}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    def object_path(self, sha1: str) -> str:
        sha1 = sha1.lower()
        return os.path.join(self.objects_dir, sha1[:2], sha1)

    async def materialize(self, record: VersionRecord) -> CachedArtifact:
        """
        确保版本记录对应的文件在缓存中

        同一文件的并发请求共享一次下载；调用方被取消不会影响其他等待者。

        Args:
            record: 模组版本记录

        Returns:
            已校验的缓存文件

        Raises:
            DistributionDeniedError: 平台没有提供下载地址
            IntegrityError: 下载内容与声明的哈希不符
            TransientNetworkError: 重试耗尽
            FilesystemError: 缓存目录写入失败
        """
        if not record.url:
            raise DistributionDeniedError(
                f"{record.name} 没有可用的下载地址",
                context={"mod_id": str(record.mod_id)},
            )

        declared = record.hashes.declared()
        key = declared.get("sha1") or f"url:{record.url}"
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._materialize(record, declared))
            self._inflight[key] = task
        return await asyncio.shield(task)

    async def _materialize(
        self, record: VersionRecord, declared: Mapping[str, str]
    ) -> CachedArtifact:
        sha1 = declared.get("sha1")
        if sha1:
            cached = await self._lookup(sha1)
            if cached is not None:
                self.stats.hits += 1
                logger.debug(f"[缓存] '{record.filename}' 命中缓存")
                return cached

        return await retry_transient(
            lambda: self._download(record, declared),
            f"下载 '{record.filename}'",
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            limiter=self.limiter,
        )

    async def _lookup(self, sha1: str) -> Optional[CachedArtifact]:
        path = self.object_path(sha1)
        try:
            hashes = await FileVerifier.calc_hashes(path, ("sha1", "sha512"))
        except OSError as e:
            raise FilesystemError(f"读取缓存失败: {e}", path=path) from e
        if hashes is None:
            return None
        if hashes["sha1"] != sha1.lower():
            logger.warning(f"[缓存] 缓存文件已损坏，重新下载: {path}")
            try:
                os.remove(path)
            except OSError as e:
                raise FilesystemError(f"删除损坏的缓存失败: {e}", path=path) from e
            return None
        return CachedArtifact(
            path=path,
            sha1=hashes["sha1"],
            sha512=hashes["sha512"],
            size=FileVerifier.get_size(path),
        )

    async def _download(
        self, record: VersionRecord, declared: Mapping[str, str]
    ) -> CachedArtifact:
        """下载到临时文件，校验后原子移动到对象路径"""
        url = cast(str, record.url)
        try:
            os.makedirs(self.tmp_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.tmp_dir, suffix=".part")
            os.close(fd)
        except OSError as e:
            raise FilesystemError(f"无法创建临时文件: {e}", path=self.tmp_dir) from e

        logger.info(f"[开始] 下载: {record.filename}")
        hashes = HashSet()
        try:
            try:
                async with self.session.get(
                    url,
                    headers={"User-Agent": self.user_agent},
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status in RETRYABLE_STATUS:
                        raise TransientNetworkError(
                            f"HTTP {response.status}",
                            context={"url": url, "status": response.status},
                        )
                    if response.status != 200:
                        raise DownloadError(
                            f"下载 '{record.filename}' 失败 (状态码: {response.status})",
                            context={"url": url, "status": response.status},
                        )
                    async with aiofiles.open(tmp_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            await f.write(chunk)
                            hashes.update(chunk)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise TransientNetworkError(
                    f"{type(e).__name__}: {e}", context={"url": url}
                ) from e
            except OSError as e:
                raise FilesystemError(f"写入临时文件失败: {e}", path=tmp_path) from e

            digests = hashes.hexdigests()
            bad = FileVerifier.mismatches(digests, declared)
            if bad or (record.size and hashes.size != record.size):
                self.stats.failed += 1
                raise IntegrityError(
                    f"'{record.filename}' 校验失败",
                    context={
                        "url": url,
                        "expected": dict(declared),
                        "actual": {algo: digests[algo] for algo in bad},
                        "size": hashes.size,
                        "expected_size": record.size,
                    },
                )

            dest = self.object_path(digests["sha1"])
            try:
                os.makedirs(os.path.dirname(dest), exist_ok=True)
                os.replace(tmp_path, dest)
            except OSError as e:
                raise FilesystemError(f"写入缓存失败: {e}", path=dest) from e
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        self.stats.downloads += 1
        self.stats.bytes_downloaded += hashes.size
        logger.success(f"[完成] '{record.filename}' 下载完成")
        return CachedArtifact(
            path=dest,
            sha1=digests["sha1"],
            sha512=digests["sha512"],
            size=hashes.size,
        )

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats

    async def close(self):
        """取消未完成的下载并关闭 session"""
        pending = [task for task in self._inflight.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
