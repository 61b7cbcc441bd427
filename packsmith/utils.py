import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

from packsmith.exceptions import TransientNetworkError

T = TypeVar("T")

RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


async def retry_transient(
    operation: Callable[[], Awaitable[T]],
    description: str,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    limiter: Optional[asyncio.Semaphore] = None,
) -> T:
    """
    执行一次网络操作，瞬时错误时按指数退避重试

    operation 需要把可重试的失败抛成 TransientNetworkError；其余异常原样传播，
    不做重试。退避等待期间不占用并发名额。
    """
    for attempt in range(max_retries + 1):
        try:
            if limiter is None:
                return await operation()
            async with limiter:
                return await operation()
        except TransientNetworkError as e:
            if attempt >= max_retries:
                logger.error(f"[错误] {description} 最终失败: {e.message}")
                raise TransientNetworkError(
                    f"{description} 在 {max_retries + 1} 次尝试后仍然失败: {e.message}",
                    context={**e.context, "attempts": max_retries + 1},
                ) from e
            delay = retry_delay * (2**attempt)
            logger.warning(
                f"[重试] {description} 失败 (第 {attempt + 1} 次): {e.message}. "
                f"{delay:.1f}s 后重试..."
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def safe_filename(filename: str) -> str:
    """平台返回的文件名只取最后一段，防止路径穿越"""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    if name in ("", ".", ".."):
        raise ValueError(f"无效的文件名: {filename!r}")
    return name


async def run_blocking(func: Callable[..., T], *args) -> T:
    """
    在线程中执行阻塞的文件操作

    调用方被取消时仍等待线程结束，之后才传播取消，
    这样临时文件的清理不会与仍在写入的线程竞争。
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.gather(task, return_exceptions=True)
        raise
