"""
packsmith 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
所有致命错误都会中止整个运行，不会留下半成品。
"""

from typing import Any, Dict, Optional

import aiohttp


class PacksmithError(Exception):
    """packsmith 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigurationError(PacksmithError):
    """配置缺失或格式错误，在任何网络访问之前抛出"""

    def _get_default_code(self) -> str:
        return "E100"


class APIError(PacksmithError):
    """平台 API 返回了不可重试的错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        if response is not None:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    def _get_default_code(self) -> str:
        return "E200"


class NotFoundError(APIError):
    """平台上不存在该项目或版本"""

    def _get_default_code(self) -> str:
        return "E404"


class ResolutionError(PacksmithError):
    """依赖解析失败"""

    def _get_default_code(self) -> str:
        return "E210"


class DependencyUnresolvable(ResolutionError):
    """必需依赖无法获取"""

    def __init__(
        self,
        message: str,
        requester: str,
        dependency: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.requester = requester
        self.dependency = dependency
        self.context.setdefault("requester", requester)
        self.context.setdefault("dependency", dependency)

    def _get_default_code(self) -> str:
        return "E211"


class IncompatibleModsError(DependencyUnresolvable):
    """最终集合中存在声明为不兼容的两个模组"""

    def _get_default_code(self) -> str:
        return "E212"


class GameVersionMismatchError(ResolutionError):
    """模组版本不支持整合包的游戏版本"""

    def _get_default_code(self) -> str:
        return "E213"


class DistributionDeniedError(ResolutionError):
    """平台禁止第三方分发该文件"""

    def _get_default_code(self) -> str:
        return "E214"


class DownloadError(PacksmithError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class TransientNetworkError(DownloadError):
    """超时或服务器错误，重试次数耗尽"""

    def _get_default_code(self) -> str:
        return "E301"


class IntegrityError(DownloadError):
    """下载内容的哈希与平台声明不符"""

    def _get_default_code(self) -> str:
        return "E302"


class FilesystemError(DownloadError):
    """缓存或输出写入失败"""

    def __init__(
        self,
        message: str,
        path: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.path = path
        self.context.setdefault("path", path)

    def _get_default_code(self) -> str:
        return "E303"


class ExportError(PacksmithError):
    """导出相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


__all__ = [
    # 基础异常
    "PacksmithError",
    # 配置异常
    "ConfigurationError",
    # API 异常
    "APIError",
    "NotFoundError",
    # 解析异常
    "ResolutionError",
    "DependencyUnresolvable",
    "IncompatibleModsError",
    "GameVersionMismatchError",
    "DistributionDeniedError",
    # 下载异常
    "DownloadError",
    "TransientNetworkError",
    "IntegrityError",
    "FilesystemError",
    # 导出异常
    "ExportError",
]
