"""
packsmith 服务层

包含业务逻辑服务：平台 API 客户端、依赖解析、加载器版本查询。
"""

from packsmith.services.api_client import PlatformClient
from packsmith.services.curseforge import CurseForgeClient
from packsmith.services.modrinth import ModrinthClient
from packsmith.services.dependency_resolver import DependencyResolver
from packsmith.services.loader_versions import LoaderVersionClient, installer_url

__all__ = [
    "PlatformClient",
    "CurseForgeClient",
    "ModrinthClient",
    "DependencyResolver",
    "LoaderVersionClient",
    "installer_url",
]
