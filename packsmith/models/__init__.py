"""
packsmith 数据模型包

包含配置模型、平台 API 模型和解析结果模型。
"""

from packsmith.models.api import (
    Platform,
    SideRequirement,
    Side,
    Sides,
    SideHint,
    CurseForgeModId,
    ModrinthModId,
    PlatformModId,
    ProjectKey,
    make_mod_id,
    DependencyKind,
    DependencyId,
    DependencyRef,
    FileHashes,
    ProjectInfo,
    VersionRecord,
)
from packsmith.models.config import (
    ModLoader,
    ModLoaderConfig,
    ModReference,
    PackConfig,
)
from packsmith.models.pack import ResolvedDependency, ResolvedPack

__all__ = [
    # 平台模型
    "Platform",
    "SideRequirement",
    "Side",
    "Sides",
    "SideHint",
    "CurseForgeModId",
    "ModrinthModId",
    "PlatformModId",
    "ProjectKey",
    "make_mod_id",
    "DependencyKind",
    "DependencyId",
    "DependencyRef",
    "FileHashes",
    "ProjectInfo",
    "VersionRecord",
    # 配置模型
    "ModLoader",
    "ModLoaderConfig",
    "ModReference",
    "PackConfig",
    # 解析结果
    "ResolvedDependency",
    "ResolvedPack",
]
