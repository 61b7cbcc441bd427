"""
packsmith 打包层

包含覆盖文件合并与三种输出的导出器。
"""

from packsmith.packager.base import PackExporter, write_zip
from packsmith.packager.curseforge import CurseForgeZipExporter
from packsmith.packager.mrpack import ModrinthPackExporter
from packsmith.packager.overrides import OverrideSet, OverrideTree, load_overrides
from packsmith.packager.server import ServerDirExporter

__all__ = [
    "PackExporter",
    "write_zip",
    "CurseForgeZipExporter",
    "ModrinthPackExporter",
    "ServerDirExporter",
    "OverrideSet",
    "OverrideTree",
    "load_overrides",
]
