"""
packsmith 下载层

包含内容寻址缓存与文件校验。
"""

from packsmith.download.cache import ArtifactCache, CachedArtifact, DownloadStats
from packsmith.download.verifier import FileVerifier, HashSet

__all__ = [
    "ArtifactCache",
    "CachedArtifact",
    "DownloadStats",
    "FileVerifier",
    "HashSet",
]
