"""
文件校验器

计算文件哈希、对比平台声明的哈希。
"""

import hashlib
import os
from typing import Dict, Iterable, Mapping, Optional

import aiofiles

CHUNK_SIZE = 64 * 1024
ALGORITHMS = ("sha1", "sha512", "md5")


class HashSet:
    """同时计算多个哈希，边下载边更新"""

    def __init__(self, algorithms: Iterable[str] = ALGORITHMS):
        self._hashers = {algo: hashlib.new(algo) for algo in algorithms}
        self.size = 0

    def update(self, data: bytes):
        self.size += len(data)
        for hasher in self._hashers.values():
            hasher.update(data)

    def hexdigests(self) -> Dict[str, str]:
        return {algo: h.hexdigest() for algo, h in self._hashers.items()}


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_hashes(
        file_path: str, algorithms: Iterable[str] = ALGORITHMS
    ) -> Optional[Dict[str, str]]:
        """
        计算文件的哈希值

        Args:
            file_path: 文件路径
            algorithms: 要计算的算法

        Returns:
            算法 -> 十六进制摘要，文件不存在时为 None
        """
        if not os.path.exists(file_path):
            return None

        hashes = HashSet(algorithms)
        async with aiofiles.open(file_path, "rb") as f:
            while True:
                data = await f.read(CHUNK_SIZE)
                if not data:
                    break
                hashes.update(data)
        return hashes.hexdigests()

    @staticmethod
    def mismatches(
        actual: Mapping[str, str], expected: Mapping[str, str]
    ) -> Dict[str, str]:
        """
        对比哈希

        Returns:
            不匹配的算法 -> 声明值；只对比两边都有的算法
        """
        return {
            algo: value
            for algo, value in expected.items()
            if algo in actual and actual[algo] != value.lower()
        }

    @staticmethod
    def get_size(file_path: str) -> int:
        """获取文件大小"""
        try:
            return os.path.getsize(file_path)
        except OSError:
            return 0
