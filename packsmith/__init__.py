"""
packsmith - Minecraft 整合包生成工具

从一个包含 config.toml 与覆盖文件的源目录，解析 CurseForge 与 Modrinth 模组的
依赖，生成 CurseForge 整合包、Modrinth 整合包以及服务端目录。
"""

__version__ = "0.1.0"
