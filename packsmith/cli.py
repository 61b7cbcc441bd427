"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import click
import toml
import yaml
from loguru import logger

from packsmith import __version__
from packsmith.config_editor import ConfigEditor
from packsmith.exceptions import ConfigurationError, PacksmithError
from packsmith.logger import setup_logger
from packsmith.models import PackConfig, Platform
from packsmith.orchestrator import BuildResult, ExportOptions, PacksmithOrchestrator
from packsmith.settings import Settings

CONFIG_NAMES = ("config.toml", "config.json", "config.yaml", "config.yml")


def load_config(source_dir: Path) -> Dict[str, Any]:
    """读取源目录中的整合包配置"""
    for name in CONFIG_NAMES:
        path = source_dir / name
        if path.exists():
            break
    else:
        raise ConfigurationError(
            f"源目录中没有配置文件: {source_dir}/config.toml",
            context={"source": str(source_dir)},
        )

    suffix = path.suffix.lower()
    try:
        if suffix == ".toml":
            return toml.load(path)
        elif suffix == ".json":
            return json.loads(path.read_text(encoding="utf-8"))
        else:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
    except (
        toml.TomlDecodeError,
        json.JSONDecodeError,
        yaml.YAMLError,
        UnicodeDecodeError,
    ) as e:
        raise ConfigurationError(
            f"配置文件格式错误 {path}: {e}", context={"path": str(path)}
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"无法读取配置文件 {path}: {e}", context={"path": str(path)}
        ) from e


async def run_async(
    source_dir: Path,
    options: ExportOptions,
    cache_dir: Optional[Path] = None,
    max_concurrent: Optional[int] = None,
) -> BuildResult:
    """异步运行"""
    settings = Settings.load().override(cache_dir=cache_dir, max_concurrent=max_concurrent)
    config = PackConfig.from_dict(load_config(source_dir))
    logger.info(f"  Minecraft 版本: {config.minecraft_version}")
    logger.info(f"  模组加载器: {config.mod_loader.id.value}")
    logger.info(f"  模组数量: {len(config.mods)}")

    orchestrator = PacksmithOrchestrator(config, source_dir, settings)
    return await orchestrator.run(options)


@click.command()
@click.argument(
    "source", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--curseforge-zip",
    type=click.Path(file_okay=False, path_type=Path),
    help="在该目录下生成 CurseForge 格式的客户端整合包",
)
@click.option(
    "--cf-zip-include-optional",
    is_flag=True,
    help="CurseForge 整合包中包含客户端可选模组",
)
@click.option(
    "--modrinth-pack",
    type=click.Path(file_okay=False, path_type=Path),
    help="在该目录下生成 Modrinth 整合包 (.mrpack)",
)
@click.option(
    "--no-mrpack-include-optional",
    is_flag=True,
    help="Modrinth 整合包中不包含可选模组",
)
@click.option(
    "--server-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="在该路径生成服务端目录",
)
@click.option(
    "--no-server-include-optional",
    is_flag=True,
    help="服务端目录中不包含可选模组",
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="模组文件缓存目录",
)
@click.option("--max-concurrent", type=click.IntRange(min=1), help="最大并发请求数")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="同时把调试日志写入该文件",
)
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
def main(
    source: Path,
    curseforge_zip: Optional[Path],
    cf_zip_include_optional: bool,
    modrinth_pack: Optional[Path],
    no_mrpack_include_optional: bool,
    server_dir: Optional[Path],
    no_server_include_optional: bool,
    cache_dir: Optional[Path],
    max_concurrent: Optional[int],
    log_file: Optional[Path],
    debug: bool,
):
    """packsmith - Minecraft 整合包生成工具

    读取 SOURCE 目录中的 config.toml 与覆盖文件，解析依赖并生成整合包。
    不指定任何输出时只做校验。
    """
    setup_logger(level="DEBUG" if debug else None, log_file=log_file)

    options = ExportOptions(
        curseforge_zip=curseforge_zip,
        cf_zip_include_optional=cf_zip_include_optional,
        modrinth_pack=modrinth_pack,
        mrpack_include_optional=not no_mrpack_include_optional,
        server_dir=server_dir,
        server_include_optional=not no_server_include_optional,
    )
    try:
        asyncio.run(run_async(source, options, cache_dir, max_concurrent))
    except PacksmithError as e:
        logger.error(f"构建失败: {e}")
        raise click.ClickException(str(e))
    except Exception as e:
        logger.exception(f"运行时错误: {e}")
        raise click.ClickException(f"运行时错误: {e}")
    finally:
        logger.complete()


def parse_project_ids(platform: Platform, values: Sequence[str]) -> List[Union[int, str]]:
    """CurseForge 项目 ID 为整数，Modrinth 为 ID 或 slug"""
    if platform is Platform.MODRINTH:
        return list(values)
    try:
        return [int(v) for v in values]
    except ValueError:
        raise ConfigurationError(
            f"CurseForge 项目 ID 必须为整数: {', '.join(values)}"
        ) from None


async def add_mods_async(
    source_dir: Path, platform: Platform, values: Sequence[str]
) -> bool:
    """异步添加模组"""
    project_ids = parse_project_ids(platform, values)
    settings = Settings.load()
    editor = ConfigEditor(source_dir)
    orchestrator = PacksmithOrchestrator(editor.config, source_dir, settings)
    return await orchestrator.add_mods(editor, platform, project_ids)


@click.command()
@click.argument(
    "source", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.argument("platform", type=click.Choice([p.value for p in Platform]))
@click.argument("project_ids", nargs=-1, required=True)
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
def add_mods(source: Path, platform: str, project_ids: Tuple[str, ...], debug: bool):
    """向整合包添加模组

    查询 PROJECT_IDS 中每个项目与整合包游戏版本和加载器兼容的最新版本，
    写入 SOURCE/config.toml。已存在的模组只更新版本，原文件备份为 config.toml.bak。
    """
    setup_logger(level="DEBUG" if debug else None)
    try:
        asyncio.run(add_mods_async(source, Platform(platform), project_ids))
    except PacksmithError as e:
        logger.error(f"添加失败: {e}")
        raise click.ClickException(str(e))
    except Exception as e:
        logger.exception(f"运行时错误: {e}")
        raise click.ClickException(f"运行时错误: {e}")
    finally:
        logger.complete()


if __name__ == "__main__":
    main()
