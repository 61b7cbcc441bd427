"""The three exporters: manifests, archive layout, determinism and cleanup."""

import hashlib
import json
import zipfile
from pathlib import Path

import pytest

from packsmith.download import CachedArtifact
from packsmith.exceptions import ExportError, IntegrityError
from packsmith.models import (
    FileHashes,
    ModLoader,
    ModLoaderConfig,
    PackConfig,
    Platform,
    ResolvedDependency,
    ResolvedPack,
    SideRequirement,
    Sides,
)
from packsmith.packager import (
    CurseForgeZipExporter,
    ModrinthPackExporter,
    ServerDirExporter,
    load_overrides,
)

from tests.conftest import record
from tests.test_overrides import write

CF = Platform.CURSEFORGE
MR = Platform.MODRINTH
REQ = SideRequirement.REQUIRED
OPT = SideRequirement.OPTIONAL
UNS = SideRequirement.UNSUPPORTED

CONFIG = PackConfig(
    name="Example",
    version="1.0.0",
    minecraft_version="1.20.1",
    mod_loader=ModLoaderConfig(ModLoader.FABRIC, "0.15.7"),
    description="An example pack",
    author="someone",
)


class FakeCache:
    """Writes each mod's filename as its content."""

    def __init__(self, root: Path, fail: bool = False):
        self.root = root
        self.fail = fail
        self.requested = []

    async def materialize(self, rec):
        self.requested.append(rec.filename)
        if self.fail:
            raise IntegrityError(f"bad {rec.filename}")
        data = rec.filename.encode()
        sha1 = hashlib.sha1(data).hexdigest()
        path = self.root / sha1
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return CachedArtifact(
            path=str(path),
            sha1=sha1,
            sha512=hashlib.sha512(data).hexdigest(),
            size=len(data),
        )


def entry(key, platform, project, version, sides, direct=True, **kwargs):
    rec = record(platform, project, version, filename=f"{key}.jar", **kwargs)
    return ResolvedDependency(key, rec.mod_id, rec, sides, direct)


@pytest.fixture
def pack():
    return ResolvedPack(
        {
            e.key: e
            for e in [
                entry("cf-client", CF, 100, 200, Sides(REQ, REQ)),
                entry("cf-optional", CF, 101, 201, Sides(OPT, REQ)),
                entry("cf-server", CF, 102, 202, Sides(UNS, REQ)),
                entry("cf-lib", CF, 103, 203, Sides(REQ, REQ), direct=False),
                entry(
                    "mr-client",
                    MR,
                    "AAA",
                    "a1",
                    Sides(REQ, UNS),
                    hashes=FileHashes(sha1="11" * 20, sha512="22" * 64),
                    size=9,
                ),
                entry(
                    "mr-optional",
                    MR,
                    "BBB",
                    "b1",
                    Sides(OPT, UNS),
                    hashes=FileHashes(sha1="33" * 20, sha512="44" * 64),
                ),
            ]
        }
    )


@pytest.fixture
def source(tmp_path):
    src = tmp_path / "src"
    write(src, "overrides/config/shared.toml", "common")
    write(src, "overrides/config/only-common.toml", "common")
    write(src, "client-overrides/options.txt", "client")
    write(src, "server-overrides/config/shared.toml", "server")
    write(src, "server-overrides/server.properties", "motd=hi")
    return src


def exporter(cls, pack, source, tmp_path, include_optional=True, fail=False):
    cache = FakeCache(tmp_path / "cache", fail=fail)
    return cls(CONFIG, pack, load_overrides(source), cache, include_optional)


def read_zip(path):
    with zipfile.ZipFile(path) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


class TestCurseForgeZip:
    @pytest.mark.asyncio
    async def test_manifest_and_layout(self, pack, source, tmp_path):
        out = tmp_path / "out"
        path = await exporter(
            CurseForgeZipExporter, pack, source, tmp_path, include_optional=False
        ).export(out)

        assert path == out / "Example (1.0.0).zip"
        files = read_zip(path)
        manifest = json.loads(files["manifest.json"])
        assert manifest == {
            "minecraft": {
                "version": "1.20.1",
                "modLoaders": [{"id": "fabric-0.15.7", "primary": True}],
            },
            "manifestType": "minecraftModpack",
            "manifestVersion": 1,
            "name": "Example",
            "version": "1.0.0",
            "author": "someone",
            "files": [{"projectID": 100, "fileID": 200, "required": True}],
            "overrides": "overrides",
        }
        assert sorted(files) == [
            "manifest.json",
            "overrides/config/only-common.toml",
            "overrides/config/shared.toml",
            "overrides/mods/cf-lib.jar",
            "overrides/mods/mr-client.jar",
            "overrides/options.txt",
        ]
        assert files["overrides/config/shared.toml"] == b"common"

    @pytest.mark.asyncio
    async def test_include_optional(self, pack, source, tmp_path):
        path = await exporter(
            CurseForgeZipExporter, pack, source, tmp_path, include_optional=True
        ).export(tmp_path / "out")
        files = read_zip(path)
        manifest = json.loads(files["manifest.json"])

        assert [f["projectID"] for f in manifest["files"]] == [100, 101]
        assert "overrides/mods/mr-optional.jar" in files

    @pytest.mark.asyncio
    async def test_default_excludes_optional(self, pack, source, tmp_path):
        path = await exporter(
            CurseForgeZipExporter, pack, source, tmp_path, include_optional=False
        ).export(tmp_path / "out")
        files = read_zip(path)

        assert [f["projectID"] for f in json.loads(files["manifest.json"])["files"]] == [100]
        assert "overrides/mods/mr-optional.jar" not in files

    @pytest.mark.asyncio
    async def test_byte_identical(self, pack, source, tmp_path):
        first = await exporter(CurseForgeZipExporter, pack, source, tmp_path).export(
            tmp_path / "one"
        )
        second = await exporter(CurseForgeZipExporter, pack, source, tmp_path).export(
            tmp_path / "two"
        )

        assert first.read_bytes() == second.read_bytes()

    @pytest.mark.asyncio
    async def test_raw_mod_collision(self, pack, source, tmp_path):
        write(source, "overrides/mods/mr-client.jar", "raw")

        with pytest.raises(ExportError):
            await exporter(CurseForgeZipExporter, pack, source, tmp_path).export(
                tmp_path / "out"
            )

    @pytest.mark.asyncio
    async def test_failure_leaves_nothing(self, pack, source, tmp_path):
        out = tmp_path / "out"
        out.mkdir()

        with pytest.raises(IntegrityError):
            await exporter(
                CurseForgeZipExporter, pack, source, tmp_path, fail=True
            ).export(out)

        assert list(out.iterdir()) == []


class TestModrinthPack:
    @pytest.mark.asyncio
    async def test_index(self, pack, source, tmp_path):
        ex = exporter(ModrinthPackExporter, pack, source, tmp_path)
        path = await ex.export(tmp_path / "out")

        assert path.name == "Example (1.0.0).mrpack"
        files = read_zip(path)
        index = json.loads(files["modrinth.index.json"])
        assert index["formatVersion"] == 1
        assert index["game"] == "minecraft"
        assert index["versionId"] == "1.0.0"
        assert index["summary"] == "An example pack"
        assert index["dependencies"] == {"minecraft": "1.20.1", "fabric-loader": "0.15.7"}

        by_path = {f["path"]: f for f in index["files"]}
        assert sorted(by_path) == [
            "mods/cf-client.jar",
            "mods/cf-lib.jar",
            "mods/cf-optional.jar",
            "mods/cf-server.jar",
            "mods/mr-client.jar",
            "mods/mr-optional.jar",
        ]
        mr = by_path["mods/mr-client.jar"]
        assert mr["hashes"] == {"sha1": "11" * 20, "sha512": "22" * 64}
        assert mr["env"] == {"client": "required", "server": "unsupported"}
        assert mr["fileSize"] == 9
        cf = by_path["mods/cf-optional.jar"]
        assert cf["hashes"]["sha512"] == hashlib.sha512(b"cf-optional.jar").hexdigest()
        assert cf["env"] == {"client": "optional", "server": "required"}
        # Modrinth 文件已有完整哈希，不需要下载
        assert sorted(ex.cache.requested) == [
            "cf-client.jar",
            "cf-lib.jar",
            "cf-optional.jar",
            "cf-server.jar",
        ]

        assert files["overrides/config/shared.toml"] == b"common"
        assert files["server-overrides/config/shared.toml"] == b"server"
        assert files["client-overrides/options.txt"] == b"client"

    @pytest.mark.asyncio
    async def test_without_optional(self, pack, source, tmp_path):
        path = await exporter(
            ModrinthPackExporter, pack, source, tmp_path, include_optional=False
        ).export(tmp_path / "out")
        index = json.loads(read_zip(path)["modrinth.index.json"])
        by_path = {f["path"]: f for f in index["files"]}

        assert "mods/mr-optional.jar" not in by_path
        assert by_path["mods/cf-optional.jar"]["env"] == {
            "client": "unsupported",
            "server": "required",
        }


class TestServerDir:
    @pytest.mark.asyncio
    async def test_layout(self, pack, source, tmp_path):
        out = tmp_path / "server"
        await exporter(ServerDirExporter, pack, source, tmp_path).export(out)

        mods = sorted(p.name for p in (out / "mods").iterdir())
        assert mods == ["cf-client.jar", "cf-lib.jar", "cf-optional.jar", "cf-server.jar"]
        assert (out / "mods" / "cf-lib.jar").read_text() == "cf-lib.jar"
        assert (out / "config" / "shared.toml").read_text() == "server"
        assert (out / "config" / "only-common.toml").read_text() == "common"
        assert (out / "server.properties").exists()
        assert not (out / "options.txt").exists()

        info = json.loads((out / "modloader.json").read_text())
        assert info["minecraft_version"] == "1.20.1"
        assert info["loader"] == "fabric"
        assert info["loader_version"] == "0.15.7"
        assert info["installer_url"].endswith("/server/jar")

    @pytest.mark.asyncio
    async def test_replaces_previous_output(self, pack, source, tmp_path):
        out = tmp_path / "server"
        write(out, "stale.txt", "old")

        await exporter(ServerDirExporter, pack, source, tmp_path).export(out)

        assert not (out / "stale.txt").exists()
        assert [p.name for p in tmp_path.iterdir() if p.name.startswith(".server")] == []

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_output(self, pack, source, tmp_path):
        out = tmp_path / "server"
        write(out, "stale.txt", "old")

        with pytest.raises(IntegrityError):
            await exporter(ServerDirExporter, pack, source, tmp_path, fail=True).export(out)

        assert (out / "stale.txt").read_text() == "old"
