"""Shared fixtures: in-memory platform clients and record builders."""

import asyncio
from typing import Dict, Iterable, Optional, Tuple, Union

import pytest

from packsmith.exceptions import NotFoundError
from packsmith.models import (
    DependencyKind,
    DependencyRef,
    FileHashes,
    ModLoader,
    Platform,
    PlatformModId,
    ProjectInfo,
    SideHint,
    VersionRecord,
    make_mod_id,
)
from packsmith.services import PlatformClient

GAME_VERSION = "1.20.1"


def dep(
    platform: Platform,
    project_id: Union[int, str, None],
    kind: DependencyKind = DependencyKind.REQUIRED,
    version_id: Union[int, str, None] = None,
) -> DependencyRef:
    return DependencyRef(platform, kind, project_id=project_id, version_id=version_id)


def record(
    platform: Platform,
    project_id: Union[int, str],
    version_id: Union[int, str],
    dependencies: Iterable[DependencyRef] = (),
    side_hint: Optional[SideHint] = None,
    game_versions: Iterable[str] = (GAME_VERSION,),
    filename: Optional[str] = None,
    url: Optional[str] = "https://example.invalid/file.jar",
    hashes: Optional[FileHashes] = None,
    size: int = 0,
    distribution_allowed: bool = True,
) -> VersionRecord:
    return VersionRecord(
        mod_id=make_mod_id(platform, project_id, version_id),
        name=f"Mod {project_id}",
        filename=filename or f"{project_id}-{version_id}.jar",
        url=url,
        size=size,
        hashes=hashes or FileHashes(),
        dependencies=list(dependencies),
        game_versions=list(game_versions),
        side_hint=side_hint or SideHint(),
        distribution_allowed=distribution_allowed,
    )


class FakeClient(PlatformClient):
    """PlatformClient backed by dictionaries instead of HTTP."""

    def __init__(
        self,
        platform: Platform,
        records: Iterable[VersionRecord] = (),
        latest: Optional[Dict[Union[int, str], VersionRecord]] = None,
        delays: Optional[Dict[Union[int, str], float]] = None,
    ):
        super().__init__()
        self.platform = platform
        self.records: Dict[Tuple, VersionRecord] = {}
        self.latest: Dict[Union[int, str], VersionRecord] = dict(latest or {})
        for rec in records:
            self.add(rec)
        self.delays = delays or {}
        self.calls = []

    def add(self, rec: VersionRecord, latest: bool = True):
        self.records[(rec.mod_id.project_id, rec.mod_id.version_id)] = rec
        if latest:
            self.latest.setdefault(rec.mod_id.project_id, rec)

    async def _pause(self, project_id):
        await asyncio.sleep(self.delays.get(project_id, 0))

    async def _load_project(self, project_id) -> ProjectInfo:
        return ProjectInfo(id=project_id, name=str(project_id), slug=None)

    async def fetch_mod_version(self, mod_id: PlatformModId) -> VersionRecord:
        self.calls.append(("version", mod_id.project_id, mod_id.version_id))
        await self._pause(mod_id.project_id)
        rec = self.records.get((mod_id.project_id, mod_id.version_id))
        if rec is None:
            raise NotFoundError(f"missing {mod_id}")
        return rec

    async def fetch_version_only(self, version_id) -> VersionRecord:
        self.calls.append(("version_only", version_id))
        for (_, vid), rec in sorted(self.records.items(), key=lambda kv: str(kv[0])):
            if vid == version_id:
                return rec
        raise NotFoundError(f"missing version {version_id}")

    async def fetch_latest_version(
        self, project_id, game_version: str, loader: ModLoader
    ) -> VersionRecord:
        self.calls.append(("latest", project_id))
        await self._pause(project_id)
        rec = self.latest.get(project_id)
        if rec is None:
            raise NotFoundError(f"missing project {project_id}")
        return rec


@pytest.fixture
def modrinth():
    return FakeClient(Platform.MODRINTH)


@pytest.fixture
def curseforge():
    return FakeClient(Platform.CURSEFORGE)


@pytest.fixture
def clients(modrinth, curseforge):
    return {Platform.MODRINTH: modrinth, Platform.CURSEFORGE: curseforge}
