"""Mod loader version lookup and installer URLs."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from packsmith.models import ModLoader, ModLoaderConfig
from packsmith.services import LoaderVersionClient, installer_url
from packsmith.services import loader_versions
from packsmith.services.loader_versions import neoforge_prefix


def test_installer_urls():
    assert installer_url(ModLoaderConfig(ModLoader.FORGE, "47.2.0"), "1.20.1") == (
        "https://maven.minecraftforge.net/net/minecraftforge/forge/"
        "1.20.1-47.2.0/forge-1.20.1-47.2.0-installer.jar"
    )
    assert installer_url(ModLoaderConfig(ModLoader.NEOFORGE, "20.4.80"), "1.20.4").endswith(
        "neoforge/20.4.80/neoforge-20.4.80-installer.jar"
    )
    assert "/versions/loader/1.20.1/0.15.7/" in installer_url(
        ModLoaderConfig(ModLoader.FABRIC, "0.15.7"), "1.20.1"
    )


def test_neoforge_prefix():
    assert neoforge_prefix("1.20.4") == "20.4."
    assert neoforge_prefix("1.21") == "21.0."


@pytest_asyncio.fixture
async def meta(monkeypatch):
    async def fabric(request):
        return web.json_response([{"loader": {"version": "0.16.0"}}, {"loader": {"version": "0.15.0"}}])

    async def forge(request):
        return web.json_response({"promos": {"1.20.1-latest": "47.3.0", "1.20.1-recommended": "47.2.0"}})

    async def neoforge(request):
        return web.json_response({"versions": ["20.4.1", "20.4.80", "21.0.1"]})

    app = web.Application()
    app.router.add_get("/fabric/versions/loader/{mc}", fabric)
    app.router.add_get("/forge.json", forge)
    app.router.add_get("/neoforge", neoforge)
    srv = TestServer(app)
    await srv.start_server()
    monkeypatch.setattr(loader_versions, "FABRIC_META", str(srv.make_url("/fabric")))
    monkeypatch.setattr(loader_versions, "FORGE_PROMOTIONS", str(srv.make_url("/forge.json")))
    monkeypatch.setattr(loader_versions, "NEOFORGE_VERSIONS", str(srv.make_url("/neoforge")))
    yield srv
    await srv.close()


@pytest.mark.asyncio
async def test_latest_versions(meta):
    client = LoaderVersionClient(retry_delay=0)
    try:
        assert await client.latest_version(ModLoader.FABRIC, "1.20.1") == "0.16.0"
        assert await client.latest_version(ModLoader.FORGE, "1.20.1") == "47.2.0"
        assert await client.latest_version(ModLoader.NEOFORGE, "1.20.4") == "20.4.80"
        assert await client.latest_version(ModLoader.FORGE, "1.7.10") is None
    finally:
        await client.close()
