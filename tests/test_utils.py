"""Retry and thread offloading helpers."""

import asyncio
import time

import pytest

from packsmith.exceptions import NotFoundError, TransientNetworkError
from packsmith.utils import retry_transient, run_blocking, safe_filename


@pytest.mark.asyncio
async def test_retry_transient_gives_up_after_max_retries():
    attempts = []

    async def flaky():
        attempts.append(1)
        raise TransientNetworkError("HTTP 503")

    with pytest.raises(TransientNetworkError) as info:
        await retry_transient(flaky, "op", max_retries=2, retry_delay=0)

    assert len(attempts) == 3
    assert info.value.context["attempts"] == 3


@pytest.mark.asyncio
async def test_retry_transient_does_not_retry_other_errors():
    attempts = []

    async def missing():
        attempts.append(1)
        raise NotFoundError("gone")

    with pytest.raises(NotFoundError):
        await retry_transient(missing, "op", max_retries=3, retry_delay=0)

    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_run_blocking_returns_result():
    assert await run_blocking(sum, [1, 2, 3]) == 6


@pytest.mark.asyncio
async def test_run_blocking_waits_for_thread_when_cancelled(tmp_path):
    marker = tmp_path / "done"

    def slow():
        time.sleep(0.2)
        marker.write_text("ok")

    task = asyncio.ensure_future(run_blocking(slow))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert marker.read_text() == "ok"


@pytest.mark.parametrize(
    "name, expected",
    [("mod.jar", "mod.jar"), ("../../etc/mod.jar", "mod.jar"), ("a\\b.jar", "b.jar")],
)
def test_safe_filename(name, expected):
    assert safe_filename(name) == expected


@pytest.mark.parametrize("name", ["", "..", "mods/"])
def test_safe_filename_rejects_empty(name):
    with pytest.raises(ValueError):
        safe_filename(name)
