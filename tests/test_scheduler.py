"""调度器测试"""

import asyncio
import dataclasses

import pytest

from token_relay.core.types import ScrapeResult
from token_relay.infra.scheduler import RefreshScheduler, TaskScheduler


class Recorder:
    """可 await 的刷新函数，记录调用次数"""

    def __init__(self, result=None, error=None):
        self.calls = 0
        self.result = result if result is not None else ScrapeResult(success=True)
        self.error = error

    async def __call__(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class TestTaskScheduler:
    @pytest.mark.asyncio
    async def test_fire_does_not_block(self):
        scheduler = TaskScheduler()
        scrape = Recorder()

        scheduler.fire("startup", scrape, delay=0.05)
        assert scrape.calls == 0

        await scheduler.drain()
        assert scrape.calls == 1
        assert scheduler.stats()["startup"]["succeeded"] == 1

    @pytest.mark.asyncio
    async def test_failures_are_recorded(self):
        scheduler = TaskScheduler()

        scheduler.fire("boom", Recorder(error=RuntimeError("offline")))
        scheduler.fire("unsuccessful", Recorder(ScrapeResult(success=False, error="All silent methods failed")))
        await scheduler.drain()

        stats = scheduler.stats()
        assert stats["boom"]["failed"] == 1
        assert stats["boom"]["last_error"] == "offline"
        assert stats["unsuccessful"]["failed"] == 1
        assert stats["unsuccessful"]["last_error"] == "All silent methods failed"

    @pytest.mark.asyncio
    async def test_every_repeats(self):
        scheduler = TaskScheduler()
        scrape = Recorder()

        assert scheduler.every("refresh", 0.01, scrape)
        assert not scheduler.every("refresh", 0.01, scrape)
        await asyncio.sleep(0.06)
        await scheduler.stop()

        assert scrape.calls >= 2
        assert not scheduler.is_armed("refresh")

    @pytest.mark.asyncio
    async def test_stop_cancels_pending(self):
        scheduler = TaskScheduler()
        scrape = Recorder()

        scheduler.fire("later", scrape, delay=10)
        await scheduler.stop()

        assert scrape.calls == 0


class TestRefreshScheduler:
    @pytest.mark.asyncio
    async def test_startup_fires_and_arms(self, config):
        scrape = Recorder()
        scheduler = RefreshScheduler(config, scrape)

        scheduler.on_startup()
        await scheduler.tasks.drain()

        assert scrape.calls == 1
        assert scheduler.tasks.is_armed(RefreshScheduler.REFRESH_TASK)
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_installed_fires_and_arms(self, config):
        scrape = Recorder()
        scheduler = RefreshScheduler(config, scrape)

        scheduler.on_installed()
        await scheduler.tasks.drain()

        assert scheduler.tasks.stats()["installed"]["succeeded"] == 1
        assert scheduler.tasks.is_armed(RefreshScheduler.REFRESH_TASK)
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_armed_once(self, config):
        scheduler = RefreshScheduler(config, Recorder())

        assert scheduler.arm_interval()
        scheduler.on_startup()
        assert not scheduler.arm_interval()
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_interval_from_config(self, config):
        scrape = Recorder()
        fast = dataclasses.replace(config, refresh_interval_minutes=0.0005)
        scheduler = RefreshScheduler(fast, scrape)

        scheduler.arm_interval()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert scrape.calls >= 1

    @pytest.mark.asyncio
    async def test_navigation_to_target(self, config):
        scrape = Recorder()
        scheduler = RefreshScheduler(config, scrape)

        assert scheduler.on_navigation("https://labs.google/fx/tools/flow/project/1")
        assert scheduler.on_navigation("https://www.labs.google/")
        await scheduler.tasks.drain()

        assert scrape.calls == 2

    @pytest.mark.asyncio
    async def test_navigation_elsewhere_ignored(self, config):
        scrape = Recorder()
        scheduler = RefreshScheduler(config, scrape)

        assert not scheduler.on_navigation("https://example.com/")
        assert not scheduler.on_navigation("https://notlabs.google.evil.test/")
        assert not scheduler.on_navigation("not a url")
        await scheduler.tasks.drain()

        assert scrape.calls == 0
