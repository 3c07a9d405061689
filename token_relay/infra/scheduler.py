"""
调度器 - 触发后台刷新

核心能力：
1. 即发即忘 - 触发后立即返回，不阻塞启动
2. 结果记录 - 每个任务名的成功/失败次数与最近错误，失败不会被悄悄丢掉
3. 周期任务 - 固定间隔重复触发

触发时机：
- 进程启动后 (startup_delay)
- 首次安装后 (install_delay)，同时布置周期刷新
- 周期刷新 (refresh_interval_minutes)
- 导航到目标站点后 (navigation_delay)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from urllib.parse import urlparse

from ..core.config import RelayConfig

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


@dataclass
class TaskStats:
    """单个任务名的执行统计"""
    name: str
    fired: int = 0
    succeeded: int = 0
    failed: int = 0
    last_error: Optional[str] = None
    last_finished_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "fired": self.fired,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "last_error": self.last_error,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
        }


class TaskScheduler:
    """
    即发即忘任务调度

    使用示例:
        scheduler = TaskScheduler()
        scheduler.fire("startup", orchestrator.run, delay=5)
        scheduler.every("refresh", 1800, orchestrator.run)
        print(scheduler.stats())
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()
        self._stats: Dict[str, TaskStats] = {}
        self._periodic: Dict[str, asyncio.Task] = {}

    def fire(self, name: str, factory: TaskFactory, delay: float = 0.0) -> asyncio.Task:
        """延迟 delay 秒后运行 factory()，调用方不等待结果"""
        stats = self._stats.setdefault(name, TaskStats(name))
        stats.fired += 1

        task = asyncio.get_running_loop().create_task(self._run(stats, factory, delay))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, stats: TaskStats, factory: TaskFactory, delay: float):
        if delay > 0:
            await asyncio.sleep(delay)

        try:
            result = await factory()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record(stats, False, str(e) or type(e).__name__)
            logger.error(f"[Scheduler] {stats.name} 失败: {e}")
            return

        # 返回 success=False 的结果同样记为失败
        if getattr(result, "success", True) is False:
            self._record(stats, False, getattr(result, "error", None) or "unsuccessful")
            logger.warning(f"[Scheduler] {stats.name} 未成功: {stats.last_error}")
        else:
            self._record(stats, True, None)

    def _record(self, stats: TaskStats, success: bool, error: Optional[str]):
        if success:
            stats.succeeded += 1
        else:
            stats.failed += 1
            stats.last_error = error
        stats.last_finished_at = datetime.now()

    def every(self, name: str, interval: float, factory: TaskFactory) -> bool:
        """布置周期任务；同名任务已存在时返回 False"""
        if name in self._periodic and not self._periodic[name].done():
            return False

        async def loop():
            while True:
                await asyncio.sleep(interval)
                self.fire(name, factory)

        self._periodic[name] = asyncio.get_running_loop().create_task(loop())
        logger.info(f"[Scheduler] 周期任务 {name}: 每 {interval:.0f}s")
        return True

    def is_armed(self, name: str) -> bool:
        task = self._periodic.get(name)
        return task is not None and not task.done()

    async def drain(self) -> None:
        """等待所有已触发任务完成"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        """取消周期任务与未完成的任务"""
        pending = list(self._periodic.values()) + list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._periodic.clear()
        self._tasks.clear()

    def stats(self) -> Dict[str, dict]:
        return {name: s.to_dict() for name, s in self._stats.items()}


class RefreshScheduler:
    """把各触发时机接到 scrape_now 上"""

    REFRESH_TASK = "refresh"

    def __init__(self, config: RelayConfig, scrape: TaskFactory, tasks: Optional[TaskScheduler] = None):
        self.config = config
        self.scrape = scrape
        self.tasks = tasks or TaskScheduler()

    def on_startup(self) -> None:
        logger.info("[Scheduler] 进程启动，稍后静默刷新")
        # 进程内定时器不会跨重启保留，每次启动重新布置
        self.arm_interval()
        self.tasks.fire("startup", self.scrape, self.config.startup_delay)

    def on_installed(self) -> None:
        logger.info("[Scheduler] 首次安装，布置周期刷新")
        self.arm_interval()
        self.tasks.fire("installed", self.scrape, self.config.install_delay)

    def arm_interval(self) -> bool:
        return self.tasks.every(self.REFRESH_TASK, self.config.refresh_interval_seconds, self.scrape)

    def on_navigation(self, url: str) -> bool:
        """导航到目标站点时触发；返回是否已触发"""
        host = urlparse(url).hostname or ""
        target = self.config.target_host
        if not target or not (host == target or host.endswith("." + target)):
            return False

        logger.info(f"[Scheduler] 访问了目标站点，稍后静默刷新: {url}")
        self.tasks.fire("navigation", self.scrape, self.config.navigation_delay)
        return True

    async def stop(self) -> None:
        await self.tasks.stop()
