"""
辅助上下文管理

管理一个隐藏的、可执行 DOM 的上下文的生命周期:

    ABSENT ──ensure()──▶ CREATING ──▶ READY
       ▲                                │
       └──────────── teardown() ────────┘

并发的 ensure() 调用共享同一个创建任务，不会重复创建；
任何时刻最多只持有一个上下文。
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class ScrapeReply:
    """辅助上下文对抓取命令的回复"""
    token: Optional[str] = None
    not_logged_in: bool = False
    error: Optional[str] = None


class AuxiliaryContext(ABC):
    """隐藏执行上下文的接口"""

    @abstractmethod
    async def scrape(self) -> ScrapeReply:
        """加载目标页面并查找令牌"""

    @abstractmethod
    async def scrape_frame(self) -> ScrapeReply:
        """通过嵌入框架加载目标页面并查找令牌"""

    @abstractmethod
    async def check_login(self) -> bool:
        """检查当前会话是否已登录"""

    @abstractmethod
    async def close(self) -> None:
        """释放上下文"""


class AuxiliaryState(str, Enum):
    ABSENT = "absent"
    CREATING = "creating"
    READY = "ready"


ContextFactory = Callable[[], Awaitable[AuxiliaryContext]]


class AuxiliaryContextManager:
    """
    辅助上下文管理器

    使用示例:
        manager = AuxiliaryContextManager(factory)
        context = await manager.ensure()
        reply = await context.scrape()
        await manager.teardown()
    """

    def __init__(self, factory: ContextFactory):
        self._factory = factory
        self._state = AuxiliaryState.ABSENT
        self._context: Optional[AuxiliaryContext] = None
        self._creating: Optional[asyncio.Future] = None
        self.created_count = 0

    @property
    def state(self) -> AuxiliaryState:
        return self._state

    async def ensure(self) -> AuxiliaryContext:
        """确保上下文存在；创建中的调用方等待同一个创建任务"""
        if self._state == AuxiliaryState.READY and self._context is not None:
            return self._context

        if self._creating is None:
            self._state = AuxiliaryState.CREATING
            self._creating = asyncio.ensure_future(self._create())

        # shield: 单个等待方超时取消时，不影响共享的创建任务
        return await asyncio.shield(self._creating)

    async def _create(self) -> AuxiliaryContext:
        logger.info("[AuxiliaryContext] 创建隐藏上下文")
        try:
            context = await self._factory()
        except BaseException:
            self._state = AuxiliaryState.ABSENT
            self._creating = None
            raise

        self._context = context
        self._state = AuxiliaryState.READY
        self._creating = None
        self.created_count += 1
        return context

    async def teardown(self) -> None:
        """任何状态都回到 ABSENT；已经是 ABSENT 时什么也不做"""
        creating = self._creating
        if creating is not None:
            try:
                await creating
            except Exception as e:
                logger.debug(f"[AuxiliaryContext] 创建失败，无需关闭: {e}")

        context = self._context
        self._context = None
        self._creating = None
        self._state = AuxiliaryState.ABSENT

        if context is None:
            return

        try:
            await context.close()
            logger.info("[AuxiliaryContext] 已关闭隐藏上下文")
        except Exception as e:
            logger.debug(f"[AuxiliaryContext] 关闭时出错（忽略）: {e}")
