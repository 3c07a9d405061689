"""编排器 - 按固定优先级运行提取策略

StrategyOrchestrator 是提取流程的统一入口，它会：
1. 按顺序逐个运行策略，每个策略有独立的时限
2. 遇到 NotAuthenticated 时调用一次身份辅助重试
3. 第一个 Found 即停止，并交给持久化层
4. 全部失败时回退到读取故障转移（缓存结果）
5. 无论结果如何都释放辅助上下文
"""

import asyncio
import logging
from typing import Sequence

from ..core.errors import TerminalFailure
from ..core.types import (
    CredentialRecord,
    CredentialSource,
    ExtractionOutcome,
    OutcomeKind,
    ScrapeResult,
    mask_token,
)
from ..extraction.strategies import (
    STRATEGY_CHAIN,
    ScrapeContext,
    Strategy,
    attempt_identity_assisted_retry,
)
from ..storage.failover import ReadPathFailover
from ..storage.persistence import DualBackendPersistence

logger = logging.getLogger(__name__)


class StrategyOrchestrator:
    """策略编排器"""

    def __init__(
        self,
        context: ScrapeContext,
        persistence: DualBackendPersistence,
        failover: ReadPathFailover,
        chain: Sequence[Strategy] = STRATEGY_CHAIN,
        identity_retry: Strategy = attempt_identity_assisted_retry,
    ):
        self.context = context
        self.persistence = persistence
        self.failover = failover
        self.chain = tuple(chain)
        self.identity_retry = identity_retry
        self.timeouts = context.config.strategy_timeouts

        # 同一时刻只有一次运行，策略之间从不并发
        self._run_lock = asyncio.Lock()

    async def run(self) -> ScrapeResult:
        """执行一次完整的提取流程"""
        async with self._run_lock:
            attempts = []
            try:
                return await self._run_chain(attempts)
            finally:
                await self.context.auxiliary.teardown()

    async def check_login(self) -> bool:
        """在辅助上下文中检查登录状态（与提取运行互斥）"""
        async with self._run_lock:
            try:
                context = await self.context.auxiliary.ensure()
                return await asyncio.wait_for(
                    context.check_login(), timeout=self.context.config.auxiliary_timeout
                )
            finally:
                await self.context.auxiliary.teardown()

    async def _run_chain(self, attempts: list) -> ScrapeResult:
        logger.info("[Orchestrator] 开始静默提取")
        identity_tried = False

        for strategy in self.chain:
            outcome = await self._attempt(strategy, attempts)
            if outcome.is_found:
                return await self._succeed(outcome.record, attempts)

            if outcome.kind == OutcomeKind.NOT_AUTHENTICATED and not identity_tried:
                identity_tried = True
                logger.info("[Orchestrator] 未登录，尝试身份辅助重试")
                retry = await self._attempt(self.identity_retry, attempts)
                if retry.is_found:
                    return await self._succeed(retry.record, attempts)

        logger.info("[Orchestrator] 所有策略均失败，检查已有令牌")
        try:
            record = await self.failover.read()
        except TerminalFailure as e:
            logger.warning(f"[Orchestrator] {e}")
            return ScrapeResult(success=False, error="All silent methods failed", attempts=attempts)

        return ScrapeResult(
            success=True,
            record=record,
            method=CredentialSource.CACHE.value,
            from_cache=True,
            attempts=attempts,
        )

    async def _attempt(self, strategy: Strategy, attempts: list) -> ExtractionOutcome:
        source = getattr(strategy, "source", None)
        name = source.value if source else getattr(strategy, "__name__", "strategy")
        timeout = self.timeouts.get(source) if source else None

        try:
            outcome = await asyncio.wait_for(strategy(self.context), timeout=timeout)
        except asyncio.TimeoutError:
            outcome = ExtractionOutcome.timed_out(f"{name} exceeded {timeout}s")

        if outcome.kind == OutcomeKind.TIMED_OUT:
            logger.warning(f"[Orchestrator] {name}: 超时 ({outcome.reason})")
        elif not outcome.is_found:
            logger.info(f"[Orchestrator] {name}: {outcome.kind.value} {outcome.reason}".rstrip())

        attempts.append((source, outcome.kind))
        return outcome

    async def _succeed(self, record: CredentialRecord, attempts: list) -> ScrapeResult:
        logger.info(f"[Orchestrator] 提取成功 ({record.source.value}): {mask_token(record.value)}")
        persistence = await self.persistence.write(record)
        return ScrapeResult(
            success=True,
            record=record,
            method=record.source.value,
            persistence=persistence,
            attempts=attempts,
        )
