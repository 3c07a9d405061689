"""服务组装 - 从配置构造所有组件

RelayService 负责：
1. 创建共享的 HTTP 客户端、浏览器桥接、辅助上下文管理器
2. 串联编排器、持久化、读取故障转移、命令分发
3. 启动时触发首次安装/进程启动刷新，并监听浏览器导航
"""

import logging
from typing import Optional

import httpx

from .api.dispatcher import CommandDispatcher
from .api.orchestrator import StrategyOrchestrator
from .core.config import RelayConfig
from .core.errors import BrowserUnavailableError
from .extraction.auxiliary import AuxiliaryContextManager
from .extraction.bridge import BrowserBridge
from .extraction.identity import EnvIdentityProvider, IdentityProvider
from .extraction.pattern import TokenPattern
from .extraction.strategies import ScrapeContext
from .infra.scheduler import RefreshScheduler
from .infra.tool_launcher import ToolLauncher
from .storage.backends import DocumentStoreBackend, KeyValueBackend
from .storage.failover import ReadPathFailover
from .storage.local_cache import LocalCache
from .storage.persistence import DualBackendPersistence

logger = logging.getLogger(__name__)

INSTALL_MARKER = ".installed"


class RelayService:
    """
    组装好的服务

    使用示例:
        service = RelayService.build(RelayConfig.from_env())
        await service.start()
        response = await service.dispatcher.handle_message({"type": "GET_TOKEN"})
        await service.close()
    """

    def __init__(
        self,
        config: RelayConfig,
        http: httpx.AsyncClient,
        auxiliary: AuxiliaryContextManager,
        browser: Optional[BrowserBridge] = None,
        identity: Optional[IdentityProvider] = None,
    ):
        self.config = config
        self.http = http
        self.browser = browser
        self.auxiliary = auxiliary

        self.pattern = TokenPattern.from_config(config)
        self.cache = LocalCache(config.local_cache_path)
        self.primary = DocumentStoreBackend(config, http)
        self.backup = KeyValueBackend(config, http)

        self.persistence = DualBackendPersistence(self.primary, self.backup, self.cache)
        self.failover = ReadPathFailover([self.primary, self.backup], self.cache)

        self.context = ScrapeContext(
            config=config,
            pattern=self.pattern,
            auxiliary=auxiliary,
            http=http,
            identity=identity or EnvIdentityProvider(),
            browser=browser,
        )
        self.orchestrator = StrategyOrchestrator(self.context, self.persistence, self.failover)
        self.launcher = ToolLauncher(config, http, browser)
        self.dispatcher = CommandDispatcher(
            self.orchestrator, self.persistence, self.failover, self.launcher
        )
        self.scheduler = RefreshScheduler(config, self.orchestrator.run)

    @classmethod
    def build(cls, config: RelayConfig) -> "RelayService":
        """使用 Playwright 实现构造服务"""
        from .extraction.browser import PlaywrightAuxiliaryContext, PlaywrightBrowserBridge

        pattern = TokenPattern.from_config(config)
        auxiliary = AuxiliaryContextManager(lambda: PlaywrightAuxiliaryContext.launch(config, pattern))
        browser = PlaywrightBrowserBridge(config) if config.cdp_url else None
        return cls(config, httpx.AsyncClient(), auxiliary, browser)

    async def start(self) -> None:
        """触发启动/安装刷新并开始监听导航，均不阻塞"""
        marker = self.config.local_cache_path.parent / INSTALL_MARKER
        if marker.exists():
            self.scheduler.on_startup()
        else:
            marker.touch()
            self.scheduler.on_installed()

        if self.browser is not None:
            try:
                await self.browser.watch_navigation(self.scheduler.on_navigation)
            except BrowserUnavailableError as e:
                logger.warning(f"[Service] 无法监听浏览器导航: {e}")

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.auxiliary.teardown()
        if self.browser is not None:
            await self.browser.close()
        await self.http.aclose()
