"""
Playwright 实现

- PlaywrightAuxiliaryContext: 无头 Chromium 中的隐藏页面，作为辅助上下文
- PlaywrightBrowserBridge: 通过 CDP 连接用户已打开的浏览器

使用示例:
    manager = AuxiliaryContextManager(
        lambda: PlaywrightAuxiliaryContext.launch(config, pattern)
    )

    bridge = PlaywrightBrowserBridge(config)
    pages = await bridge.pages_html("https://labs.google")
"""

from __future__ import annotations

import asyncio
import html
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from ..core.config import RelayConfig
from ..core.errors import BrowserUnavailableError
from .auxiliary import AuxiliaryContext, ScrapeReply
from .bridge import BrowserBridge
from .pattern import TokenPattern

logger = logging.getLogger(__name__)

FRAME_ID = "relay-frame"


class PlaywrightAuxiliaryContext(AuxiliaryContext):
    """无头浏览器中的隐藏页面"""

    def __init__(
        self,
        config: RelayConfig,
        pattern: TokenPattern,
        playwright: Playwright,
        context: BrowserContext,
        page: Page,
        browser: Optional[Browser] = None,
    ):
        self.config = config
        self.pattern = pattern
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page

    @classmethod
    async def launch(cls, config: RelayConfig, pattern: TokenPattern) -> "PlaywrightAuxiliaryContext":
        """
        启动隐藏上下文

        配置了 profile_dir 时使用持久化用户目录，这样会话 Cookie 能跨运行保留。
        """
        playwright = await async_playwright().start()
        browser = None
        try:
            if config.profile_dir:
                context = await playwright.chromium.launch_persistent_context(
                    str(config.profile_dir),
                    headless=config.headless,
                    user_agent=config.user_agent,
                )
            else:
                browser = await playwright.chromium.launch(headless=config.headless)
                context = await browser.new_context(user_agent=config.user_agent)
            page = context.pages[0] if context.pages else await context.new_page()
        except Exception:
            await playwright.stop()
            raise

        return cls(config, pattern, playwright, context, page, browser)

    @property
    def _timeout_ms(self) -> float:
        return self.config.auxiliary_timeout * 1000

    async def scrape(self) -> ScrapeReply:
        await self._page.goto(
            self.config.target_url,
            wait_until="domcontentloaded",
            timeout=self._timeout_ms,
        )
        content = await self._page.content()
        return self._reply_for(content, self._page.url)

    async def scrape_frame(self) -> ScrapeReply:
        src = html.escape(self.config.target_url, quote=True)
        await self._page.set_content(f'<iframe id="{FRAME_ID}" src="{src}"></iframe>')
        element = await self._page.wait_for_selector(
            f"#{FRAME_ID}", timeout=self.config.frame_timeout * 1000
        )
        frame = await element.content_frame()
        if frame is None:
            return ScrapeReply(error="Could not access frame content")

        await frame.wait_for_load_state("domcontentloaded", timeout=self.config.frame_timeout * 1000)
        content = await frame.content()
        return self._reply_for(content, frame.url)

    async def check_login(self) -> bool:
        response = await self._context.request.get(
            self.config.login_check_url,
            max_redirects=0,
            timeout=self._timeout_ms,
        )
        # 被重定向说明未登录
        if 300 <= response.status < 400:
            return False
        text = await response.text()
        return "Sign in" not in text and "identifier" not in text

    def _reply_for(self, content: str, url: str) -> ScrapeReply:
        token = self.pattern.find_longest(content)
        if token:
            return ScrapeReply(token=token)

        host = urlparse(url).hostname or ""
        if host.startswith("accounts.") or self.pattern.looks_logged_out(content):
            return ScrapeReply(not_logged_in=True, error="Not logged in")

        return ScrapeReply(error="No token in page")

    async def close(self) -> None:
        try:
            await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightBrowserBridge(BrowserBridge):
    """
    连接用户浏览器

    浏览器需以 --remote-debugging-port 启动，config.cdp_url 指向调试地址。
    首次使用时才建立连接。
    """

    def __init__(self, config: RelayConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    async def _ensure_connected(self) -> BrowserContext:
        async with self._lock:
            if self._context is not None:
                return self._context

            if not self.config.cdp_url:
                raise BrowserUnavailableError("cdp_url is not configured")

            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.connect_over_cdp(self.config.cdp_url)
            except Exception as e:
                await self._playwright.stop()
                self._playwright = None
                raise BrowserUnavailableError(f"cannot connect to {self.config.cdp_url}: {e}") from e

            if self._browser.contexts:
                self._context = self._browser.contexts[0]
            else:
                self._context = await self._browser.new_context()

            logger.info(f"[BrowserBridge] 已连接浏览器: {self.config.cdp_url}")
            return self._context

    async def pages_html(self, origin: str) -> List[str]:
        context = await self._ensure_connected()
        contents = []
        for page in context.pages:
            if not page.url.startswith(origin):
                continue
            try:
                contents.append(await page.content())
            except Exception as e:
                logger.debug(f"[BrowserBridge] 读取页面失败 {page.url}: {e}")
        return contents

    async def cookies_for(self, url: str) -> Dict[str, str]:
        context = await self._ensure_connected()
        cookies = await context.cookies(url)
        return {c["name"]: c["value"] for c in cookies}

    async def add_cookie(self, cookie: Dict[str, Any]) -> None:
        context = await self._ensure_connected()
        await context.add_cookies([cookie])

    async def open_url(self, url: str) -> None:
        context = await self._ensure_connected()
        page = await context.new_page()
        await page.goto(url, wait_until="commit")

    async def watch_navigation(self, callback: Callable[[str], None]) -> None:
        context = await self._ensure_connected()

        def attach(page: Page):
            def on_navigated(frame):
                if frame == page.main_frame:
                    callback(frame.url)

            page.on("framenavigated", on_navigated)

        for page in context.pages:
            attach(page)
        context.on("page", attach)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"[BrowserBridge] 断开连接出错（忽略）: {e}")
        if self._playwright is not None:
            await self._playwright.stop()
        self._browser = None
        self._context = None
        self._playwright = None
