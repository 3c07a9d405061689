"""
提取策略

每个策略从不同的位置尝试获取令牌，统一返回 ExtractionOutcome:
1. existing_surface   - 已打开的目标页面
2. auxiliary_context  - 隐藏辅助上下文
3. direct_fetch       - 后台直接请求
4. cross_origin_frame - 嵌入框架（跨域时预期失败，按软失败处理）
5. identity_assisted_retry - 仅在出现 NotAuthenticated 后调用

策略只负责提取，不做持久化；异常不会越过策略边界。
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple

import httpx

from ..core.config import RelayConfig
from ..core.errors import BrowserUnavailableError
from ..core.types import CredentialRecord, CredentialSource, ExtractionOutcome
from .auxiliary import AuxiliaryContextManager, ScrapeReply
from .bridge import BrowserBridge
from .identity import IdentityProvider, NoIdentityProvider
from .pattern import TokenPattern

logger = logging.getLogger(__name__)


@dataclass
class ScrapeContext:
    """策略运行所需的协作对象"""
    config: RelayConfig
    pattern: TokenPattern
    auxiliary: AuxiliaryContextManager
    http: httpx.AsyncClient
    identity: IdentityProvider = field(default_factory=NoIdentityProvider)
    browser: Optional[BrowserBridge] = None


Strategy = Callable[[ScrapeContext], Awaitable[ExtractionOutcome]]


def strategy(source: CredentialSource):
    """把策略内的异常转换为 TimedOut / Error，并标注策略来源"""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(ctx: ScrapeContext) -> ExtractionOutcome:
            try:
                return await func(ctx)
            except (asyncio.TimeoutError, httpx.TimeoutException):
                return ExtractionOutcome.timed_out(f"{source.value} timed out")
            except Exception as e:
                logger.warning(f"[Strategy] {source.value} 出错: {e}")
                return ExtractionOutcome.error(str(e) or type(e).__name__)

        wrapper.source = source
        return wrapper

    return decorator


def _found(token: str, source: CredentialSource) -> ExtractionOutcome:
    return ExtractionOutcome.found(CredentialRecord(value=token, source=source))


def _outcome_from_reply(reply: ScrapeReply, source: CredentialSource) -> ExtractionOutcome:
    if reply.token:
        return _found(reply.token, source)
    if reply.not_logged_in:
        return ExtractionOutcome.not_authenticated(reply.error or "Not logged in")
    return ExtractionOutcome.not_found(reply.error or "No token")


@strategy(CredentialSource.EXISTING_SURFACE)
async def attempt_existing_surface(ctx: ScrapeContext) -> ExtractionOutcome:
    """扫描已打开的目标页面，不创建新页面"""
    if ctx.browser is None:
        return ExtractionOutcome.not_found("no browser attached")

    try:
        pages = await ctx.browser.pages_html(ctx.config.target_origin)
    except BrowserUnavailableError as e:
        return ExtractionOutcome.not_found(str(e))

    if not pages:
        return ExtractionOutcome.not_found("no open tab on target")

    for content in pages:
        token = ctx.pattern.find_longest(content)
        if token:
            logger.info("[Strategy] 从已打开的页面中提取到令牌")
            return _found(token, CredentialSource.EXISTING_SURFACE)

    return ExtractionOutcome.not_found("no match in open tabs")


@strategy(CredentialSource.AUXILIARY_CONTEXT)
async def attempt_auxiliary_context(ctx: ScrapeContext) -> ExtractionOutcome:
    """在隐藏上下文中加载目标页面"""
    context = await ctx.auxiliary.ensure()
    reply = await context.scrape()
    return _outcome_from_reply(reply, CredentialSource.AUXILIARY_CONTEXT)


@strategy(CredentialSource.DIRECT_FETCH)
async def attempt_direct_fetch(ctx: ScrapeContext) -> ExtractionOutcome:
    """后台直接请求目标页面（无 DOM），带上浏览器中的会话 Cookie"""
    headers = {"Accept": "text/html", "User-Agent": ctx.config.user_agent}

    if ctx.browser is not None:
        try:
            cookies = await ctx.browser.cookies_for(ctx.config.target_url)
        except BrowserUnavailableError:
            cookies = {}
        if cookies:
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in cookies.items())

    response = await ctx.http.get(
        ctx.config.target_url,
        headers=headers,
        timeout=ctx.config.direct_fetch_timeout,
        follow_redirects=True,
    )
    if not response.is_success:
        return ExtractionOutcome.not_found(f"HTTP {response.status_code}")

    token = ctx.pattern.find_longest(response.text)
    if token:
        logger.info("[Strategy] 直接请求提取到令牌")
        return _found(token, CredentialSource.DIRECT_FETCH)
    return ExtractionOutcome.not_found("no match in response body")


@strategy(CredentialSource.CROSS_ORIGIN_FRAME)
async def attempt_cross_origin_frame(ctx: ScrapeContext) -> ExtractionOutcome:
    """最后手段: 通过嵌入框架读取页面。跨域隔离导致的失败是预期内的"""
    context = await ctx.auxiliary.ensure()
    try:
        reply = await context.scrape_frame()
    except Exception as e:
        logger.info(f"[Strategy] 无法读取框架内容（跨域）: {e}")
        return ExtractionOutcome.not_found("frame content inaccessible")

    if reply.token:
        return _found(reply.token, CredentialSource.CROSS_ORIGIN_FRAME)
    return ExtractionOutcome.not_found(reply.error or "Could not extract token from frame")


@strategy(CredentialSource.IDENTITY_ASSISTED_RETRY)
async def attempt_identity_assisted_retry(ctx: ScrapeContext) -> ExtractionOutcome:
    """静默获取身份令牌；获得后重新运行一次隐藏上下文抓取"""
    identity_token = await ctx.identity.get_token(interactive=False)
    if not identity_token:
        return ExtractionOutcome.not_authenticated("silent identity request not granted")

    logger.info("[Strategy] 已获得身份令牌，重试隐藏上下文抓取")
    context = await ctx.auxiliary.ensure()
    reply = await asyncio.wait_for(context.scrape(), timeout=ctx.config.identity_retry_timeout)
    return _outcome_from_reply(reply, CredentialSource.IDENTITY_ASSISTED_RETRY)


# 固定优先级顺序；身份辅助重试不在链中，由编排器按需调用
STRATEGY_CHAIN: Tuple[Strategy, ...] = (
    attempt_existing_surface,
    attempt_auxiliary_context,
    attempt_direct_fetch,
    attempt_cross_origin_frame,
)
