"""
提取模块 - 令牌匹配、提取策略、辅助上下文

Playwright 实现位于 extraction.browser，按需导入。
"""

from .auxiliary import AuxiliaryContext, AuxiliaryContextManager, AuxiliaryState, ScrapeReply
from .bridge import BrowserBridge
from .identity import EnvIdentityProvider, IdentityProvider, NoIdentityProvider
from .pattern import TokenPattern
from .strategies import (
    STRATEGY_CHAIN,
    ScrapeContext,
    attempt_auxiliary_context,
    attempt_cross_origin_frame,
    attempt_direct_fetch,
    attempt_existing_surface,
    attempt_identity_assisted_retry,
)

__all__ = [
    "TokenPattern",
    "AuxiliaryContext",
    "AuxiliaryContextManager",
    "AuxiliaryState",
    "ScrapeReply",
    "BrowserBridge",
    "IdentityProvider",
    "NoIdentityProvider",
    "EnvIdentityProvider",
    "ScrapeContext",
    "STRATEGY_CHAIN",
    "attempt_existing_surface",
    "attempt_auxiliary_context",
    "attempt_direct_fetch",
    "attempt_cross_origin_frame",
    "attempt_identity_assisted_retry",
]
