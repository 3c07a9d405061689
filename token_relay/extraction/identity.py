"""
身份令牌提供方

身份辅助重试只以非交互方式请求身份令牌；拿不到时返回 None，不弹出任何界面。
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    """平台身份令牌"""

    @abstractmethod
    async def get_token(self, interactive: bool = False) -> Optional[str]:
        """返回身份令牌，无法静默获取时返回 None"""


class NoIdentityProvider(IdentityProvider):
    """没有可用的身份来源"""

    async def get_token(self, interactive: bool = False) -> Optional[str]:
        return None


class EnvIdentityProvider(IdentityProvider):
    """从环境变量读取身份令牌"""

    def __init__(self, variable: str = "TOKEN_RELAY_IDENTITY_TOKEN"):
        self.variable = variable

    async def get_token(self, interactive: bool = False) -> Optional[str]:
        token = os.getenv(self.variable)
        if not token:
            logger.debug(f"[Identity] {self.variable} 未设置")
        return token or None
