"""
令牌匹配

固定前缀 + 最小长度的正则；同一文档中有多个匹配时取最长的一个。
"""

import re
from typing import Iterable, List, Optional


class TokenPattern:
    """
    令牌匹配器

    使用示例:
        pattern = TokenPattern("ya29.", 100)
        token = pattern.find_longest(html)
    """

    def __init__(
        self,
        prefix: str = "ya29.",
        min_length: int = 100,
        login_indicators: Iterable[str] = ("Sign in", "accounts.google.com"),
    ):
        self.prefix = prefix
        self.min_length = min_length
        self.login_indicators = tuple(login_indicators)
        self.regex = re.compile(re.escape(prefix) + r"[A-Za-z0-9_-]{%d,}" % min_length)

    @classmethod
    def from_config(cls, config) -> "TokenPattern":
        return cls(config.token_prefix, config.token_min_length, config.login_indicators)

    def find_all(self, text: Optional[str]) -> List[str]:
        if not text:
            return []
        return self.regex.findall(text)

    def find_longest(self, text: Optional[str]) -> Optional[str]:
        """
        返回最长的匹配

        较长的匹配被认为更完整（较短的可能是被截断的前缀）。
        等长时保留靠后的匹配。
        """
        best: Optional[str] = None
        for match in self.find_all(text):
            if best is None or not len(best) > len(match):
                best = match
        return best

    def looks_logged_out(self, text: Optional[str]) -> bool:
        """页面是否显示登录提示"""
        if not text:
            return False
        return any(indicator in text for indicator in self.login_indicators)
