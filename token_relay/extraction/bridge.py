"""
浏览器桥接接口

对用户浏览器的访问（已打开的页面、Cookie存储、打开新标签页）都经由此接口。
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List


class BrowserBridge(ABC):
    """用户浏览器的访问接口"""

    @abstractmethod
    async def pages_html(self, origin: str) -> List[str]:
        """返回所有 URL 以 origin 开头的已打开页面的 HTML"""

    @abstractmethod
    async def cookies_for(self, url: str) -> Dict[str, str]:
        """返回浏览器中适用于 url 的 Cookie"""

    @abstractmethod
    async def add_cookie(self, cookie: Dict[str, Any]) -> None:
        """写入一个 Cookie（Playwright 格式）"""

    @abstractmethod
    async def open_url(self, url: str) -> None:
        """打开新标签页"""

    @abstractmethod
    async def watch_navigation(self, callback: Callable[[str], None]) -> None:
        """页面主框架导航完成时以 URL 调用 callback"""

    async def close(self) -> None:
        return None
