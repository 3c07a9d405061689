"""
错误类型

只有 TerminalFailure 会到达命令分发层，其余错误都在各自边界内被吸收。
"""

from typing import Optional


class RelayError(Exception):
    """所有错误的基类"""


class BackendError(RelayError):
    """单个后端读写失败（网络、HTTP状态、缺字段、格式错误）"""

    def __init__(self, backend: str, reason: str, status_code: Optional[int] = None):
        self.backend = backend
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{backend}: {reason}")


class TerminalFailure(RelayError):
    """所有策略与所有读取层级均已耗尽"""


class UnknownCommandError(RelayError):
    """未知的消息类型"""

    def __init__(self, tag: Optional[str]):
        self.tag = tag
        super().__init__(f"Unknown command: {tag}")


class BrowserUnavailableError(RelayError):
    """没有可连接的浏览器"""


class InjectionEndpointError(RelayError):
    """注入数据接口调用失败"""
