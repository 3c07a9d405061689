"""
基础设施模块

包含:
- TaskScheduler / RefreshScheduler: 即发即忘调度与刷新触发
- ToolLauncher: 工具打开与 Cookie 注入
"""

from .scheduler import RefreshScheduler, TaskScheduler, TaskStats
from .tool_launcher import (
    ToolLauncher,
    extract_cookies,
    parse_injection_payload,
    to_browser_cookie,
)

__all__ = [
    "TaskScheduler",
    "TaskStats",
    "RefreshScheduler",
    "ToolLauncher",
    "extract_cookies",
    "parse_injection_payload",
    "to_browser_cookie",
]
