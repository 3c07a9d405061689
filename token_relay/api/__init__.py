"""
主接口 - 编排器与命令分发
"""

from .dispatcher import (
    CheckLoginCommand,
    CommandDispatcher,
    GetTokenCommand,
    LoginSuccessCommand,
    OpenToolCommand,
    SaveTokenCommand,
    ScrapeTokenCommand,
    TokenFoundCommand,
    parse_command,
)
from .orchestrator import StrategyOrchestrator

__all__ = [
    "StrategyOrchestrator",
    "CommandDispatcher",
    "parse_command",
    "ScrapeTokenCommand",
    "GetTokenCommand",
    "TokenFoundCommand",
    "OpenToolCommand",
    "SaveTokenCommand",
    "LoginSuccessCommand",
    "CheckLoginCommand",
]
