"""
命令分发 - 对外接口

把编排器、持久化层和工具启动以一组固定的命令暴露给其他组件。
消息类型是封闭集合，路由表把每个类型映射到一个处理函数，未知类型显式拒绝。

消息格式:
    {"type": "SCRAPE_TOKEN"}
    {"type": "GET_TOKEN"}
    {"type": "TOKEN_FOUND", "token": "...", "source": "..."}
    {"type": "OPEN_TOOL", "origin": "...", "toolId": "...", "idToken": "...", "targetUrl": "..."}
    {"type": "CHECK_LOGIN"}
    {"type": "LOGIN_SUCCESS"}
    {"action": "SAVE_TOKEN", "payload": {"token": "...", "service": "..."}}   # 旧格式
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from ..core.errors import TerminalFailure, UnknownCommandError
from ..core.types import (
    CredentialRecord,
    CredentialSource,
    PersistenceOutcome,
    RecordOrigin,
    ScrapeResult,
    mask_token,
)
from ..infra.tool_launcher import ToolLauncher
from ..storage.failover import ReadPathFailover
from ..storage.persistence import DualBackendPersistence
from .orchestrator import StrategyOrchestrator

logger = logging.getLogger(__name__)

Notifier = Callable[[Dict[str, Any]], None]


# ==================== 命令定义 ====================

@dataclass(frozen=True)
class ScrapeTokenCommand:
    """立即运行一次提取"""


@dataclass(frozen=True)
class GetTokenCommand:
    """读取当前令牌"""


@dataclass(frozen=True)
class TokenFoundCommand:
    """外部协作方已经拿到令牌，直接持久化"""
    token: str
    source: Optional[str] = None


@dataclass(frozen=True)
class OpenToolCommand:
    """打开工具并注入 Cookie"""
    origin: Optional[str]
    tool_id: Optional[str]
    id_token: Optional[str]
    target_url: Optional[str] = None


@dataclass(frozen=True)
class SaveTokenCommand:
    """旧格式的保存命令"""
    token: str
    service: Optional[str] = None


@dataclass(frozen=True)
class LoginSuccessCommand:
    """登录成功通知"""


@dataclass(frozen=True)
class CheckLoginCommand:
    """检查辅助上下文中的登录状态"""


def _require_token(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError("token is required")
    return value


# 消息类型 → 命令构造
COMMAND_PARSERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "SCRAPE_TOKEN": lambda m: ScrapeTokenCommand(),
    "GET_TOKEN": lambda m: GetTokenCommand(),
    "TOKEN_FOUND": lambda m: TokenFoundCommand(_require_token(m.get("token")), m.get("source")),
    "OPEN_TOOL": lambda m: OpenToolCommand(
        origin=m.get("origin"),
        tool_id=m.get("toolId"),
        id_token=m.get("idToken"),
        target_url=m.get("targetUrl"),
    ),
    "CHECK_LOGIN": lambda m: CheckLoginCommand(),
    "LOGIN_SUCCESS": lambda m: LoginSuccessCommand(),
}

LEGACY_ACTION_PARSERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "SAVE_TOKEN": lambda m: SaveTokenCommand(
        _require_token((m.get("payload") or {}).get("token")),
        (m.get("payload") or {}).get("service"),
    ),
}


def parse_command(message: Any):
    """
    把消息解析为命令

    Raises:
        UnknownCommandError: 消息类型不在封闭集合中
        ValueError: 必填字段缺失
    """
    if not isinstance(message, dict):
        raise UnknownCommandError(None)

    tag = message.get("type")
    if tag in COMMAND_PARSERS:
        return COMMAND_PARSERS[tag](message)

    action = message.get("action")
    if action in LEGACY_ACTION_PARSERS:
        return LEGACY_ACTION_PARSERS[action](message)

    raise UnknownCommandError(tag or action)


def _log_notifier(event: Dict[str, Any]) -> None:
    logger.info(f"[Dispatcher] 事件: {event.get('type')}")


# ==================== 分发器 ====================

class CommandDispatcher:
    """
    命令分发器

    使用示例:
        dispatcher = CommandDispatcher(orchestrator, persistence, failover, launcher)

        response = await dispatcher.handle_message({"type": "GET_TOKEN"})
        # {"success": True, "token": "...", "updatedAt": "...", "fromCache": False}
    """

    def __init__(
        self,
        orchestrator: StrategyOrchestrator,
        persistence: DualBackendPersistence,
        failover: ReadPathFailover,
        launcher: ToolLauncher,
        notifier: Notifier = _log_notifier,
    ):
        self.orchestrator = orchestrator
        self.persistence = persistence
        self.failover = failover
        self.launcher = launcher
        self.notifier = notifier

        self._handlers: Dict[Type, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            ScrapeTokenCommand: self._handle_scrape,
            GetTokenCommand: self._handle_get,
            TokenFoundCommand: self._handle_token_found,
            OpenToolCommand: self._handle_open_tool,
            SaveTokenCommand: self._handle_save_token,
            LoginSuccessCommand: self._handle_login_success,
            CheckLoginCommand: self._handle_check_login,
        }

    # ==================== 请求处理 ====================

    async def handle_message(self, message: Any) -> Dict[str, Any]:
        """处理消息 - 主入口，从不抛出异常"""
        try:
            command = parse_command(message)
        except UnknownCommandError as e:
            logger.warning(f"[Dispatcher] 拒绝未知命令: {e.tag}")
            return {"success": False, "error": str(e)}
        except (ValueError, TypeError, AttributeError) as e:
            return {"success": False, "error": f"Invalid command: {e}"}

        logger.debug(f"[Dispatcher] 收到命令: {type(command).__name__}")
        handler = self._handlers[type(command)]
        try:
            return await handler(command)
        except Exception as e:
            logger.exception(f"[Dispatcher] 命令处理失败: {type(command).__name__}")
            return {"success": False, "error": str(e) or type(e).__name__}

    # ==================== 对外操作 ====================

    async def scrape_now(self) -> ScrapeResult:
        return await self.orchestrator.run()

    async def get_current(self) -> CredentialRecord:
        """所有层级均未命中时抛出 TerminalFailure"""
        return await self.failover.read()

    async def report_found(self, record: CredentialRecord) -> PersistenceOutcome:
        outcome = await self.persistence.write(record)
        if outcome.succeeded:
            self.notifier({"type": "TOKEN_SAVED", "token": record.value})
        return outcome

    # ==================== 处理函数 ====================

    async def _handle_scrape(self, command: ScrapeTokenCommand) -> Dict[str, Any]:
        result = await self.scrape_now()
        return result.to_response()

    async def _handle_get(self, command: GetTokenCommand) -> Dict[str, Any]:
        try:
            record = await self.get_current()
        except TerminalFailure as e:
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "token": record.value,
            "updatedAt": record.updated_at,
            "fromCache": record.origin == RecordOrigin.LOCAL_CACHE,
            "origin": record.origin.value if record.origin else None,
            "source": record.source_label,
        }

    async def _handle_token_found(self, command: TokenFoundCommand) -> Dict[str, Any]:
        record = _external_record(command.token, command.source or "Content Script")
        logger.info(f"[Dispatcher] 外部上报令牌: {mask_token(record.value)}")
        outcome = await self.report_found(record)
        return {"success": True, "persistence": outcome.value}

    async def _handle_save_token(self, command: SaveTokenCommand) -> Dict[str, Any]:
        record = _external_record(command.token, command.service or "Extension")
        outcome = await self.report_found(record)
        if outcome.succeeded:
            return {"status": "success"}
        return {"status": "error", "msg": "Both databases failed"}

    async def _handle_open_tool(self, command: OpenToolCommand) -> Dict[str, Any]:
        report = await self.launcher.open_tool(
            origin=command.origin,
            tool_id=command.tool_id,
            id_token=command.id_token,
            target_url=command.target_url,
        )
        return report.to_response()

    async def _handle_login_success(self, command: LoginSuccessCommand) -> Dict[str, Any]:
        self.notifier({
            "type": "NOTIFICATION",
            "title": "token-relay",
            "message": "Login successful. Ready to use.",
        })
        return {"success": True}

    async def _handle_check_login(self, command: CheckLoginCommand) -> Dict[str, Any]:
        logged_in = await self.orchestrator.check_login()
        return {"success": True, "loggedIn": logged_in}


def _external_record(token: str, label: str) -> CredentialRecord:
    return CredentialRecord(
        value=token,
        source=CredentialSource.parse(label),
        label=label,
    )
