"""
统一配置模块

集中管理所有配置项:
- 目标页面与令牌匹配规则
- 主/备后端地址与密钥
- 浏览器配置
- 各策略超时
- 调度参数

配置在进程启动时构造并注入，不使用模块级常量，测试可以替换为假地址。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse

from .types import CredentialSource


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class RelayConfig:
    """运行配置（不可变）"""

    # ============ 目标页面 ============
    target_url: str = "https://labs.google/fx/tools/flow"
    token_prefix: str = "ya29."
    token_min_length: int = 100
    login_indicators: Tuple[str, ...] = ("Sign in", "accounts.google.com")
    login_check_url: str = "https://accounts.google.com/CheckCookie"

    # ============ 主后端 (文档库) ============
    primary_project_id: str = ""
    primary_document_path: str = "tokens/current"
    primary_api_key: str = ""
    primary_base_url: str = "https://firestore.googleapis.com/v1"

    # ============ 备份后端 (键值库) ============
    backup_base_url: str = ""
    backup_path: str = "tokens/current"
    backup_auth: str = ""

    # ============ 记录元数据 ============
    record_id: str = "current"
    record_note: str = "Auto-captured by token-relay"

    # ============ 本地缓存 ============
    data_dir: Path = field(default_factory=lambda: Path("data/token_relay"))

    # ============ 浏览器 ============
    cdp_url: Optional[str] = None          # 已打开的浏览器 (chrome --remote-debugging-port)
    profile_dir: Optional[Path] = None     # 隐藏上下文使用的持久化用户目录
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # ============ 超时 (秒) ============
    existing_surface_timeout: float = 15.0
    auxiliary_timeout: float = 20.0
    direct_fetch_timeout: float = 15.0
    frame_timeout: float = 15.0
    identity_retry_timeout: float = 15.0
    backend_timeout: float = 10.0
    injection_timeout: float = 15.0

    # ============ 调度 ============
    startup_delay: float = 5.0
    install_delay: float = 10.0
    navigation_delay: float = 3.0
    refresh_interval_minutes: float = 30.0

    # ============ 工具注入 ============
    injection_endpoint_path: str = "/api/tools/get-injection-data"

    # ============ 本地服务 ============
    server_host: str = "127.0.0.1"
    server_port: int = 8765

    @property
    def target_origin(self) -> str:
        parsed = urlparse(self.target_url)
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def target_host(self) -> str:
        return urlparse(self.target_url).hostname or ""

    @property
    def local_cache_path(self) -> Path:
        return Path(self.data_dir) / "local_cache.json"

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_minutes * 60

    @property
    def strategy_timeouts(self) -> Dict[CredentialSource, float]:
        """每个策略的整体时限；身份重试包含获取身份令牌的时间"""
        return {
            CredentialSource.EXISTING_SURFACE: self.existing_surface_timeout,
            CredentialSource.AUXILIARY_CONTEXT: self.auxiliary_timeout,
            CredentialSource.DIRECT_FETCH: self.direct_fetch_timeout,
            CredentialSource.CROSS_ORIGIN_FRAME: self.frame_timeout,
            CredentialSource.IDENTITY_ASSISTED_RETRY: self.identity_retry_timeout + 5.0,
        }

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """从环境变量创建配置"""
        defaults = cls()
        return cls(
            target_url=os.getenv("TOKEN_RELAY_TARGET_URL", defaults.target_url),
            token_prefix=os.getenv("TOKEN_RELAY_TOKEN_PREFIX", defaults.token_prefix),
            token_min_length=int(os.getenv("TOKEN_RELAY_TOKEN_MIN_LENGTH", str(defaults.token_min_length))),
            primary_project_id=os.getenv("TOKEN_RELAY_PRIMARY_PROJECT", ""),
            primary_document_path=os.getenv("TOKEN_RELAY_PRIMARY_PATH", defaults.primary_document_path),
            primary_api_key=os.getenv("TOKEN_RELAY_PRIMARY_API_KEY", ""),
            backup_base_url=os.getenv("TOKEN_RELAY_BACKUP_URL", ""),
            backup_path=os.getenv("TOKEN_RELAY_BACKUP_PATH", defaults.backup_path),
            backup_auth=os.getenv("TOKEN_RELAY_BACKUP_AUTH", ""),
            record_id=os.getenv("TOKEN_RELAY_RECORD_ID", defaults.record_id),
            data_dir=Path(os.getenv("TOKEN_RELAY_DATA_DIR", str(defaults.data_dir))),
            cdp_url=os.getenv("TOKEN_RELAY_CDP_URL") or None,
            profile_dir=Path(os.environ["TOKEN_RELAY_PROFILE_DIR"]) if os.getenv("TOKEN_RELAY_PROFILE_DIR") else None,
            headless=_env_bool("TOKEN_RELAY_HEADLESS", True),
            refresh_interval_minutes=float(
                os.getenv("TOKEN_RELAY_REFRESH_MINUTES", str(defaults.refresh_interval_minutes))
            ),
            server_host=os.getenv("TOKEN_RELAY_HOST", defaults.server_host),
            server_port=int(os.getenv("TOKEN_RELAY_PORT", str(defaults.server_port))),
        )
