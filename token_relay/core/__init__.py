"""
核心基础 - 配置、类型、错误
"""

from .config import RelayConfig
from .errors import (
    BackendError,
    BrowserUnavailableError,
    InjectionEndpointError,
    RelayError,
    TerminalFailure,
    UnknownCommandError,
)
from .types import (
    CookieSpec,
    CredentialRecord,
    CredentialSource,
    ExtractionOutcome,
    InjectionReport,
    OutcomeKind,
    PersistenceOutcome,
    RecordOrigin,
    ScrapeResult,
    ToolInjectionPayload,
    mask_token,
)

__all__ = [
    "RelayConfig",
    # 错误
    "RelayError",
    "BackendError",
    "TerminalFailure",
    "UnknownCommandError",
    "BrowserUnavailableError",
    "InjectionEndpointError",
    # 类型
    "CredentialRecord",
    "CredentialSource",
    "RecordOrigin",
    "ExtractionOutcome",
    "OutcomeKind",
    "PersistenceOutcome",
    "CookieSpec",
    "ToolInjectionPayload",
    "ScrapeResult",
    "InjectionReport",
    "mask_token",
]
