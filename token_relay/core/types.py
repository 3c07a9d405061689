"""
类型定义

- CredentialRecord: 在系统中流转的凭据记录（不可变）
- ExtractionOutcome: 单次提取策略的结果
- PersistenceOutcome: 双后端写入的结果
- ToolInjectionPayload / CookieSpec: 工具注入数据
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601，UTC，毫秒精度，以 Z 结尾"""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # Firestore 返回纳秒精度，fromisoformat 只接受到微秒
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def mask_token(token: Optional[str], keep: int = 12) -> str:
    """日志中只显示令牌前缀"""
    if not token:
        return "<none>"
    if len(token) <= keep:
        return token
    return f"{token[:keep]}...({len(token)})"


class CredentialSource(str, Enum):
    """凭据来源"""
    EXISTING_SURFACE = "existing_surface"               # 已打开的标签页
    AUXILIARY_CONTEXT = "auxiliary_context"             # 隐藏的辅助上下文
    DIRECT_FETCH = "direct_fetch"                       # 直接请求
    CROSS_ORIGIN_FRAME = "cross_origin_frame"           # 嵌入框架
    IDENTITY_ASSISTED_RETRY = "identity_assisted_retry" # 身份令牌辅助重试
    CACHE = "cache"                                     # 缓存
    EXTERNAL = "external"                               # 外部协作方上报

    @classmethod
    def parse(cls, label: Optional[str]) -> "CredentialSource":
        if not label:
            return cls.EXTERNAL
        try:
            return cls(label)
        except ValueError:
            return cls.EXTERNAL


class RecordOrigin(str, Enum):
    """最近一次确认该记录的存储层"""
    PRIMARY = "primary"
    BACKUP = "backup"
    LOCAL_CACHE = "local_cache"


@dataclass(frozen=True)
class CredentialRecord:
    """凭据记录，构造后不可修改；刷新会产生新记录"""
    value: str
    captured_at: datetime = field(default_factory=utcnow)
    source: CredentialSource = CredentialSource.EXTERNAL
    origin: Optional[RecordOrigin] = None
    label: str = ""

    def __post_init__(self):
        if not self.value:
            raise ValueError("CredentialRecord.value must not be empty")

    @property
    def source_label(self) -> str:
        return self.label or self.source.value

    @property
    def updated_at(self) -> str:
        return format_timestamp(self.captured_at)

    def with_origin(self, origin: RecordOrigin) -> "CredentialRecord":
        return dataclasses.replace(self, origin=origin)

    def to_payload(self, record_id: str, note: str) -> Dict[str, str]:
        """后端存储格式 {token, id, updatedAt, source, note}"""
        return {
            "token": self.value,
            "id": record_id,
            "updatedAt": self.updated_at,
            "source": self.source_label,
            "note": note,
        }

    @classmethod
    def from_payload(
        cls,
        data: Dict[str, Any],
        origin: Optional[RecordOrigin] = None,
    ) -> "CredentialRecord":
        label = data.get("source")
        if not isinstance(label, str):
            label = ""
        return cls(
            value=data["token"],
            captured_at=parse_timestamp(data.get("updatedAt")) or utcnow(),
            source=CredentialSource.parse(label),
            origin=origin,
            label=label,
        )


class OutcomeKind(str, Enum):
    """单次策略结果类型"""
    FOUND = "found"
    NOT_FOUND = "not_found"
    NOT_AUTHENTICATED = "not_authenticated"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class ExtractionOutcome:
    """提取结果: Found(record) | NotFound | NotAuthenticated | TimedOut | Error(reason)"""
    kind: OutcomeKind
    record: Optional[CredentialRecord] = None
    reason: str = ""

    @classmethod
    def found(cls, record: CredentialRecord) -> "ExtractionOutcome":
        return cls(OutcomeKind.FOUND, record=record)

    @classmethod
    def not_found(cls, reason: str = "") -> "ExtractionOutcome":
        return cls(OutcomeKind.NOT_FOUND, reason=reason)

    @classmethod
    def not_authenticated(cls, reason: str = "login required") -> "ExtractionOutcome":
        return cls(OutcomeKind.NOT_AUTHENTICATED, reason=reason)

    @classmethod
    def timed_out(cls, reason: str = "timeout") -> "ExtractionOutcome":
        return cls(OutcomeKind.TIMED_OUT, reason=reason)

    @classmethod
    def error(cls, reason: str) -> "ExtractionOutcome":
        return cls(OutcomeKind.ERROR, reason=reason)

    @property
    def is_found(self) -> bool:
        return self.kind == OutcomeKind.FOUND


class PersistenceOutcome(str, Enum):
    """双后端写入结果"""
    BOTH_SUCCEEDED = "both_succeeded"
    ONLY_PRIMARY_SUCCEEDED = "only_primary_succeeded"
    ONLY_BACKUP_SUCCEEDED = "only_backup_succeeded"
    BOTH_FAILED = "both_failed"

    @classmethod
    def from_flags(cls, primary_ok: bool, backup_ok: bool) -> "PersistenceOutcome":
        if primary_ok and backup_ok:
            return cls.BOTH_SUCCEEDED
        if primary_ok:
            return cls.ONLY_PRIMARY_SUCCEEDED
        if backup_ok:
            return cls.ONLY_BACKUP_SUCCEEDED
        return cls.BOTH_FAILED

    @property
    def succeeded(self) -> bool:
        return self != PersistenceOutcome.BOTH_FAILED


@dataclass
class CookieSpec:
    """注入用 Cookie，至少包含 name 与 value"""
    name: str
    value: str
    domain: Optional[str] = None
    path: Optional[str] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = None
    same_site: Optional[str] = None
    expiry: Optional[float] = None
    url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CookieSpec":
        if not isinstance(data, dict) or "name" not in data or "value" not in data:
            raise ValueError(f"cookie requires name and value: {data!r}")
        expiry = data.get("expiry", data.get("expirationDate", data.get("expires")))
        if expiry is not None:
            try:
                expiry = float(expiry)
            except (TypeError, ValueError) as e:
                raise ValueError(f"invalid cookie expiry: {expiry!r}") from e
        return cls(
            name=str(data["name"]),
            value=str(data["value"]),
            domain=data.get("domain"),
            path=data.get("path"),
            secure=data.get("secure"),
            http_only=data.get("httpOnly", data.get("http_only")),
            same_site=data.get("sameSite", data.get("same_site")),
            expiry=expiry,
            url=data.get("url"),
        )


@dataclass
class ToolInjectionPayload:
    """工具注入数据: 目标地址 + 可选的 Cookie 列表"""
    target_url: str
    cookies: List[CookieSpec] = field(default_factory=list)


@dataclass
class ScrapeResult:
    """一次编排运行的结果"""
    success: bool
    record: Optional[CredentialRecord] = None
    method: Optional[str] = None
    error: Optional[str] = None
    from_cache: bool = False
    persistence: Optional[PersistenceOutcome] = None
    attempts: List[Tuple[CredentialSource, OutcomeKind]] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {"success": self.success}
        if self.record:
            response["token"] = self.record.value
            response["updatedAt"] = self.record.updated_at
        if self.method:
            response["method"] = self.method
        if self.error:
            response["error"] = self.error
        if self.from_cache:
            response["fromCache"] = True
        return response


@dataclass
class InjectionReport:
    """打开工具的结果，记录成功注入了 N 个中的多少个"""
    ok: bool
    opened_url: Optional[str] = None
    applied: int = 0
    total: int = 0
    fallback: bool = False
    error: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "ok": self.ok,
            "injected": self.applied,
            "total": self.total,
            "fallback": self.fallback,
        }
        if self.error:
            response["error"] = self.error
        return response
