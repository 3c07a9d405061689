"""
远程存储后端

- DocumentStoreBackend: 主后端，文档库（Firestore REST），按固定文档路径 upsert
- KeyValueBackend: 备份后端，键值库（Realtime Database REST），固定路径整值 PUT

两者都把网络错误、HTTP 错误、缺字段、格式错误统一转换为 BackendError。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..core.config import RelayConfig
from ..core.errors import BackendError
from ..core.types import CredentialRecord, RecordOrigin, mask_token

logger = logging.getLogger(__name__)


class CredentialBackend(ABC):
    """远程凭据存储"""

    name: str = "backend"
    origin: RecordOrigin

    def __init__(self, config: RelayConfig, http: httpx.AsyncClient):
        self.config = config
        self.http = http

    @abstractmethod
    async def write(self, record: CredentialRecord) -> None:
        """写入记录，失败抛出 BackendError"""

    @abstractmethod
    async def read(self) -> CredentialRecord:
        """读取当前记录，失败或不存在时抛出 BackendError"""

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.http.request(
                method, url, timeout=self.config.backend_timeout, **kwargs
            )
        except httpx.HTTPError as e:
            raise BackendError(self.name, f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise BackendError(self.name, f"HTTP {response.status_code}", response.status_code)
        return response

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(self.name, "malformed response") from e


class DocumentStoreBackend(CredentialBackend):
    """主后端: 文档库"""

    name = "primary"
    origin = RecordOrigin.PRIMARY

    @property
    def url(self) -> str:
        base = self.config.primary_base_url.rstrip("/")
        return (
            f"{base}/projects/{self.config.primary_project_id}"
            f"/databases/(default)/documents/{self.config.primary_document_path}"
        )

    @property
    def params(self) -> Dict[str, str]:
        return {"key": self.config.primary_api_key} if self.config.primary_api_key else {}

    def _fields(self, record: CredentialRecord) -> Dict[str, Dict[str, str]]:
        payload = record.to_payload(self.config.record_id, self.config.record_note)
        return {
            "token": {"stringValue": payload["token"]},
            "id": {"stringValue": payload["id"]},
            "updatedAt": {"timestampValue": payload["updatedAt"]},
            "source": {"stringValue": payload["source"]},
            "note": {"stringValue": payload["note"]},
        }

    async def write(self, record: CredentialRecord) -> None:
        await self._request("PATCH", self.url, params=self.params, json={"fields": self._fields(record)})
        logger.info(f"[Primary] 已写入 {mask_token(record.value)}")

    async def read(self) -> CredentialRecord:
        response = await self._request("GET", self.url, params=self.params)
        data = self._json(response)
        fields = data.get("fields") if isinstance(data, dict) else None
        if not isinstance(fields, dict):
            raise BackendError(self.name, "No token in primary")

        token = _string_value(fields.get("token"), "stringValue")
        if not token:
            raise BackendError(self.name, "No token in primary")

        return CredentialRecord.from_payload(
            {
                "token": token,
                "updatedAt": _string_value(fields.get("updatedAt"), "timestampValue"),
                "source": _string_value(fields.get("source"), "stringValue"),
            },
            origin=self.origin,
        )


class KeyValueBackend(CredentialBackend):
    """备份后端: 键值库"""

    name = "backup"
    origin = RecordOrigin.BACKUP

    @property
    def url(self) -> str:
        base = self.config.backup_base_url.rstrip("/")
        return f"{base}/{self.config.backup_path.strip('/')}.json"

    @property
    def params(self) -> Dict[str, str]:
        return {"auth": self.config.backup_auth} if self.config.backup_auth else {}

    async def write(self, record: CredentialRecord) -> None:
        payload = record.to_payload(self.config.record_id, self.config.record_note)
        await self._request("PUT", self.url, params=self.params, json=payload)
        logger.info(f"[Backup] 已写入 {mask_token(record.value)}")

    async def read(self) -> CredentialRecord:
        response = await self._request("GET", self.url, params=self.params)
        data = self._json(response)
        if not isinstance(data, dict) or not data.get("token"):
            raise BackendError(self.name, "No token in backup")
        if not isinstance(data["token"], str):
            raise BackendError(self.name, "malformed response")
        return CredentialRecord.from_payload(data, origin=self.origin)


def _string_value(field: Optional[Dict[str, Any]], key: str) -> Optional[str]:
    if not isinstance(field, dict):
        return None
    value = field.get(key)
    return value if isinstance(value, str) else None
